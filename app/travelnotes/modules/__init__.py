"""
Feature modules live under this package.

Each module owns its routes, models and services, and reuses the platform
primitives (auth, roles, audit, storage, DB session) from app.travelnotes.
"""
