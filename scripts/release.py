"""
Release step run before each deploy: migrate the schema to head, then seed
the staff accounts (admin + auditor) without touching existing passwords.

Usage:
  python scripts/release.py                # migrate + seed
  python scripts/release.py --skip-seed    # migrate only
  python scripts/release.py --demo         # also seed demo travellers and notes
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from sqlalchemy.engine import make_url

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

PRODUCTION_ENVS = ("prod", "production")


def resolve_database_url(database_url: str | None = None) -> str:
    url = (database_url or os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set; refusing to migrate an implicit SQLite file.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in PRODUCTION_ENVS and url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against SQLite in production. Point DATABASE_URL at Postgres.")
    return url


def alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # configparser interpolation: a literal % in a password must be doubled.
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return cfg


def run_release(database_url: str | None = None, *, seed: bool = True, demo: bool = False) -> str:
    """Upgrade to head and (optionally) seed. Returns the URL that was migrated."""
    from alembic import command

    db_url = resolve_database_url(database_url)
    print(f"Migrating {make_url(db_url).render_as_string(hide_password=True)} to head...", flush=True)
    command.upgrade(alembic_config(db_url), "head")

    if seed:
        from scripts import init_db

        init_db.seed_only(database_url=db_url, demo=demo)
    print("Release complete.", flush=True)
    return db_url


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run migrations and seed staff accounts.")
    parser.add_argument("--skip-seed", action="store_true", help="only run migrations")
    parser.add_argument("--demo", action="store_true", help="also create demo travellers and notes")
    args = parser.parse_args(argv)
    run_release(seed=not args.skip_seed, demo=args.demo)


if __name__ == "__main__":
    main()
