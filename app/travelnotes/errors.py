"""
Error taxonomy shared by the note services and the web layer.

Services raise these; blueprints either catch ValidationError to flash a
message, or let them bubble up to the handlers registered in create_app().
"""

from __future__ import annotations


class TravelNotesError(Exception):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TravelNotesError):
    """A required field is missing/blank or a value is out of range."""

    status_code = 400


class NotFoundError(TravelNotesError):
    """
    The target does not exist, or does not belong to the caller for an
    ownership-scoped operation. Both cases look the same to the caller.
    """

    status_code = 404


class ForbiddenError(TravelNotesError):
    status_code = 403


class PersistenceError(TravelNotesError):
    """Storage failure inside a transaction; the transaction was rolled back."""

    status_code = 500
