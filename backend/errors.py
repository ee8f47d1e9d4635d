"""Error taxonomy shared by the repositories and the HTTP layer.

Each error carries the HTTP status it maps to; ``backend.main`` renders all of
them with the ``{"error": {"message": ...}}`` envelope.
"""

from __future__ import annotations


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    """A required field is missing or malformed."""

    status_code = 400


class NotFoundError(StoreError):
    """No row exists for the requested id."""

    status_code = 404


class ConflictError(StoreError):
    """A uniqueness constraint (e.g. truck license plate) was violated."""

    status_code = 409


class InternalError(StoreError):
    """The backing store failed unexpectedly."""

    status_code = 500


__all__ = ["StoreError", "ValidationError", "NotFoundError", "ConflictError", "InternalError"]
