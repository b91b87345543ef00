"""
frontend/errors.py
Error taxonomy shared by the auth provider, the store and the views.

Every failure is handled where the operation is started; views catch these,
log them and show a toast (or the not-found state for NotFoundError).
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all application errors."""


class AuthError(TrackerError):
    """Session fetch, refresh, sign-in or sign-out failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendError(TrackerError):
    """A store query or mutation failed (transport, HTTP status or SQL error)."""

    def __init__(self, message: str, status_code: Optional[int] = None, operation: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base


class NotFoundError(TrackerError):
    """The requested entity does not exist in the store."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
