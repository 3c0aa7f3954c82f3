"""
API error hierarchy.

Handlers raise these and the app renders them as ``{"message": ...}`` with
the matching status code. Messages are safe to show to callers.
"""

from __future__ import annotations

from typing import Dict, Optional


class ApiError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None
    ):
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message}


class BadRequestError(ApiError):
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(ApiError):
    status_code = 401
    default_message = "Unauthorized"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ApiError):
    status_code = 409
    default_message = "Conflict"


class InternalError(ApiError):
    status_code = 500
