"""
Domain error taxonomy.

Every error raised by the booking core derives from HotelError and carries the
HTTP status it maps to; main.py converts them into JSON responses at the
request boundary.
"""
from typing import Any, Dict, List, Optional


class HotelError(Exception):
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(HotelError):
    """Malformed or semantically invalid input"""
    status_code = 400

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class AuthenticationError(HotelError):
    status_code = 401


class PermissionDeniedError(HotelError):
    """Authenticated, but the role or branch scope does not allow the action"""
    status_code = 403


class NotFoundError(HotelError):
    status_code = 404


class ConflictError(HotelError):
    """Overlapping booking detected at write time"""
    status_code = 409


class InvalidTransitionError(ConflictError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested
