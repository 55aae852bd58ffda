"""
Error taxonomy for session lifecycle operations.

Every failure carries a distinguishable ``kind`` so the request layer can pick
the right status code. None of these may be turned into an anonymous session.
"""

from typing import Any, Dict, Iterable, Optional


class SessionError(Exception):
    """Base class for session lifecycle failures."""

    kind = "session_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or (self.__class__.__doc__ or self.kind).strip()
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.retryable:
            payload["retryable"] = True
        payload.update(self.details)
        return payload


class SessionValidationError(SessionError):
    """Missing or malformed profile fields."""

    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str = "", missing_fields: Optional[Iterable[str]] = None, **details: Any):
        self.missing_fields = list(missing_fields or [])
        if self.missing_fields:
            details.setdefault("missingFields", self.missing_fields)
        super().__init__(message, **details)


class CipherError(SessionError):
    """Sensitive field could not be encrypted or decrypted."""

    kind = "cipher_error"
    status_code = 500


class StoreUnavailable(SessionError):
    """Session store unreachable or timed out."""

    kind = "store_unavailable"
    status_code = 503
    retryable = True


class SessionNotFound(SessionError):
    """No valid session for the presented identifier."""

    kind = "not_found"
    status_code = 404


class InsufficientRole(SessionError):
    """Principal's role does not satisfy the required role."""

    kind = "insufficient_role"
    status_code = 403


class AuthenticationRequired(SessionNotFound):
    """No valid session behind the presented credential."""

    kind = "not_authenticated"
    status_code = 401


class SessionOwnershipError(SessionError):
    """Caller may not create or refresh another user's session."""

    kind = "forbidden"
    status_code = 403
