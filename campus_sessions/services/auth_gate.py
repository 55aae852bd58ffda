"""
Request authentication against session records.

Answers "is this credential currently valid, and for whom". The cookie is
tried first; the ``Authorization: Bearer`` header is the fallback for
clients that do not keep cookies. Either may legitimately be absent.
"""

import logging
from typing import Iterable, Optional

from campus_sessions.core.exceptions import InsufficientRole, SessionNotFound
from campus_sessions.core.types.session import Principal, Role, TokenKind
from campus_sessions.core.utils.logging_config import log_security_event
from campus_sessions.db.models.session_record import SessionRecord
from campus_sessions.services.session_lifecycle import SessionLifecycleManager
from campus_sessions.services.token_service import TokenService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def principal_from_record(record: SessionRecord, via: str) -> Principal:
    return Principal(
        user_id=record.user_id,
        session_id=record.session_id,
        role=Role(record.role),
        expires_at=record.expires_at,
        last_activity=record.last_activity,
        full_name=record.full_name,
        school=record.school,
        faculty=record.faculty,
        department=record.department,
        level=record.level,
        upid=record.upid,
        is_verified=bool(record.is_verified),
        profile_photo=record.profile_photo,
        via=via,
    )


class AuthGate:
    """Resolves inbound credentials to a Principal through the lifecycle manager."""

    def __init__(self, manager: SessionLifecycleManager, tokens: TokenService):
        self.manager = manager
        self.tokens = tokens

    def authenticate(
        self,
        cookie_value: Optional[str] = None,
        authorization: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Principal:
        """
        Resolve the caller.

        Args:
            cookie_value: Value of the session cookie, if any
            authorization: Raw ``Authorization`` header, if any
            ip_address: Client address for the audit log

        Returns:
            Principal of a currently valid session

        Raises:
            SessionNotFound: No credential resolves to a valid record
            StoreUnavailable: The store could not be queried
        """
        if cookie_value:
            record = self.manager.find_by_token(cookie_value, TokenKind.SESSION_ID)
            if record is None:
                record = self.manager.find_by_token(cookie_value, TokenKind.SESSION_TOKEN)
            if record is not None:
                return principal_from_record(record, via="cookie")

        bearer = extract_bearer(authorization)
        if bearer:
            try:
                payload = self.tokens.verify(bearer)
            except SessionNotFound:
                self._log_failure("invalid bearer token", ip_address)
                raise
            record = self.manager.find_by_token(payload.session_token, TokenKind.SESSION_TOKEN)
            if record is not None and record.user_id == payload.user_id:
                return principal_from_record(record, via="bearer")
            if record is not None:
                self._log_failure("bearer principal does not own session", ip_address, payload.user_id)
            else:
                self._log_failure("bearer session not found", ip_address, payload.user_id)
            raise SessionNotFound("Session is not valid")

        if cookie_value:
            self._log_failure("session cookie not found", ip_address)
            raise SessionNotFound("Session is not valid")
        raise SessionNotFound("No session credential presented")

    @staticmethod
    def _log_failure(reason: str, ip_address: Optional[str], user_id: Optional[str] = None) -> None:
        log_security_event(
            "authentication_failure",
            f"Authentication failed: {reason}",
            level=logging.WARNING,
            user_id=user_id,
            ip_address=ip_address,
        )

    @staticmethod
    def require_role(principal: Principal, minimum: Role) -> Principal:
        """Pass when the principal's role ranks at or above ``minimum``."""
        if principal.has_role(Role(minimum)):
            return principal
        log_security_event(
            "authorization_denied",
            f"Role {principal.role.value} below required {Role(minimum).value}",
            level=logging.WARNING,
            user_id=principal.user_id,
        )
        raise InsufficientRole(f"Requires role {Role(minimum).value} or higher")

    @staticmethod
    def require_any_role(principal: Principal, roles: Iterable[Role]) -> Principal:
        allowed = {Role(role) for role in roles}
        if principal.role in allowed:
            return principal
        log_security_event(
            "authorization_denied",
            f"Role {principal.role.value} not in allowed set",
            level=logging.WARNING,
            user_id=principal.user_id,
        )
        raise InsufficientRole(
            f"Requires one of: {', '.join(sorted(role.value for role in allowed))}"
        )
