"""
FastAPI dependencies for the session endpoints.

Handlers share nothing but the session store; every dependency here is either
stateless or a process-wide singleton built from settings.
"""

import hmac
import logging
from functools import lru_cache
from typing import Callable, Iterable, Optional

from fastapi import Depends, Request

from campus_sessions.core.config import settings
from campus_sessions.core.exceptions import AuthenticationRequired, SessionNotFound
from campus_sessions.core.types.session import Principal, Role
from campus_sessions.core.utils.encryption import FieldCipher, get_field_cipher
from campus_sessions.core.utils.logging_config import log_security_event
from campus_sessions.core.utils.time_helpers import Clock, utcnow
from campus_sessions.db.session import SessionLocal
from campus_sessions.services.auth_gate import AuthGate
from campus_sessions.services.session_lifecycle import SessionLifecycleManager
from campus_sessions.services.session_store import SessionStore, SqlSessionStore
from campus_sessions.services.token_service import TokenService

SERVICE_KEY_HEADER = "X-Service-Key"


@lru_cache()
def get_session_store() -> SessionStore:
    return SqlSessionStore(SessionLocal)


def get_cipher() -> FieldCipher:
    return get_field_cipher()


def get_clock() -> Clock:
    return utcnow


@lru_cache()
def get_token_service() -> TokenService:
    return TokenService()


def get_lifecycle_manager(
    store: SessionStore = Depends(get_session_store),
    cipher: FieldCipher = Depends(get_cipher),
    clock: Clock = Depends(get_clock),
) -> SessionLifecycleManager:
    return SessionLifecycleManager(store=store, cipher=cipher, clock=clock)


def get_auth_gate(
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
    tokens: TokenService = Depends(get_token_service),
) -> AuthGate:
    return AuthGate(manager, tokens)


def get_client_ip(request: Request) -> str:
    """Client address, honouring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_device_info(request: Request) -> str:
    user_agent = request.headers.get("user-agent", "").strip()
    return user_agent[:255] if user_agent else "Unknown"


def current_principal(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
) -> Principal:
    """
    Resolve the caller from the session cookie or the bearer header.

    Raises:
        AuthenticationRequired: No valid session (401)
        StoreUnavailable: The store could not answer (503, never 401)
    """
    try:
        return gate.authenticate(
            cookie_value=request.cookies.get(settings.SESSION_COOKIE_NAME),
            authorization=request.headers.get("authorization"),
            ip_address=get_client_ip(request),
        )
    except SessionNotFound as e:
        raise AuthenticationRequired(e.message) from e


def authorize_session_upload(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
) -> Optional[Principal]:
    """
    Establish who may create or refresh a session.

    The sign-in service presents the shared service key and may upload a
    session for any user it has authenticated. Without the key the caller
    must already hold a valid session and may only refresh their own.

    Returns:
        None for the sign-in service, otherwise the refreshing principal

    Raises:
        AuthenticationRequired: Wrong service key, or no valid session (401)
    """
    presented = request.headers.get(SERVICE_KEY_HEADER)
    if presented is None:
        return current_principal(request, gate)

    expected = settings.SERVICE_API_KEY
    if expected and hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        return None

    log_security_event(
        "authentication_failure",
        "Rejected service credential on session upload",
        level=logging.WARNING,
        ip_address=get_client_ip(request),
    )
    raise AuthenticationRequired("Invalid service credential")


def require_minimum_role(minimum: Role) -> Callable[..., Principal]:
    """Dependency factory: principal must rank at or above ``minimum``."""

    def dependency(principal: Principal = Depends(current_principal)) -> Principal:
        return AuthGate.require_role(principal, minimum)

    return dependency


def require_any_role(roles: Iterable[Role]) -> Callable[..., Principal]:
    allowed = tuple(roles)

    def dependency(principal: Principal = Depends(current_principal)) -> Principal:
        return AuthGate.require_any_role(principal, allowed)

    return dependency
