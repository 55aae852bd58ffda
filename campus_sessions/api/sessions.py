"""
Session API endpoints with rate limiting.

Login/refresh, status queries, the caller's own session and sign-out. The
session cookie carries the record's ``sessionId``; cookie-less clients use the
returned access token as ``Authorization: Bearer``. Logins arrive from the
sign-in service carrying ``X-Service-Key``; users may only refresh their own
session.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from campus_sessions.api.deps import (
    authorize_session_upload,
    current_principal,
    get_cipher,
    get_client_ip,
    get_device_info,
    get_lifecycle_manager,
    get_token_service,
)
from campus_sessions.core.config import settings
from campus_sessions.core.exceptions import AuthenticationRequired, SessionOwnershipError
from campus_sessions.core.limiter import limiter
from campus_sessions.core.schemas.session import (
    CurrentSessionResponse,
    SessionStatusResponse,
    SessionUpsertRequest,
    SessionUpsertResponse,
    SignOutRequest,
    SignOutResponse,
)
from campus_sessions.core.types.session import Principal, Role, TokenKind
from campus_sessions.core.utils.encryption import FieldCipher
from campus_sessions.core.utils.logging_config import log_security_event
from campus_sessions.services.session_lifecycle import SessionLifecycleManager
from campus_sessions.services.token_service import TokenService

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_session_cookie(response: Response, session_id: str, max_age: int) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        max_age=max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


@router.post("", response_model=SessionUpsertResponse)
@limiter.limit(settings.rate_limit_session_endpoints)
def upsert_session(
    request: Request,
    response: Response,
    body: SessionUpsertRequest,
    caller: Optional[Principal] = Depends(authorize_session_upload),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Create or refresh a session.

    The sign-in service uploads sessions with its service key. A user without
    the key may only refresh their own session, and keeps the role recorded on
    it whatever the body asserts.

    Returns 201 when a new record was created and 200 when a fresh record was
    refreshed in place. Sets the session cookie either way.

    Args:
        request: FastAPI request object (required for rate limiting)
        response: Response used to set status and cookie
        body: Login/refresh payload
        caller: Refreshing principal, or None for the sign-in service

    Raises:
        AuthenticationRequired: No service key and no valid session (401)
        SessionOwnershipError: Refresh of another user's session (403)
        SessionValidationError: Missing identifiers or profile fields (400)
        CipherError: Sensitive fields could not be encrypted (500)
        StoreUnavailable: Store failure (503, retryable)
    """
    profile = body.profile
    if caller is not None:
        if body.user_id != caller.user_id:
            log_security_event(
                "authorization_denied",
                "Refresh of another user's session refused",
                level=logging.WARNING,
                user_id=caller.user_id,
                ip_address=get_client_ip(request),
            )
            raise SessionOwnershipError("Cannot refresh another user's session")
        if profile is not None:
            profile = {**profile, "role": caller.role.value}

    result = manager.upsert(
        user_id=body.user_id,
        profile=profile,
        session_token=body.session_token,
        device_info=body.device_info or get_device_info(request),
        ip_address=body.ip_address or get_client_ip(request),
    )

    access_token = tokens.issue(body.user_id, body.session_token, Role(profile["role"]))

    response.status_code = 201 if result.created else 200
    _set_session_cookie(response, result.session_id, int(manager.renewal_window.total_seconds()))

    return SessionUpsertResponse(
        created=result.created,
        session_id=result.session_id,
        expires_at=result.expires_at,
        access_token=access_token,
    )


@router.get("/status", response_model=SessionStatusResponse)
@limiter.limit(settings.rate_limit_session_endpoints)
def session_status(
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Report whether a valid session exists for a user or session id.

    Responds 404 with ``exists: false`` when there is none.
    """
    status = SessionStatusResponse(**asdict(manager.status(user_id=user_id, session_id=session_id)))
    if not status.exists:
        return JSONResponse(status_code=404, content=status.model_dump(mode="json", by_alias=True))
    return status


@router.get("/me", response_model=CurrentSessionResponse)
@limiter.limit(settings.rate_limit_session_endpoints)
def current_session(
    request: Request,
    principal: Principal = Depends(current_principal),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
    cipher: FieldCipher = Depends(get_cipher),
):
    """The authenticated caller's session with their own contact fields decrypted."""
    record = manager.find_by_token(principal.session_id, TokenKind.SESSION_ID)
    if record is None:
        raise AuthenticationRequired("Session is no longer valid")

    return CurrentSessionResponse(
        user_id=principal.user_id,
        session_id=principal.session_id,
        role=principal.role,
        expires_at=principal.expires_at,
        last_activity=principal.last_activity,
        full_name=principal.full_name,
        school=principal.school,
        faculty=principal.faculty,
        department=principal.department,
        level=principal.level,
        upid=principal.upid,
        is_verified=principal.is_verified,
        profile_photo=principal.profile_photo,
        email=cipher.decrypt(record.email),
        phone=cipher.decrypt(record.phone),
        reg_number=cipher.decrypt(record.reg_number),
        authenticated_via=principal.via,
    )


@router.post("/signout", response_model=SignOutResponse)
@limiter.limit(settings.rate_limit_session_endpoints)
def sign_out(
    request: Request,
    response: Response,
    body: Optional[SignOutRequest] = None,
    principal: Principal = Depends(current_principal),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Delete the caller's session, or all of the caller's sessions, and clear the cookie."""
    all_sessions = body.all_sessions if body else False
    deleted = manager.sign_out(
        principal.user_id,
        all_sessions=all_sessions,
        session_id=principal.session_id,
    )
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return SignOutResponse(signed_out=deleted)
