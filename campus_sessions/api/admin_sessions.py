"""
Administrative session endpoints.

Global sweep, statistics, per-user listing and forced sign-out, inactive
session listing and lookup by an encrypted profile field. Support staff and
admins may read; only admins may sign users out or search by contact data.
"""

import logging
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, Query, Request

from campus_sessions.api.deps import get_lifecycle_manager, require_any_role, require_minimum_role
from campus_sessions.core.config import settings
from campus_sessions.core.limiter import limiter
from campus_sessions.core.schemas.session import (
    SensitiveLookupRequest,
    SessionListResponse,
    SessionStatsResponse,
    SessionStatusResponse,
    SignOutResponse,
    SweepResponse,
)
from campus_sessions.core.types.session import Principal, Role, SessionStatus
from campus_sessions.core.utils.logging_config import log_security_event
from campus_sessions.services.session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter()

support_staff = require_minimum_role(Role.DEVSUPPORT)
admin_only = require_any_role([Role.ADMIN])


def _listing(statuses: List[SessionStatus]) -> SessionListResponse:
    return SessionListResponse(
        sessions=[SessionStatusResponse(**asdict(status)) for status in statuses],
        total=len(statuses),
    )


@router.post("/sweep", response_model=SweepResponse)
@limiter.limit(settings.rate_limit_admin_endpoints)
def sweep_sessions(
    request: Request,
    principal: Principal = Depends(support_staff),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Delete every expired, inactive or signed-out record."""
    deleted = manager.sweep_expired()
    logger.info("Manual sweep requested", extra={"user_id": principal.user_id, "deleted_count": deleted})
    return SweepResponse(deleted=deleted)


@router.get("/stats", response_model=SessionStatsResponse)
@limiter.limit(settings.rate_limit_admin_endpoints)
def session_stats(
    request: Request,
    principal: Principal = Depends(support_staff),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    return SessionStatsResponse(**asdict(manager.stats()))


@router.get("/users/{user_id}", response_model=SessionListResponse)
@limiter.limit(settings.rate_limit_admin_endpoints)
def user_sessions(
    request: Request,
    user_id: str,
    principal: Principal = Depends(support_staff),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    return _listing(manager.list_user_sessions(user_id))


@router.get("/inactive", response_model=SessionListResponse)
@limiter.limit(settings.rate_limit_admin_endpoints)
def inactive_sessions(
    request: Request,
    minutes: int = Query(30, ge=1, le=60 * 24 * 7),
    principal: Principal = Depends(support_staff),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Valid sessions with no activity in the last ``minutes``."""
    return _listing(manager.list_inactive_sessions(inactive_minutes=minutes))


@router.post("/users/{user_id}/signout", response_model=SignOutResponse)
@limiter.limit(settings.rate_limit_admin_endpoints)
def force_sign_out(
    request: Request,
    user_id: str,
    principal: Principal = Depends(admin_only),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Sign a user out of every session."""
    deleted = manager.sign_out(user_id, all_sessions=True)
    log_security_event(
        "session_forced_signout",
        "Administrator signed user out of all sessions",
        level=logging.WARNING,
        user_id=user_id,
        extra_data={"actor_id": principal.user_id, "deleted_count": deleted},
    )
    return SignOutResponse(signed_out=deleted)


@router.post("/lookup", response_model=SessionListResponse)
@limiter.limit(settings.rate_limit_admin_endpoints)
def lookup_sessions(
    request: Request,
    body: SensitiveLookupRequest,
    principal: Principal = Depends(admin_only),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Find valid sessions by e-mail, phone or registration number."""
    logger.info("Sensitive field lookup", extra={"user_id": principal.user_id, "lookup_field": body.field.value})
    return _listing(manager.find_by_sensitive(body.field, body.value))
