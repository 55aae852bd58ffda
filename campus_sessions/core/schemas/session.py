"""Request and response schemas for the session endpoints."""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from campus_sessions.core.types.session import Role, SensitiveField
from campus_sessions.core.utils.time_helpers import isoformat_z

UtcDatetime = Annotated[datetime, PlainSerializer(isoformat_z, return_type=str)]

class CamelModel(BaseModel):
    """Base schema speaking camelCase on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class SessionUpsertRequest(CamelModel):
    """Schema for login/refresh.

    Identifiers and the profile stay loosely typed here so that missing
    fields are reported by the lifecycle manager in a single response.
    """

    user_id: Optional[str] = Field(None, description="Owning identity")
    profile: Optional[Dict[str, Any]] = Field(None, description="Profile snapshot")
    session_token: Optional[str] = Field(None, description="Opaque bearer secret issued at login")
    device_info: Optional[str] = Field(None, max_length=255, description="Client description")
    ip_address: Optional[str] = Field(None, max_length=64, description="Client address")

class SessionUpsertResponse(CamelModel):
    created: bool
    session_id: str
    expires_at: UtcDatetime
    access_token: str

class SessionStatusResponse(CamelModel):
    """Schema for status queries. Never carries ciphertext or hashes."""

    exists: bool
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    expires_at: Optional[UtcDatetime] = None
    last_activity: Optional[UtcDatetime] = None
    is_fresh: bool = False
    device_info: Optional[str] = None
    level: Optional[str] = None

class CurrentSessionResponse(CamelModel):
    """Schema for the authenticated caller's own session"""

    user_id: str
    session_id: str
    role: Role
    expires_at: UtcDatetime
    last_activity: UtcDatetime
    full_name: str
    school: str
    faculty: str
    department: str
    level: str
    upid: str
    is_verified: bool
    profile_photo: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    reg_number: Optional[str] = None
    authenticated_via: str

class SignOutRequest(CamelModel):
    all_sessions: bool = Field(False, description="Sign out every session of the user")

class SignOutResponse(CamelModel):
    signed_out: int

class SweepResponse(CamelModel):
    deleted: int

class SessionStatsResponse(CamelModel):
    active_sessions: int
    invalid_sessions: int
    active_users: int
    expiring_soon: int

class SessionListResponse(CamelModel):
    sessions: List[SessionStatusResponse]
    total: int

class SensitiveLookupRequest(CamelModel):
    field: SensitiveField = Field(..., description="email, phone or reg_number")
    value: str = Field(..., min_length=1, max_length=255)
