"""
Test data factories for consistent test data generation

Profiles and login payloads shaped the way clients send them (camelCase).
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from campus_sessions.core.types.session import SessionProfile
from campus_sessions.core.utils.encryption import FieldCipher
from campus_sessions.db.models.session_record import SessionRecord


class ProfileFactory:
    """Factory for creating profile snapshots"""

    @staticmethod
    def create(**overrides: Any) -> Dict[str, Any]:
        profile = {
            "fullName": "Ada Okafor",
            "email": "ada.okafor@students.example.edu",
            "dob": "2002-04-17",
            "phone": "+2348012345678",
            "gender": "Female",
            "role": "student",
            "school": "School of Engineering",
            "faculty": "Engineering",
            "department": "Computer Engineering",
            "regNumber": "ENG/2020/00417",
            "level": "400",
            "upid": "UP-00417",
            "isVerified": True,
        }
        profile.update(overrides)
        return profile

    @staticmethod
    def create_admin(**overrides: Any) -> Dict[str, Any]:
        defaults = {
            "fullName": "Bola Adeyemi",
            "email": "bola.adeyemi@staff.example.edu",
            "regNumber": "STAFF/0001",
            "phone": "+2348099990001",
            "role": "admin",
        }
        defaults.update(overrides)
        return ProfileFactory.create(**defaults)


class SessionPayloadFactory:
    """Factory for login/refresh request bodies"""

    @staticmethod
    def new_token() -> str:
        return f"tok_{uuid.uuid4().hex}{uuid.uuid4().hex}"

    @staticmethod
    def create(
        user_id: str = "user-1",
        session_token: Optional[str] = None,
        profile: Optional[Dict[str, Any]] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        payload = {
            "userId": user_id,
            "sessionToken": session_token or SessionPayloadFactory.new_token(),
            "profile": profile if profile is not None else ProfileFactory.create(),
        }
        payload.update(extra)
        return payload


def build_record(cipher: FieldCipher, user_id: str, now: datetime, **overrides: Any) -> SessionRecord:
    """SessionRecord built directly, bypassing the lifecycle manager (for duplicates and expired rows)"""
    profile = SessionProfile.from_mapping(ProfileFactory.create())
    fields: Dict[str, Any] = profile.public_fields()
    for field, plaintext in profile.sensitive_values().items():
        fields[field.value], fields[f"{field.value}_hash"] = cipher.seal(plaintext)
    fields.update(
        session_id=uuid.uuid4().hex,
        user_id=user_id,
        session_token=SessionPayloadFactory.new_token(),
        device_info="pytest",
        ip_address="127.0.0.1",
        created_at=now,
        updated_at=now,
        last_activity=now,
        expires_at=now + timedelta(days=7),
        is_active=True,
        is_signed_in=True,
    )
    fields.update(overrides)
    return SessionRecord(**fields)
