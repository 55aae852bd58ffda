"""Type definitions shared by the session lifecycle components"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from campus_sessions.core.exceptions import SessionValidationError


class Role(str, Enum):
    STUDENT = "student"
    CONTRIBUTOR = "contributor"
    MOD = "mod"
    DEVSUPPORT = "devsupport"
    ADMIN = "admin"


# Higher rank satisfies any lower requirement
ROLE_HIERARCHY: Dict[Role, int] = {
    Role.STUDENT: 1,
    Role.CONTRIBUTOR: 2,
    Role.MOD: 3,
    Role.DEVSUPPORT: 4,
    Role.ADMIN: 5,
}


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class TokenKind(str, Enum):
    """Which indexed key a lookup value refers to."""

    SESSION_ID = "session_id"
    SESSION_TOKEN = "session_token"


class SensitiveField(str, Enum):
    """Profile values stored only as ciphertext plus search hash."""

    EMAIL = "email"
    PHONE = "phone"
    REG_NUMBER = "reg_number"


# camelCase wire name -> attribute name
PROFILE_FIELDS: Dict[str, str] = {
    "fullName": "full_name",
    "email": "email",
    "dob": "dob",
    "phone": "phone",
    "gender": "gender",
    "role": "role",
    "school": "school",
    "faculty": "faculty",
    "department": "department",
    "regNumber": "reg_number",
    "level": "level",
    "upid": "upid",
    "isVerified": "is_verified",
}
OPTIONAL_PROFILE_FIELDS: Dict[str, str] = {"profilePhoto": "profile_photo"}


def _lookup(data: Mapping[str, Any], wire_name: str, attr_name: str) -> Any:
    if wire_name in data:
        return data[wire_name]
    return data.get(attr_name)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_dob(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return date.fromisoformat(text[:10])
    raise ValueError(f"unsupported date value {value!r}")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"unsupported boolean value {value!r}")


@dataclass(frozen=True)
class SessionProfile:
    """Validated profile snapshot presented on login or refresh."""

    full_name: str
    email: str
    dob: date
    phone: str
    gender: Gender
    role: Role
    school: str
    faculty: str
    department: str
    reg_number: str
    level: str
    upid: str
    is_verified: bool
    profile_photo: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "SessionProfile":
        """
        Build a profile from camelCase or snake_case keys.

        Raises:
            SessionValidationError: When any required field is absent or malformed.
        """
        if data is None:
            raise SessionValidationError("Profile is required", missing_fields=list(PROFILE_FIELDS))

        missing = [
            wire for wire, attr in PROFILE_FIELDS.items() if _is_missing(_lookup(data, wire, attr))
        ]
        if missing:
            raise SessionValidationError(
                f"Missing required profile fields: {', '.join(missing)}", missing_fields=missing
            )

        values = {attr: _lookup(data, wire, attr) for wire, attr in PROFILE_FIELDS.items()}
        photo = _lookup(data, "profilePhoto", "profile_photo")

        invalid: List[str] = []
        try:
            values["dob"] = _parse_dob(values["dob"])
        except ValueError:
            invalid.append("dob")
        try:
            values["gender"] = Gender(values["gender"])
        except ValueError:
            invalid.append("gender")
        try:
            values["role"] = Role(values["role"])
        except ValueError:
            invalid.append("role")
        try:
            values["is_verified"] = _parse_bool(values["is_verified"])
        except ValueError:
            invalid.append("isVerified")

        for attr in ("full_name", "email", "phone", "school", "faculty", "department",
                     "reg_number", "level", "upid"):
            if not isinstance(values[attr], str):
                invalid.append(next(w for w, a in PROFILE_FIELDS.items() if a == attr))
            else:
                values[attr] = values[attr].strip()

        if photo is not None and not isinstance(photo, str):
            invalid.append("profilePhoto")

        if invalid:
            raise SessionValidationError(
                f"Malformed profile fields: {', '.join(invalid)}", invalidFields=invalid
            )

        return cls(profile_photo=photo or None, **values)

    def sensitive_values(self) -> Dict[SensitiveField, str]:
        return {
            SensitiveField.EMAIL: self.email,
            SensitiveField.PHONE: self.phone,
            SensitiveField.REG_NUMBER: self.reg_number,
        }

    def public_fields(self) -> Dict[str, Any]:
        """Profile attributes persisted as-is on the record."""
        data = asdict(self)
        for sensitive in SensitiveField:
            data.pop(sensitive.value)
        return data


@dataclass(frozen=True)
class UpsertResult:
    created: bool
    session_id: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionStatus:
    """What a status query may reveal: no ciphertext, no hashes."""

    exists: bool
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    is_fresh: bool = False
    device_info: Optional[str] = None
    level: Optional[str] = None


@dataclass(frozen=True)
class SessionStats:
    active_sessions: int
    invalid_sessions: int
    active_users: int
    expiring_soon: int


@dataclass(frozen=True)
class Principal:
    """Authenticated identity resolved from a valid session record."""

    user_id: str
    session_id: str
    role: Role
    expires_at: datetime
    last_activity: datetime
    full_name: str
    school: str
    faculty: str
    department: str
    level: str
    upid: str
    is_verified: bool
    profile_photo: Optional[str] = None
    via: str = field(default="cookie")

    def has_role(self, minimum: Role) -> bool:
        return ROLE_HIERARCHY[self.role] >= ROLE_HIERARCHY[minimum]
