from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from campus_sessions.core.types.session import Gender, Role
from campus_sessions.db.base import Base


class SessionRecord(Base):
    """One login/refresh cycle of an authenticated user.

    Base provides: id, created_at, updated_at. A record is usable only while
    ``is_active`` and ``is_signed_in`` hold and ``expires_at`` is in the future.
    """

    session_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    # Not unique: racing upserts may briefly hold the same token until convergence
    session_token: Mapped[str] = mapped_column(String(512), index=True, nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    # Profile snapshot
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dob: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[Gender] = mapped_column(
        Enum(Gender, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    profile_photo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    school: Mapped[str] = mapped_column(String(255), nullable=False)
    faculty: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[str] = mapped_column(String(32), nullable=False)
    upid: Mapped[str] = mapped_column(String(128), nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Sensitive fields: ciphertext plus search hash, never plaintext
    email: Mapped[str] = mapped_column(Text, nullable=False)
    email_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    phone_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    reg_number: Mapped[str] = mapped_column(Text, nullable=False)
    reg_number_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    # Diagnostic metadata
    device_info: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    last_activity: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_signed_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_sessionrecord_user_flags", "user_id", "is_active", "is_signed_in"),
        Index("ix_sessionrecord_validity", "is_active", "is_signed_in", "expires_at"),
    )

    def is_valid(self, now: datetime) -> bool:
        return bool(self.is_active and self.is_signed_in and self.expires_at > now)

    def is_fresh(self, now: datetime, freshness_window: timedelta) -> bool:
        return self.is_valid(now) and now - self.last_activity < freshness_window

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SessionRecord(session_id={self.session_id!r}, user_id={self.user_id!r})>"
