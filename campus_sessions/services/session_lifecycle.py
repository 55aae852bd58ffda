"""
Session lifecycle management.

Resolves, refreshes, creates, deduplicates and expires session records for
request handlers that share nothing but the session store. Concurrent upserts
for one user are not prevented; each upsert ends with a convergence pass that
keeps the newest record (by created_at, then session_id) and deletes the rest.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

from campus_sessions.core.config import settings
from campus_sessions.core.exceptions import SessionNotFound, SessionValidationError, StoreUnavailable
from campus_sessions.core.types.session import (
    SensitiveField,
    SessionProfile,
    SessionStats,
    SessionStatus,
    TokenKind,
    UpsertResult,
)
from campus_sessions.core.utils.encryption import FieldCipher
from campus_sessions.core.utils.logging_config import log_security_event
from campus_sessions.core.utils.time_helpers import Clock, utcnow
from campus_sessions.db.models.session_record import SessionRecord
from campus_sessions.services.session_store import SessionFilter, SessionStore

logger = logging.getLogger(__name__)

# Window used by stats() for "expiring soon"
EXPIRING_SOON_WINDOW = timedelta(hours=24)


class SessionLifecycleManager:
    """Owns every mutation of session records."""

    def __init__(
        self,
        store: SessionStore,
        cipher: FieldCipher,
        clock: Clock = utcnow,
        freshness_window: Optional[timedelta] = None,
        renewal_window: Optional[timedelta] = None,
    ):
        self.store = store
        self.cipher = cipher
        self.clock = clock
        self.freshness_window = freshness_window or timedelta(hours=settings.SESSION_FRESHNESS_HOURS)
        self.renewal_window = renewal_window or timedelta(hours=settings.SESSION_RENEWAL_HOURS)

    # ------------------------------------------------------------------
    # Expiry

    def sweep_expired(self) -> int:
        """Delete every expired, inactive or signed-out record, for all users."""
        now = self.clock()
        deleted = self.store.delete_many(SessionFilter(invalid_at=now))
        if deleted:
            log_security_event(
                "session_swept",
                f"Swept {deleted} expired or signed-out session records",
                extra_data={"deleted_count": deleted},
            )
        return deleted

    # ------------------------------------------------------------------
    # Reads

    def resolve_fresh(self, user_id: str) -> Optional[SessionRecord]:
        """Most recent fresh record for the user, or None. Never mutates."""
        now = self.clock()
        for record in self.store.find_all_by_user(user_id):
            if record.is_fresh(now, self.freshness_window):
                return record
        return None

    def find_by_token(self, value: str, key_kind: TokenKind) -> Optional[SessionRecord]:
        if not value:
            return None
        return self.store.find_by_token(value, key_kind, self.clock())

    def status(self, user_id: Optional[str] = None, session_id: Optional[str] = None) -> SessionStatus:
        """
        Report whether a valid session exists for a user or session id.

        Raises:
            SessionValidationError: When neither identifier is given.
        """
        if not user_id and not session_id:
            raise SessionValidationError("userId or sessionId is required", missing_fields=["userId", "sessionId"])

        now = self.clock()
        if session_id:
            record = self.store.find_by_token(session_id, TokenKind.SESSION_ID, now)
            if record is not None and user_id and record.user_id != user_id:
                record = None
        else:
            records = self.store.find_many(SessionFilter(user_id=user_id, valid_at=now), limit=1)
            record = records[0] if records else None

        if record is None:
            return SessionStatus(exists=False, user_id=user_id, session_id=session_id)
        return self._status_of(record)

    # ------------------------------------------------------------------
    # Login / refresh

    def cleanup(self, user_id: str, exclude: Optional[str] = None) -> int:
        """Delete every record of the user except ``exclude``."""
        criteria = SessionFilter(user_id=user_id, exclude_session_ids=(exclude,) if exclude else ())
        deleted = self.store.delete_many(criteria)
        if deleted:
            logger.info(
                "Removed superseded session records",
                extra={"user_id": user_id, "deleted_count": deleted},
            )
        return deleted

    def upsert(
        self,
        user_id: str,
        profile: Any,
        session_token: str,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UpsertResult:
        """
        Create or refresh the user's session record.

        Args:
            user_id: Owning identity
            profile: SessionProfile or mapping with camelCase/snake_case keys
            session_token: Opaque bearer secret issued at login
            device_info: Diagnostic client description
            ip_address: Diagnostic client address

        Returns:
            UpsertResult with ``created`` False when a fresh record was refreshed

        Raises:
            SessionValidationError: Missing identifiers or profile fields
            CipherError: A sensitive field could not be encrypted; nothing written
            StoreUnavailable: The store failed; the session was not established
        """
        missing = [name for name, value in (("userId", user_id), ("sessionToken", session_token)) if not value]
        if missing:
            raise SessionValidationError(
                f"Missing required fields: {', '.join(missing)}", missing_fields=missing
            )
        if not isinstance(profile, SessionProfile):
            profile = SessionProfile.from_mapping(profile)

        # Encrypt before touching the store so a cipher failure leaves it as it was
        sealed = self._seal_sensitive(profile)

        self.sweep_expired()
        candidate = self.resolve_fresh(user_id)
        self.cleanup(user_id, exclude=candidate.session_id if candidate else None)

        now = self.clock()
        expires_at = now + self.renewal_window
        result: Optional[UpsertResult] = None

        if candidate is not None:
            patch = self._profile_patch(profile, sealed)
            patch.update(
                session_token=session_token,
                last_activity=now,
                expires_at=expires_at,
                updated_at=now,
                device_info=device_info or candidate.device_info,
                ip_address=ip_address or candidate.ip_address,
            )
            if self.store.update_by_key(candidate.session_id, patch):
                result = UpsertResult(created=False, session_id=candidate.session_id, expires_at=expires_at)
                log_security_event(
                    "session_refreshed",
                    "Session refreshed",
                    user_id=user_id,
                    ip_address=ip_address,
                    extra_data={"session_ref": candidate.session_id[:8]},
                )
            else:
                # Swept by a concurrent request between resolve and update
                logger.warning("Fresh session vanished before refresh, creating a new one",
                               extra={"user_id": user_id})

        if result is None:
            record = SessionRecord(
                session_id=uuid.uuid4().hex,
                user_id=user_id,
                session_token=session_token,
                device_info=device_info or "Unknown",
                ip_address=ip_address or "unknown",
                created_at=now,
                updated_at=now,
                last_activity=now,
                expires_at=expires_at,
                is_active=True,
                is_signed_in=True,
                **self._profile_patch(profile, sealed),
            )
            self.store.insert(record)
            result = UpsertResult(created=True, session_id=record.session_id, expires_at=expires_at)
            log_security_event(
                "session_created",
                "Session created",
                user_id=user_id,
                ip_address=ip_address,
                extra_data={"session_ref": record.session_id[:8]},
            )

        self._converge_quietly(user_id)
        return self._confirm_survivor(user_id, result)

    def _seal_sensitive(self, profile: SessionProfile) -> Dict[str, str]:
        sealed: Dict[str, str] = {}
        for field, plaintext in profile.sensitive_values().items():
            ciphertext, search_hash = self.cipher.seal(plaintext)
            sealed[field.value] = ciphertext
            sealed[f"{field.value}_hash"] = search_hash
        return sealed

    @staticmethod
    def _profile_patch(profile: SessionProfile, sealed: Mapping[str, str]) -> Dict[str, Any]:
        patch = profile.public_fields()
        patch.update(sealed)
        return patch

    # ------------------------------------------------------------------
    # Convergence

    def converge(self, user_id: str) -> int:
        """Keep the newest record of the user and delete the others."""
        if self.store.count(SessionFilter(user_id=user_id)) <= 1:
            return 0

        records = self.store.find_all_by_user(user_id)
        if len(records) <= 1:
            return 0

        survivor, losers = records[0], records[1:]
        deleted = self.store.delete_many(
            SessionFilter(user_id=user_id, session_ids=[record.session_id for record in losers])
        )
        log_security_event(
            "session_converged",
            f"Converged duplicate session records, removed {deleted}",
            level=logging.WARNING,
            user_id=user_id,
            extra_data={"session_ref": survivor.session_id[:8], "deleted_count": deleted},
        )
        return deleted

    def _confirm_survivor(self, user_id: str, result: UpsertResult) -> UpsertResult:
        """Name the record that survived convergence when this upsert's record lost."""
        try:
            if self.store.count(SessionFilter(session_id=result.session_id)):
                return result
            survivor = self.resolve_fresh(user_id)
        except StoreUnavailable:
            logger.warning("Could not confirm session after convergence",
                           extra={"user_id": user_id}, exc_info=True)
            return result

        if survivor is None:
            logger.warning("Session removed by convergence and no fresh record remains",
                           extra={"user_id": user_id, "session_ref": result.session_id[:8]})
            return result

        log_security_event(
            "session_superseded",
            "Session superseded by a concurrent login",
            level=logging.WARNING,
            user_id=user_id,
            extra_data={"session_ref": result.session_id[:8], "survivor_ref": survivor.session_id[:8]},
        )
        return UpsertResult(created=result.created, session_id=survivor.session_id, expires_at=survivor.expires_at)

    def _converge_quietly(self, user_id: str) -> None:
        # The record just written is already valid; a missed pass is retried by the next upsert
        try:
            self.converge(user_id)
        except StoreUnavailable:
            logger.warning("Convergence pass failed; duplicates remain until next upsert",
                           extra={"user_id": user_id}, exc_info=True)

    # ------------------------------------------------------------------
    # Sign-out

    def sign_out(
        self,
        user_id: str,
        all_sessions: bool = False,
        session_id: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> int:
        """
        Delete the caller's session, or every session of the user.

        Raises:
            SessionValidationError: Single sign-out without a session identifier
            SessionNotFound: The identified session does not belong to the user
        """
        if not user_id:
            raise SessionValidationError("userId is required", missing_fields=["userId"])

        if all_sessions:
            deleted = self.store.delete_many(SessionFilter(user_id=user_id))
        else:
            if not session_id and not session_token:
                raise SessionValidationError(
                    "sessionId or sessionToken is required", missing_fields=["sessionId", "sessionToken"]
                )
            deleted = self.store.delete_many(
                SessionFilter(user_id=user_id, session_id=session_id, session_token=session_token)
            )
            if not deleted:
                raise SessionNotFound("No session to sign out")

        log_security_event(
            "session_signed_out",
            "User signed out",
            user_id=user_id,
            extra_data={"all_sessions": all_sessions, "deleted_count": deleted},
        )
        return deleted

    # ------------------------------------------------------------------
    # Administrative reads

    def stats(self) -> SessionStats:
        now = self.clock()
        valid = SessionFilter(valid_at=now)
        return SessionStats(
            active_sessions=self.store.count(valid),
            invalid_sessions=self.store.count(SessionFilter(invalid_at=now)),
            active_users=self.store.count_distinct_users(valid),
            expiring_soon=self.store.count(
                SessionFilter(valid_at=now, expires_before=now + EXPIRING_SOON_WINDOW)
            ),
        )

    def list_user_sessions(self, user_id: str) -> List[SessionStatus]:
        now = self.clock()
        records = self.store.find_many(SessionFilter(user_id=user_id, valid_at=now))
        return [self._status_of(record) for record in records]

    def list_inactive_sessions(self, inactive_minutes: int = 30, limit: int = 500) -> List[SessionStatus]:
        if inactive_minutes <= 0:
            raise SessionValidationError("inactive_minutes must be positive")
        now = self.clock()
        records = self.store.find_many(
            SessionFilter(valid_at=now, inactive_since=now - timedelta(minutes=inactive_minutes)),
            limit=limit,
        )
        return [self._status_of(record) for record in records]

    def find_by_sensitive(self, field: SensitiveField, value: str) -> List[SessionStatus]:
        """Locate valid records by equality on an encrypted field's search hash."""
        if not isinstance(value, str) or not value.strip():
            raise SessionValidationError("Lookup value is required", missing_fields=["value"])
        search_hash = self.cipher.hash(value)
        criteria = SessionFilter(valid_at=self.clock(), **{f"{SensitiveField(field).value}_hash": search_hash})
        return [self._status_of(record) for record in self.store.find_many(criteria)]

    def _status_of(self, record: SessionRecord) -> SessionStatus:
        return SessionStatus(
            exists=True,
            session_id=record.session_id,
            user_id=record.user_id,
            expires_at=record.expires_at,
            last_activity=record.last_activity,
            is_fresh=record.is_fresh(self.clock(), self.freshness_window),
            device_info=record.device_info,
            level=record.level,
        )
