"""Persistence for session records.

The lifecycle manager consumes the ``SessionStore`` protocol; ``SqlSessionStore``
implements it on SQLAlchemy. Each operation is its own unit of work and is
atomic per row; nothing here spans documents in a transaction.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional, Protocol, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from campus_sessions.core.exceptions import StoreUnavailable
from campus_sessions.core.types.session import TokenKind
from campus_sessions.db.models.session_record import SessionRecord

logger = logging.getLogger(__name__)

# Columns a patch may never touch
_IMMUTABLE_COLUMNS = {"id", "session_id", "user_id", "created_at"}


@dataclass(frozen=True)
class SessionFilter:
    """Conjunction of record predicates; unset fields do not constrain."""

    user_id: Optional[str] = None
    session_id: Optional[str] = None
    session_token: Optional[str] = None
    session_ids: Optional[Sequence[str]] = None
    exclude_session_ids: Sequence[str] = ()
    # Only records valid at this instant
    valid_at: Optional[datetime] = None
    # Only records expired, inactive or signed out at this instant
    invalid_at: Optional[datetime] = None
    expires_before: Optional[datetime] = None
    inactive_since: Optional[datetime] = None
    email_hash: Optional[str] = None
    phone_hash: Optional[str] = None
    reg_number_hash: Optional[str] = None

    def clauses(self) -> List[Any]:
        model = SessionRecord
        clauses: List[Any] = []
        if self.user_id is not None:
            clauses.append(model.user_id == self.user_id)
        if self.session_id is not None:
            clauses.append(model.session_id == self.session_id)
        if self.session_token is not None:
            clauses.append(model.session_token == self.session_token)
        if self.session_ids is not None:
            clauses.append(model.session_id.in_(list(self.session_ids)))
        if self.exclude_session_ids:
            clauses.append(model.session_id.not_in(list(self.exclude_session_ids)))
        if self.valid_at is not None:
            clauses.append(valid_clause(self.valid_at))
        if self.invalid_at is not None:
            clauses.append(
                or_(
                    model.expires_at <= self.invalid_at,
                    model.is_active.is_(False),
                    model.is_signed_in.is_(False),
                )
            )
        if self.expires_before is not None:
            clauses.append(model.expires_at < self.expires_before)
        if self.inactive_since is not None:
            clauses.append(model.last_activity < self.inactive_since)
        if self.email_hash is not None:
            clauses.append(model.email_hash == self.email_hash)
        if self.phone_hash is not None:
            clauses.append(model.phone_hash == self.phone_hash)
        if self.reg_number_hash is not None:
            clauses.append(model.reg_number_hash == self.reg_number_hash)
        return clauses

    def is_unbounded(self) -> bool:
        return not self.clauses()


def valid_clause(now: datetime) -> Any:
    return and_(
        SessionRecord.is_active.is_(True),
        SessionRecord.is_signed_in.is_(True),
        SessionRecord.expires_at > now,
    )


NEWEST_FIRST = (SessionRecord.created_at.desc(), SessionRecord.session_id.desc())


class SessionStore(Protocol):
    """Operations the lifecycle manager needs from persistence."""

    def find_by_token(self, value: str, key_kind: TokenKind, now: datetime) -> Optional[SessionRecord]: ...

    def find_all_by_user(self, user_id: str) -> List[SessionRecord]: ...

    def find_many(self, criteria: SessionFilter, limit: Optional[int] = None) -> List[SessionRecord]: ...

    def insert(self, record: SessionRecord) -> SessionRecord: ...

    def update_by_key(self, session_id: str, patch: Dict[str, Any]) -> int: ...

    def delete_many(self, criteria: SessionFilter) -> int: ...

    def count(self, criteria: SessionFilter) -> int: ...

    def count_distinct_users(self, criteria: SessionFilter) -> int: ...

    def ping(self) -> None: ...


class SqlSessionStore:
    """SessionStore over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _unit_of_work(self, operation: str) -> Generator[Session, None, None]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Session store {operation} failed",
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise StoreUnavailable(f"Session store {operation} failed") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def find_by_token(self, value: str, key_kind: TokenKind, now: datetime) -> Optional[SessionRecord]:
        """Newest record matching the key, only if it is valid at ``now``."""
        column = {
            TokenKind.SESSION_ID: SessionRecord.session_id,
            TokenKind.SESSION_TOKEN: SessionRecord.session_token,
        }[TokenKind(key_kind)]
        with self._unit_of_work("find_by_token") as db:
            return db.scalars(
                select(SessionRecord)
                .where(column == value, valid_clause(now))
                .order_by(*NEWEST_FIRST)
                .limit(1)
            ).first()

    def find_all_by_user(self, user_id: str) -> List[SessionRecord]:
        return self.find_many(SessionFilter(user_id=user_id))

    def find_many(self, criteria: SessionFilter, limit: Optional[int] = None) -> List[SessionRecord]:
        query = select(SessionRecord).where(*criteria.clauses()).order_by(*NEWEST_FIRST)
        if limit is not None:
            query = query.limit(limit)
        with self._unit_of_work("find_many") as db:
            return list(db.scalars(query).all())

    def insert(self, record: SessionRecord) -> SessionRecord:
        with self._unit_of_work("insert") as db:
            db.add(record)
        return record

    def update_by_key(self, session_id: str, patch: Dict[str, Any]) -> int:
        forbidden = _IMMUTABLE_COLUMNS.intersection(patch)
        if forbidden:
            raise ValueError(f"Cannot patch immutable columns: {sorted(forbidden)}")
        with self._unit_of_work("update_by_key") as db:
            result = db.execute(
                update(SessionRecord).where(SessionRecord.session_id == session_id).values(**patch)
            )
            return result.rowcount or 0

    def delete_many(self, criteria: SessionFilter) -> int:
        if criteria.is_unbounded():
            raise ValueError("Refusing to delete with an empty filter")
        with self._unit_of_work("delete_many") as db:
            result = db.execute(
                delete(SessionRecord).where(*criteria.clauses()).execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def count(self, criteria: SessionFilter) -> int:
        with self._unit_of_work("count") as db:
            return db.scalar(select(func.count(SessionRecord.id)).where(*criteria.clauses())) or 0

    def count_distinct_users(self, criteria: SessionFilter) -> int:
        with self._unit_of_work("count_distinct_users") as db:
            return db.scalar(
                select(func.count(func.distinct(SessionRecord.user_id))).where(*criteria.clauses())
            ) or 0

    def ping(self) -> None:
        with self._unit_of_work("ping") as db:
            db.execute(select(1))
