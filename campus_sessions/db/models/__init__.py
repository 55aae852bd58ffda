"""Database models"""

from campus_sessions.db.models.session_record import SessionRecord

__all__ = [
    "SessionRecord",
]
