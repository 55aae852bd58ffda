"""
Database helper utilities for Campus Sessions.

Health reporting for the session store across SQLite and PostgreSQL.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from campus_sessions.core.config import settings

logger = logging.getLogger(__name__)


def get_database_type(database_url: Optional[str] = None) -> str:
    """
    Get the database type from a SQLAlchemy URL.

    Returns:
        str: Database type ('sqlite', 'postgresql', etc.)
    """
    url = (database_url or settings.DATABASE_URL).lower()
    if url.startswith("sqlite"):
        return "sqlite"
    elif url.startswith("postgresql"):
        return "postgresql"
    return url.split("://")[0] if "://" in url else "unknown"


def check_database_health(engine: Optional[Engine] = None) -> Dict[str, Any]:
    """
    Perform database health check.

    Args:
        engine: Engine to check (defaults to the application engine)

    Returns:
        Dict containing health status and metrics
    """
    if engine is None:
        from campus_sessions.db.session import engine as default_engine

        engine = default_engine

    health: Dict[str, Any] = {
        "status": "healthy",
        "database_type": get_database_type(str(engine.url)),
        "connected": False,
        "table_count": 0,
        "session_table_present": False,
        "last_error": None,
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            health["connected"] = True
            tables = inspect(conn).get_table_names()
        health["table_count"] = len(tables)
        health["session_table_present"] = "sessionrecord" in tables
        if not health["session_table_present"]:
            health["status"] = "warning"
            health["last_error"] = "Session table missing - database may need initialization"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {type(e).__name__}")
        health["status"] = "unhealthy"
        health["last_error"] = type(e).__name__

    return health
