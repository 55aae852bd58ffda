"""Initialize the database with proper schema"""

import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine

from campus_sessions.db.base import Base
from campus_sessions.db.models import session_record as _model_session_record  # noqa: F401

logger = logging.getLogger("campus_sessions.database")


def ensure_sqlite_directory(engine: Engine) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    if engine.url.get_backend_name() != "sqlite":
        return
    database = engine.url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def init_database(engine: Optional[Engine] = None) -> List[str]:
    """Create all tables with proper schema

    Returns:
        Names of the tables known to the metadata
    """
    if engine is None:
        from campus_sessions.db.session import engine as default_engine

        engine = default_engine

    try:
        ensure_sqlite_directory(engine)
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Error initializing database: {e}", extra={
            "error_type": type(e).__name__,
            "database_url": "[REDACTED]",
        })
        raise

    table_names = [table.name for table in Base.metadata.sorted_tables]
    logger.info("Database initialized", extra={
        "table_count": len(table_names),
        "tables": table_names,
    })
    return table_names
