"""Engine and session factory for the session store."""

from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from campus_sessions.core.config import settings


def get_connect_args(database_url: str, timeout: float) -> Dict[str, Any]:
    """Database-specific connection arguments, including the store request timeout."""
    if database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for FastAPI; timeout bounds lock waits
        return {"check_same_thread": False, "timeout": timeout}
    if database_url.startswith("postgresql"):
        timeout_ms = int(timeout * 1000)
        return {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return {}

def build_engine(database_url: Optional[str] = None, timeout: Optional[float] = None) -> Engine:
    url = database_url or settings.DATABASE_URL
    request_timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
    engine_kwargs: Dict[str, Any] = {"connect_args": get_connect_args(url, request_timeout)}
    if not url.startswith("sqlite"):
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_timeout"] = request_timeout
    return create_engine(url, **engine_kwargs)

def build_session_factory(engine: Engine) -> sessionmaker:
    # Records outlive the unit of work that loaded them, so attributes are not expired on commit
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

engine = build_engine()

SessionLocal = build_session_factory(engine)
