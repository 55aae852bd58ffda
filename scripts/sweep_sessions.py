#!/usr/bin/env python3
"""
Delete expired, inactive and signed-out session records once.

Intended as a cron entry point; request handlers sweep on every login anyway,
this keeps the store small when logins are rare.
"""

import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from campus_sessions.core.exceptions import StoreUnavailable
from campus_sessions.core.utils.encryption import get_field_cipher
from campus_sessions.core.utils.logging_config import init_application_logging
from campus_sessions.db.session import SessionLocal
from campus_sessions.services.session_lifecycle import SessionLifecycleManager
from campus_sessions.services.session_store import SqlSessionStore

logger = logging.getLogger("campus_sessions.scripts.sweep")


def main() -> int:
    init_application_logging()
    manager = SessionLifecycleManager(SqlSessionStore(SessionLocal), get_field_cipher())
    try:
        deleted = manager.sweep_expired()
    except StoreUnavailable as e:
        logger.error(f"Sweep failed: {e.message}")
        return 1
    logger.info("Sweep finished", extra={"deleted_count": deleted})
    print(f"Deleted {deleted} session records")
    return 0


if __name__ == "__main__":
    sys.exit(main())
