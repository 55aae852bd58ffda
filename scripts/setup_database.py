#!/usr/bin/env python3
"""
Database setup script for Campus Sessions.

Creates the session table and its indexes on SQLite or PostgreSQL and reports
store health afterwards.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.exc import SQLAlchemyError

from campus_sessions.core.utils.database_helpers import check_database_health, get_database_type
from campus_sessions.db.init_db import init_database


def main() -> bool:
    """Initialize database based on configuration"""
    print("🗄️  Campus Sessions Database Setup")
    print("=" * 40)
    print(f"Database Type: {get_database_type()}")

    print("\n🔧 Initializing database...")
    try:
        tables = init_database()
    except (SQLAlchemyError, OSError) as e:
        print(f"❌ Database initialization failed: {type(e).__name__}")
        return False

    print("✅ Database initialized successfully!")
    for table in tables:
        print(f"  - {table}")

    health = check_database_health()
    print(f"Health Status: {health['status']}")
    print(f"Table Count: {health['table_count']}")
    if health["status"] != "healthy":
        print(f"⚠️  Warning: {health['last_error']}")
        return False
    return True


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
