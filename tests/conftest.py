"""
Global test configuration and fixtures for Campus Sessions

Every test gets its own temporary SQLite session store and a controllable
clock. Environment defaults are set before any application import because
settings are read once at import time.
"""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="campus_sessions_tests_")

os.environ.setdefault("SECRET_KEY", "test-secret-key-Zq8vN3xK7pL2mR9tW4yB6cD1fG5hJ0")
os.environ.setdefault("SERVICE_API_KEY", "test-service-key-Hq3Wn7Ld2Kx9Vb5Mz8Pc4Rt6")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEV_MODE", "true")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TEST_DATA_DIR) / 'app.db'}"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from campus_sessions.api.deps import get_cipher, get_clock, get_session_store  # noqa: E402
from campus_sessions.core.limiter import limiter  # noqa: E402
from campus_sessions.core.utils.encryption import get_field_cipher  # noqa: E402
from campus_sessions.db.init_db import init_database  # noqa: E402
from campus_sessions.db.session import build_engine, build_session_factory  # noqa: E402
from campus_sessions.main import app  # noqa: E402
from campus_sessions.services.session_lifecycle import SessionLifecycleManager  # noqa: E402
from campus_sessions.services.session_store import SqlSessionStore  # noqa: E402
from campus_sessions.services.token_service import TokenService  # noqa: E402


class FrozenClock:
    """Clock returning a fixed naive-UTC instant until advanced."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def test_engine(tmp_path):
    """Fresh SQLite database file per test"""
    engine = build_engine(f"sqlite:///{tmp_path / 'sessions.db'}", timeout=5.0)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture(scope="function")
def store(session_factory):
    return SqlSessionStore(session_factory)


@pytest.fixture(scope="function")
def frozen_clock():
    return FrozenClock(datetime(2025, 3, 10, 9, 0, 0))


@pytest.fixture(scope="session")
def cipher():
    """Key derivation is slow, so one cipher serves the whole run"""
    return get_field_cipher()


@pytest.fixture(scope="function")
def manager(store, cipher, frozen_clock):
    return SessionLifecycleManager(store=store, cipher=cipher, clock=frozen_clock)


@pytest.fixture(scope="function")
def token_service():
    return TokenService()


# ============================================================================
# Application Client Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def client(store, cipher, frozen_clock):
    """Create FastAPI test client bound to the per-test store and clock"""
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_cipher] = lambda: cipher
    app.dependency_overrides[get_clock] = lambda: frozen_clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function", autouse=True)
def reset_limiter():
    """Clear rate limit counters so tests do not affect each other"""
    limiter.reset()
    yield
    limiter.reset()


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: isolated component tests")
    config.addinivalue_line("markers", "integration: tests through the HTTP surface")
    config.addinivalue_line("markers", "api: mark test as exercising API endpoints")
    config.addinivalue_line("markers", "critical: mark test as critical path functionality")
    config.addinivalue_line("markers", "security: mark test as security-related")


def pytest_collection_modifyitems(config, items):
    """Add markers based on file location"""
    for item in items:
        path = str(item.fspath)
        if "security" in path:
            item.add_marker(pytest.mark.security)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
