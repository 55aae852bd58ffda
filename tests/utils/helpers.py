"""
Test helper functions for common testing operations

Assertions shared by the API and security tests.
"""

from typing import Any, Dict, Iterable, Optional, Union

from campus_sessions.api.deps import SERVICE_KEY_HEADER
from campus_sessions.core.config import settings
from campus_sessions.core.types.session import Role
from campus_sessions.services.session_lifecycle import SessionLifecycleManager
from tests.utils.factories import ProfileFactory, SessionPayloadFactory

# Credential of the sign-in service, the only anonymous caller allowed to upload sessions
SERVICE_HEADERS = {SERVICE_KEY_HEADER: settings.SERVICE_API_KEY}


def assert_error_response(response, status_code: int, kind: str) -> Dict[str, Any]:
    """Assert an error response carries the expected status and error kind"""
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["error"] == kind, body
    return body


def assert_response_structure(response_data: Dict[str, Any], expected_keys: list, optional_keys: Optional[list] = None):
    """Assert that response has expected structure"""
    optional_keys = optional_keys or []

    for key in expected_keys:
        assert key in response_data, f"Required key '{key}' missing from response"

    unexpected_keys = set(response_data) - set(expected_keys) - set(optional_keys)
    assert not unexpected_keys, f"Unexpected keys in response: {unexpected_keys}"


def assert_no_sensitive_data_in_logs(caplog, sensitive_patterns: Iterable[str]):
    """Assert that sensitive data patterns don't appear in logs"""
    all_logs = " ".join(
        f"{record.getMessage()} {record.__dict__}" for record in caplog.records
    )
    for pattern in sensitive_patterns:
        assert pattern not in all_logs, f"Sensitive pattern '{pattern}' found in logs"


def assert_no_sensitive_data_in_response(response_data: Union[Dict, str], sensitive_patterns: Iterable[str]):
    """Assert that sensitive data patterns don't appear in API responses"""
    response_text = str(response_data)
    for pattern in sensitive_patterns:
        assert pattern not in response_text, f"Sensitive pattern '{pattern}' found in response"


def login(manager: SessionLifecycleManager, user_id: str = "user-1", role: Role = Role.STUDENT, **profile_overrides):
    """Upsert a session directly through the manager; returns (result, session_token)"""
    session_token = SessionPayloadFactory.new_token()
    result = manager.upsert(
        user_id=user_id,
        profile=ProfileFactory.create(role=role.value, **profile_overrides),
        session_token=session_token,
        device_info="pytest",
        ip_address="127.0.0.1",
    )
    return result, session_token
