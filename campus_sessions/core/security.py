"""
Security utilities for Campus Sessions

This module provides secret key handling, data masking for logs and error
responses, and the response-hardening middleware.
"""

import logging
import os
import re
import secrets
import string
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SECRET_KEY_FILE = "data/.secret_key"

INSECURE_DEFAULTS = (
    "your-secret-key-here-change-in-production",
    "change-me",
    "secret",
    "password",
    "123456",
    "admin",
)

# Fields that hold ciphertext, search hashes or bearer secrets
SENSITIVE_KEYS = (
    "password", "secret", "token", "credential", "auth", "hash",
    "phone", "reg_number", "regnumber", "email",
)


def generate_secure_secret_key(length: int = 64) -> str:
    """
    Generate a cryptographically secure secret key.

    Args:
        length: Length of the secret key (default: 64 characters)

    Returns:
        A secure random string suitable for use as a SECRET_KEY
    """
    alphabet = string.ascii_letters + string.digits + "-_"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def get_or_create_secret_key() -> str:
    """
    Get SECRET_KEY from environment or the key file, generating one if neither exists.

    Stateless handlers only agree on ciphertext when they share this key, so a
    generated key is persisted and a warning is logged.

    Raises:
        ValueError: If the secret key doesn't meet security requirements
    """
    secret_key = os.environ.get("SECRET_KEY")
    if secret_key:
        validate_secret_key(secret_key)
        return secret_key

    if os.path.exists(SECRET_KEY_FILE):
        try:
            with open(SECRET_KEY_FILE, "r") as f:
                secret_key = f.read().strip()
        except OSError as e:
            logger.warning(f"Could not read secret key file: {e}")
        if secret_key:
            logger.info("Using SECRET_KEY from secret file")
            validate_secret_key(secret_key)
            return secret_key

    logger.warning("No SECRET_KEY configured, generating new one")
    secret_key = generate_secure_secret_key()
    try:
        os.makedirs(os.path.dirname(SECRET_KEY_FILE), exist_ok=True)
        with open(SECRET_KEY_FILE, "w") as f:
            f.write(secret_key)
        _set_secure_file_permissions(SECRET_KEY_FILE)
        logger.info("Generated new SECRET_KEY and saved to secure file")
    except OSError as e:
        logger.error(f"Could not save secret key to file: {e}")
        logger.warning("Using generated key in memory only; other handlers cannot decrypt its records")

    validate_secret_key(secret_key)
    return secret_key


def validate_secret_key(secret_key: str) -> None:
    """
    Validate that a secret key meets security requirements.

    Raises:
        ValueError: If the secret key doesn't meet requirements
    """
    if not secret_key:
        raise ValueError("SECRET_KEY cannot be empty")

    if len(secret_key) < 32:
        raise ValueError("SECRET_KEY must be at least 32 characters long")

    if secret_key.lower() in INSECURE_DEFAULTS:
        raise ValueError("SECRET_KEY appears to be an insecure default value")

    if len(set(secret_key.lower())) < 8:
        raise ValueError("SECRET_KEY has insufficient entropy (too repetitive)")


def _set_secure_file_permissions(file_path: str) -> None:
    """Restrict a file to owner read/write (0o600)."""
    try:
        os.chmod(file_path, 0o600)
    except OSError as e:
        logger.warning(f"Could not set secure file permissions on {file_path}: {e}")


def mask_value(value: Optional[str], visible: int = 4) -> str:
    """Keep a short prefix for identification and mask the rest."""
    if not value:
        return "****"
    if len(value) > visible * 2:
        return value[:visible] + "****"
    return "****"


def mask_sensitive_data(data: dict, sensitive_keys: Optional[tuple] = None) -> dict:
    """
    Mask sensitive data in dictionaries for safe logging.

    Args:
        data: Dictionary containing potentially sensitive data
        sensitive_keys: Key fragments to mask (uses defaults if None)

    Returns:
        Dictionary with sensitive values masked
    """
    keys = sensitive_keys or SENSITIVE_KEYS
    masked = {}
    for key, value in data.items():
        normalized = key.lower()
        if any(fragment in normalized for fragment in keys):
            masked[key] = mask_value(value) if isinstance(value, str) else "****"
        else:
            masked[key] = value
    return masked


_ERROR_PATTERNS = (
    (r"gAAAAA[A-Za-z0-9_\-=]+", "****"),  # Fernet tokens
    (r"\b[a-f0-9]{64}\b", "****"),  # search hashes
    (r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+", "****"),  # JWTs
    (r"(token|key|password|secret)['\"\s]*[:=]['\"\s]*[^\s'\"]+", r"\1=****"),
    (r"://[^\s/@]+@", "://****@"),  # credentials in connection URLs
)


def sanitize_error_message(error_msg: str, max_length: int = 200) -> str:
    """
    Sanitize error messages to prevent sensitive data leakage.

    Args:
        error_msg: The raw error message to sanitize
        max_length: Truncation limit

    Returns:
        A sanitized error message safe for API responses
    """
    if not error_msg:
        return "Unknown error occurred"

    sanitized = str(error_msg)
    for pattern, replacement in _ERROR_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."
    return sanitized


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to every response.

    Session responses carry cookies and bearer tokens, so they are never cached.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
            "Cache-Control": "no-store",
        }
        for header_name, header_value in security_headers.items():
            response.headers.setdefault(header_name, header_value)

        return response
