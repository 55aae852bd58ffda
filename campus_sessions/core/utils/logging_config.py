"""
Structured logging configuration for Campus Sessions.

Provides JSON-formatted logging with correlation IDs and security-focused
logging of session lifecycle events.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from campus_sessions.core.config import settings
from campus_sessions.core.security import mask_sensitive_data

# Context variable for correlation ID (used across request lifecycle)
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED_RECORD_KEYS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
}

_SENSITIVE_FIELD_KEYWORDS = {
    "password", "secret", "key", "token", "credential", "cookie",
    "hash", "phone", "reg_number", "email", "private",
}

_SECURITY_KEYWORDS = (
    "authentication", "authorization", "session", "token", "signed out",
    "sign-out", "login", "forbidden", "unauthorized", "role", "cipher",
)


class SecurityLogFilter(logging.Filter):
    """
    Tag session and authentication records as security events and mask
    token-like values in the message text.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message_lower = record.getMessage().lower()
        record.security_event = any(keyword in message_lower for keyword in _SECURITY_KEYWORDS)

        if isinstance(record.msg, str) and not record.args:
            record.msg = self._sanitize_message(record.msg)
        return True

    @staticmethod
    def _sanitize_message(message: str) -> str:
        # Fernet ciphertext and bearer tokens
        message = re.sub(r"gAAAAA[A-Za-z0-9_\-=]+", "****", message)
        message = re.sub(r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+", "****", message)
        # E-mail addresses, keep first letter and domain
        message = re.sub(
            r"\b([a-zA-Z])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b", r"\1****@\2", message
        )
        message = re.sub(r"(password|secret|token)[\s]*[=:][\s]*[^\s]+", r"\1=****", message, flags=re.IGNORECASE)
        return message


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging with security context.
    """

    def __init__(self, include_sensitive: bool = False):
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key.startswith("_"):
                continue
            if not self.include_sensitive and self._is_sensitive_field(key):
                extra_fields[key] = "[REDACTED]"
            else:
                extra_fields[key] = value

        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=self._json_default)

    @staticmethod
    def _is_sensitive_field(key: str) -> bool:
        key_lower = key.lower()
        return any(keyword in key_lower for keyword in _SENSITIVE_FIELD_KEYWORDS)

    @staticmethod
    def _json_default(obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class PlainTextSecurityFormatter(logging.Formatter):
    """Plain text formatter that marks security events."""

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        if getattr(record, "security_event", False):
            formatted = f"[SECURITY] {formatted}"
        return formatted


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
        log_file: Optional file path for logging
        include_sensitive: Whether to include sensitive extra fields in logs
    """
    logging.root.handlers.clear()

    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = PlainTextSecurityFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    security_filter = SecurityLogFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(security_filter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(security_filter)
        root_logger.addHandler(file_handler)

    # Reduce noise from external libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_correlation_id() -> str:
    """Get or create a correlation ID for request tracking."""
    correlation_id = correlation_id_ctx.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_ctx.set(correlation_id)


def log_security_event(
    event_type: str,
    message: str,
    level: int = logging.INFO,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a session or authentication event with structured data.

    Args:
        event_type: Type of event (session_created, authentication_failure, ...)
        message: Human-readable message
        level: Logging level for the event
        user_id: Optional user identifier
        ip_address: Optional IP address
        extra_data: Additional structured data; sensitive keys are masked
    """
    logger = logging.getLogger("campus_sessions.security")

    security_data: Dict[str, Any] = {
        "event_type": event_type,
        "correlation_id": get_correlation_id(),
    }
    if user_id:
        security_data["user_id"] = user_id
    if ip_address:
        security_data["ip_address"] = ip_address
    if extra_data:
        security_data.update(mask_sensitive_data(extra_data))

    logger.log(level, message, extra=security_data)


def init_application_logging() -> None:
    """Initialize logging for the FastAPI application"""
    is_dev = settings.DEV_MODE
    log_level = "DEBUG" if is_dev else "INFO"

    # Use JSON logging in production, plain text in development
    enable_json = not is_dev

    setup_logging(
        log_level=log_level,
        enable_json=enable_json,
        include_sensitive=is_dev,
    )

    logging.getLogger("campus_sessions.startup").info(
        "Structured logging initialized",
        extra={"dev_mode": is_dev, "json_logging": enable_json, "log_level": log_level},
    )
