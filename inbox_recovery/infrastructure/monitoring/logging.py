"""
Structured Logging for the Recovery Layer

JSON structured logs with correlation and request ids, OpenTelemetry trace
context, recovery-specific fields and masking of channel credentials.
"""

import json
import logging
import re
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from opentelemetry import trace

# Context variables for correlation tracking
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Extra keys grouped under "recovery" in JSON output
RECOVERY_FIELDS = (
    "recovery_context",
    "service_name",
    "circuit_breaker",
    "circuit_state",
    "from_state",
    "to_state",
    "strategy",
    "error_code",
    "error_id",
    "attempt",
    "attempts",
    "max_retries",
    "escalated",
    "elapsed_ms",
)

_STANDARD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "correlation_id",
        "user_id",
        "request_id",
        "trace_id",
        "span_id",
    }
)


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    # Provider credentials
    credential_patterns: list[str] = field(
        default_factory=lambda: [
            r"api[_-]?key",
            r"auth[_-]?token",
            r"access[_-]?token",
            r"refresh[_-]?token",
            r"bearer[_-]?token",
            r"authorization",
            r"client[_-]?secret",
            r"webhook[_-]?secret",
            r"account[_-]?sid",
        ]
    )

    mask_replacement: str = "***MASKED***"

    # Fields to completely exclude from logs
    excluded_fields: set[str] = field(
        default_factory=lambda: {"password", "passwd", "secret", "private_key", "token"}
    )


class SensitiveDataMasker:
    """Masks sensitive data in log messages and extra fields."""

    def __init__(self, config: SensitiveDataConfig | None = None) -> None:
        self.config = config or SensitiveDataConfig()
        self._field_patterns = [re.compile(p, re.IGNORECASE) for p in self.config.credential_patterns]
        self._compiled_patterns = [
            # key:value, key=value and "key": "value"
            re.compile(rf'("{p}"\s*:\s*"[^"]*"|{p}=\S+|{p}:\s*\S+)', re.IGNORECASE)
            for p in self.config.credential_patterns
        ]

    def mask_message(self, message: str) -> str:
        """Mask sensitive data in log message."""
        for pattern in self._compiled_patterns:
            message = pattern.sub(lambda m: self._replace_value(m.group(0)), message)
        return message

    def mask_extra_fields(self, extra: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive data in extra log fields."""
        masked: dict[str, Any] = {}

        for key, value in extra.items():
            if key.lower() in self.config.excluded_fields:
                continue

            if self._is_sensitive_field(key):
                masked[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked[key] = self.mask_message(value)
            elif isinstance(value, dict):
                masked[key] = self.mask_extra_fields(value)
            else:
                masked[key] = value

        return masked

    def _is_sensitive_field(self, field_name: str) -> bool:
        return any(pattern.search(field_name) for pattern in self._field_patterns)

    def _replace_value(self, match: str) -> str:
        if "=" in match and (":" not in match or match.index("=") < match.index(":")):
            key_part = match.split("=", 1)[0]
            return f"{key_part}={self.config.mask_replacement}"
        key_part = match.split(":", 1)[0]
        return f'{key_part}: "{self.config.mask_replacement}"'


class RecoveryLogFilter(logging.Filter):
    """Stamps correlation ids and trace context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.user_id = user_id_var.get()
        record.request_id = request_id_var.get()

        span = trace.get_current_span()
        span_context = span.get_span_context()
        if span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = None
            record.span_id = None

        return True


class RecoveryJSONFormatter(logging.Formatter):
    """JSON formatter for structured recovery logs."""

    def __init__(
        self,
        sensitive_data_config: SensitiveDataConfig | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys
        self.masker = SensitiveDataMasker(sensitive_data_config)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for attr in ("correlation_id", "user_id", "request_id", "trace_id", "span_id"):
            value = getattr(record, attr, None)
            if value:
                log_entry[attr] = value

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: self._serialize_value(value)
                for key, value in record.__dict__.items()
                if key not in _STANDARD_FIELDS and not key.startswith("_")
            }
            recovery = {key: extra.pop(key) for key in RECOVERY_FIELDS if key in extra}
            if recovery:
                log_entry["recovery"] = recovery
            if extra:
                log_entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=str)

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (set, frozenset)):
            return sorted(value, key=str)
        if isinstance(value, datetime):
            return value.isoformat()
        return value


# Correlation ID management
def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for correlation ID scope."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


@contextmanager
def request_context(
    request_id: str | None = None, user_id: str | None = None
) -> Generator[str, None, None]:
    """Context manager binding a request (and optionally a user) to log records."""
    request_id = request_id or generate_correlation_id()
    request_token = request_id_var.set(request_id)
    user_token = user_id_var.set(user_id) if user_id else None
    try:
        yield request_id
    finally:
        request_id_var.reset(request_token)
        if user_token is not None:
            user_id_var.reset(user_token)


def setup_structured_logging(
    level: str = "INFO",
    format_type: str = "json",
    sensitive_data_config: SensitiveDataConfig | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        sensitive_data_config: Sensitive data masking configuration
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = RecoveryJSONFormatter(sensitive_data_config)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
        )

    log_filter = RecoveryLogFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(log_filter)
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper()))

    logging.getLogger(__name__).info("Structured logging configured successfully")
