"""Structured logging for the recovery layer."""

from .logging import (
    RecoveryJSONFormatter,
    RecoveryLogFilter,
    SensitiveDataConfig,
    SensitiveDataMasker,
    correlation_context,
    request_context,
    setup_structured_logging,
)

__all__ = [
    "RecoveryJSONFormatter",
    "RecoveryLogFilter",
    "SensitiveDataConfig",
    "SensitiveDataMasker",
    "correlation_context",
    "request_context",
    "setup_structured_logging",
]
