"""Stable machine-readable error codes shared across channels."""

from typing import ClassVar


class ErrorCodes:
    """Codes assigned by the error factory's convenience constructors."""

    AUTHENTICATION = "AUTH_001"
    VALIDATION = "VAL_001"
    NETWORK = "NET_001"
    DATABASE = "DB_001"
    INTEGRATION = "INT_001"
    RATE_LIMIT = "RATE_001"
    TIMEOUT = "TIMEOUT_001"

    # Codes the retry handler accepts when no explicit allow-list is configured
    DEFAULT_RETRYABLE: ClassVar[frozenset[str]] = frozenset(
        {NETWORK, TIMEOUT, RATE_LIMIT, INTEGRATION}
    )
