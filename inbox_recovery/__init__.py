"""
Inbox Recovery

Error taxonomy and recovery engine for the unified inbox channel stack:
classified errors, retries with exponential backoff, per-service circuit
breakers, fallbacks and a recovery manager that dispatches between them.
"""

from inbox_recovery.domain.errors import (
    BaseError,
    ErrorCategory,
    ErrorCodes,
    ErrorFactory,
    ErrorRecoveryResult,
    ErrorSeverity,
    RecoverableError,
    RecoveryError,
    RecoveryStrategy,
    UserErrorMessageGenerator,
)
from inbox_recovery.infrastructure.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    FallbackConfig,
    FallbackHandler,
    RecoveryManager,
    RetryConfig,
    RetryHandler,
    create_recovery_manager,
)

__version__ = "0.1.0"

__all__ = [
    "BaseError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "ErrorCategory",
    "ErrorCodes",
    "ErrorFactory",
    "ErrorRecoveryResult",
    "ErrorSeverity",
    "FallbackConfig",
    "FallbackHandler",
    "RecoverableError",
    "RecoveryError",
    "RecoveryManager",
    "RecoveryStrategy",
    "RetryConfig",
    "RetryHandler",
    "UserErrorMessageGenerator",
    "create_recovery_manager",
]
