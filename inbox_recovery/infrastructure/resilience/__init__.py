"""
Resilience Infrastructure Package

Provides the recovery mechanisms for channel operations:
- Retry with exponential backoff and jitter
- Per-service circuit breakers
- Fallback with primary timeout
- Recovery manager dispatching on recovery strategy
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerError, CircuitState
from .config import (
    ApplicationConfig,
    ConfigManager,
    ConfigValidationError,
    Environment,
    RecoveryConfig,
)
from .fallback import FallbackConfig, FallbackHandler
from .recovery_manager import RecoveryManager, create_recovery_manager
from .retry import ExponentialBackoff, RetryConfig, RetryHandler

__all__ = [
    "ApplicationConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "ConfigManager",
    "ConfigValidationError",
    "Environment",
    "ExponentialBackoff",
    "FallbackConfig",
    "FallbackHandler",
    "RecoveryConfig",
    "RecoveryManager",
    "RetryConfig",
    "RetryHandler",
    "create_recovery_manager",
]
