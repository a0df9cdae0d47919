"""
Error taxonomy for the unified inbox.

Defines the two orthogonal classification axes (what failed, what to do about
it), the immutable error records built by the error factory, and the single
result type every recovery mechanism returns.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Error severity levels, ordered from least to most severe."""

    LOW = "low"  # Minor issue, no user impact
    MEDIUM = "medium"  # Degraded but recoverable
    HIGH = "high"  # Feature unavailable
    CRITICAL = "critical"  # Core dependency down

    @property
    def rank(self) -> int:
        """Ordinal position, usable for comparisons."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [
    ErrorSeverity.LOW,
    ErrorSeverity.MEDIUM,
    ErrorSeverity.HIGH,
    ErrorSeverity.CRITICAL,
]


class ErrorCategory(Enum):
    """What kind of failure occurred."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NETWORK = "network"
    DATABASE = "database"
    INTEGRATION = "integration"
    BUSINESS_LOGIC = "business_logic"
    SYSTEM = "system"
    USER_INPUT = "user_input"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class RecoveryStrategy(Enum):
    """What should be done about a failure."""

    RETRY = "retry"
    FALLBACK = "fallback"
    CIRCUIT_BREAKER = "circuit_breaker"
    ESCALATE = "escalate"
    IGNORE = "ignore"
    MANUAL_INTERVENTION = "manual_intervention"


@dataclass(frozen=True)
class BaseError:
    """Immutable description of a classified failure."""

    id: str
    code: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    source: str
    timestamp: datetime
    context: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    request_id: str | None = None
    stack: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "id": self.id,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "user_id": self.user_id,
            "request_id": self.request_id,
        }


@dataclass(frozen=True)
class RecoverableError(BaseError):
    """
    A classified failure that carries its recovery policy.

    Every field is fixed at construction except ``retry_count``, which the
    retry handler advances once per failed attempt.
    """

    recovery_strategy: RecoveryStrategy = RecoveryStrategy.RETRY
    max_retries: int = 3
    retry_after: float = 1.0  # seconds
    escalation_threshold: int = 5
    can_recover: bool = True
    fallback_action: Callable[[], Awaitable[Any]] | None = field(
        default=None, repr=False, compare=False
    )
    retry_count: int = field(default=0, compare=False)

    def record_retry(self) -> int:
        """Advance the retry counter and return its new value."""
        object.__setattr__(self, "retry_count", self.retry_count + 1)
        return self.retry_count

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "recovery_strategy": self.recovery_strategy.value,
                "retry_count": self.retry_count,
                "max_retries": self.max_retries,
                "retry_after": self.retry_after,
                "escalation_threshold": self.escalation_threshold,
                "can_recover": self.can_recover,
            }
        )
        return data


class RecoveryError(Exception):
    """Raised when a classified failure has to leave the recovery layer."""

    def __init__(self, error: BaseError) -> None:
        self.error = error
        super().__init__(f"[{error.code}] {error.message}")


@dataclass
class ErrorRecoveryResult:
    """Outcome of a recovery attempt sequence."""

    success: bool
    strategy: RecoveryStrategy
    attempts: int
    escalated: bool
    user_message: str
    final_error: BaseError | None = None
    recovered_value: Any = None

    def __post_init__(self) -> None:
        """Validate the success/final_error pairing."""
        if self.success and self.final_error is not None:
            raise ValueError("successful result cannot carry a final_error")
        if not self.success and self.final_error is None:
            raise ValueError("failed result requires a final_error")
        if self.attempts < 0:
            raise ValueError("attempts must be non-negative")

    def unwrap(self) -> Any:
        """
        Return the recovered value or raise the final error.

        Raises:
            RecoveryError: If the recovery did not succeed
            ValueError: If a failed result lost its final_error after construction
        """
        if not self.success:
            if self.final_error is None:
                raise ValueError("failed result requires a final_error")
            raise RecoveryError(self.final_error)
        return self.recovered_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "strategy": self.strategy.value,
            "attempts": self.attempts,
            "escalated": self.escalated,
            "user_message": self.user_message,
            "final_error": self.final_error.to_dict() if self.final_error else None,
        }
