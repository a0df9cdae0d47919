"""
Circuit Breaker Pattern Implementation

Per-service circuit breaker for channel provider calls (SMS, email, social
webhooks) and database access. A breaker that keeps failing is opened and
rejects calls until its recovery timeout has elapsed, then lets one trial call
through.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, TypeVar

from inbox_recovery.domain.errors import ErrorFactory, RecoveryError

from .retry import invoke_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    failure_threshold: int = 5  # Failures before opening
    recovery_timeout: float = 60.0  # Seconds after the last failure before a trial call
    monitoring_period: float = 300.0  # Seconds between counter resets while closed
    minimum_throughput: int = 10  # Calls required before the breaker may open

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        if self.recovery_timeout <= 0:
            raise ValueError("recovery_timeout must be positive")
        if self.monitoring_period <= 0:
            raise ValueError("monitoring_period must be positive")
        if self.minimum_throughput < 0:
            raise ValueError("minimum_throughput must be non-negative")


class CircuitBreakerError(RecoveryError):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, state: CircuitState, failures: int, last_failure_time: float) -> None:
        self.name = name
        self.state = state
        error = ErrorFactory.create_integration_error(
            name,
            f"Circuit breaker '{name}' is {state.value}",
            {
                "circuit_state": state.value,
                "failures": failures,
                "last_failure_time": last_failure_time,
            },
        )
        super().__init__(error)


class CircuitBreaker:
    """
    Circuit breaker for a single named service.

    Features:
    - Consecutive-failure threshold gated by a minimum throughput
    - Single trial call after the recovery timeout
    - Periodic counter reset while closed, run as an owned asyncio task
    - Metrics snapshots
    """

    def __init__(self, name: str, config: CircuitBreakerConfig | None = None) -> None:
        """
        Initialize circuit breaker.

        Args:
            name: Service name this breaker guards
            config: Configuration (defaults to CircuitBreakerConfig())
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()

        self._state = CircuitState.CLOSED
        self._state_changed_at = time.time()

        self._failures = 0
        self._success_count = 0
        self._request_count = 0
        self._last_failure_time = 0.0
        self._rejected_count = 0

        self._monitoring_task: asyncio.Task[None] | None = None
        self._stop_monitoring = False

        logger.info(f"Initialized circuit breaker '{name}' with config: {self.config}")

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def last_failure_time(self) -> float:
        return self._last_failure_time

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring_task is not None and not self._monitoring_task.done()

    def _should_attempt_reset(self) -> bool:
        """Check if the recovery timeout has passed since the last failure."""
        return time.time() - self._last_failure_time > self.config.recovery_timeout

    def _record_success(self) -> None:
        self._success_count += 1
        if self._state == CircuitState.HALF_OPEN:
            self._failures = 0
            self._transition_to(CircuitState.CLOSED)

        logger.debug(f"Circuit breaker '{self.name}': Success recorded. State: {self._state.value}")

    def _record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = time.time()

        if (
            self._state != CircuitState.OPEN
            and self._failures >= self.config.failure_threshold
            and self._request_count >= self.config.minimum_throughput
        ):
            self._transition_to(CircuitState.OPEN)

        logger.debug(
            f"Circuit breaker '{self.name}': Failure recorded. "
            f"State: {self._state.value}, failures: {self._failures}"
        )

    def _transition_to(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return

        old_state = self._state
        self._state = new_state
        self._state_changed_at = time.time()

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker '{self.name}': {old_state.value} -> {new_state.value}",
            extra={
                "circuit_breaker": self.name,
                "from_state": old_state.value,
                "to_state": new_state.value,
                "failures": self._failures,
                "request_count": self._request_count,
            },
        )

    def _reject(self) -> CircuitBreakerError:
        self._rejected_count += 1
        logger.warning(
            f"Circuit breaker '{self.name}' is open, rejecting call",
            extra={
                "circuit_breaker": self.name,
                "circuit_state": self._state.value,
                "failures": self._failures,
            },
        )
        return CircuitBreakerError(self.name, self._state, self._failures, self._last_failure_time)

    async def execute(self, operation: Callable[[], Awaitable[T] | T]) -> T:
        """
        Execute an operation through the circuit breaker.

        Args:
            operation: Zero-argument callable (sync or async)

        Returns:
            Operation result

        Raises:
            CircuitBreakerError: If the circuit is open
            Exception: Any exception from the operation
        """
        self._ensure_monitoring()

        if self._state == CircuitState.OPEN:
            if not self._should_attempt_reset():
                raise self._reject()
            self._transition_to(CircuitState.HALF_OPEN)

        self._request_count += 1

        try:
            result = await invoke_operation(operation)
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def get_metrics(self) -> dict[str, Any]:
        """
        Get circuit breaker metrics.

        Returns:
            Dictionary with metrics
        """
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failures,
            "success_count": self._success_count,
            "request_count": self._request_count,
            "failure_rate": self._failures / self._request_count if self._request_count else 0.0,
            "last_failure_time": self._last_failure_time,
            "rejected_count": self._rejected_count,
            "time_in_current_state": time.time() - self._state_changed_at,
            "config": asdict(self.config),
        }

    def reset(self) -> None:
        """Reset circuit breaker to closed state with zeroed counters."""
        logger.info(f"Circuit breaker '{self.name}': Manual reset")
        self._transition_to(CircuitState.CLOSED)
        self._reset_metrics()
        self._last_failure_time = 0.0
        self._rejected_count = 0

    def _reset_metrics(self) -> None:
        self._failures = 0
        self._success_count = 0
        self._request_count = 0

    def _ensure_monitoring(self) -> None:
        if self._stop_monitoring:
            return

        loop = asyncio.get_running_loop()
        task = self._monitoring_task
        # A finished task, or one bound to another loop, no longer resets counters
        if task is None or task.done() or task.get_loop() is not loop:
            if task is not None:
                logger.debug(f"Restarting monitoring for circuit breaker '{self.name}'")
            self._monitoring_task = loop.create_task(self._monitoring_loop())

    async def start_monitoring(self) -> None:
        """Start the periodic counter reset."""
        if self.is_monitoring:
            logger.warning(f"Circuit breaker '{self.name}' monitoring is already running")
            return

        self._stop_monitoring = False
        self._monitoring_task = asyncio.create_task(self._monitoring_loop())
        logger.debug(f"Started monitoring for circuit breaker '{self.name}'")

    def stop_monitoring(self) -> None:
        """Cancel the periodic counter reset without waiting for it to finish."""
        self._stop_monitoring = True
        if self._monitoring_task and not self._monitoring_task.done():
            self._monitoring_task.cancel()

    async def close(self) -> None:
        """Stop monitoring and wait for the background task to exit."""
        self.stop_monitoring()
        task = self._monitoring_task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug(f"Stopped monitoring for circuit breaker '{self.name}'")

    async def _monitoring_loop(self) -> None:
        while not self._stop_monitoring:
            try:
                await asyncio.sleep(self.config.monitoring_period)
            except asyncio.CancelledError:
                break

            if self._state == CircuitState.CLOSED:
                logger.debug(f"Circuit breaker '{self.name}': Periodic counter reset")
                self._reset_metrics()

    async def __aenter__(self) -> "CircuitBreaker":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __str__(self) -> str:
        """String representation."""
        return f"CircuitBreaker(name='{self.name}', state={self._state.value})"
