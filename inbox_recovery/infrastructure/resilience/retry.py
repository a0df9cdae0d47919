"""
Retry Logic with Exponential Backoff

Re-executes a failed channel operation with capped exponential backoff and
jitter, bounded by a per-handler retry policy. Only errors whose code is on
the handler's allow-list are retried.
"""

import asyncio
import inspect
import logging
import random
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from inbox_recovery.domain.errors import (
    BaseError,
    ErrorCodes,
    ErrorFactory,
    ErrorRecoveryResult,
    RecoverableError,
    RecoveryError,
    RecoveryStrategy,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T] | T]
SleepFunc = Callable[[float], Awaitable[None]]


async def invoke_operation(operation: Callable[[], Any]) -> Any:
    """Call a zero-argument operation and await its result if it is awaitable."""
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


def error_from_exception(exc: Exception) -> BaseError | None:
    """Return the classified error carried by ``exc``, if any."""
    if isinstance(exc, RecoveryError):
        return exc.error
    return None


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0  # Delay before the second attempt, in seconds
    max_delay: float = 30.0  # Cap applied before jitter, in seconds
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1  # Up to +10% of the capped delay
    retryable_errors: frozenset[str] = field(default_factory=lambda: ErrorCodes.DEFAULT_RETRYABLE)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        # Accept any iterable of codes but store an immutable set
        if not isinstance(self.retryable_errors, frozenset):
            object.__setattr__(self, "retryable_errors", frozenset(self.retryable_errors))

    @classmethod
    def with_codes(cls, codes: Iterable[str], **overrides: Any) -> "RetryConfig":
        """Build a config with a custom retryable-code allow-list."""
        return cls(retryable_errors=frozenset(codes), **overrides)


class ExponentialBackoff:
    """Exponential backoff calculator with additive jitter."""

    def __init__(self, config: RetryConfig) -> None:
        self.config = config

    def capped_delay(self, attempt: int) -> float:
        """
        Delay for ``attempt`` before jitter.

        Args:
            attempt: Attempt number that just failed (1-based)

        Returns:
            Delay in seconds
        """
        if attempt < 1:
            return 0.0
        exponential = self.config.base_delay * self.config.backoff_multiplier ** (attempt - 1)
        return min(exponential, self.config.max_delay)

    def get_delay(self, attempt: int) -> float:
        """Delay to wait after ``attempt`` fails, jitter included."""
        capped = self.capped_delay(attempt)
        jitter = capped * self.config.jitter_factor * random.random()
        return capped + jitter

    def get_delays(self, attempts: int) -> list[float]:
        """Delays between ``attempts`` consecutive attempts (one fewer than attempts)."""
        return [self.get_delay(i) for i in range(1, attempts)]


class RetryHandler:
    """Executes an operation with bounded exponential-backoff retries."""

    def __init__(self, config: RetryConfig | None = None, sleep: SleepFunc | None = None) -> None:
        """
        Initialize retry handler.

        Args:
            config: Retry policy (defaults to RetryConfig())
            sleep: Coroutine used to wait between attempts (defaults to asyncio.sleep)
        """
        self.config = config or RetryConfig()
        self.backoff = ExponentialBackoff(self.config)
        self._sleep = sleep or asyncio.sleep

    def is_retryable(self, error: BaseError) -> bool:
        return error.code in self.config.retryable_errors

    async def execute_with_retry(
        self,
        fn: Operation[Any],
        error: RecoverableError,
        context: str | None = None,
    ) -> ErrorRecoveryResult:
        """
        Re-execute ``fn`` under the retry policy.

        Args:
            fn: Zero-argument operation to retry
            error: Classified failure that triggered the retry
            context: Label used in logs and in the wrapped final error

        Returns:
            ErrorRecoveryResult describing the outcome
        """
        if not self.is_retryable(error):
            logger.info(
                f"Error {error.code} is not retryable",
                extra={"recovery_context": context, "error_code": error.code},
            )
            return ErrorRecoveryResult(
                success=False,
                strategy=RecoveryStrategy.RETRY,
                attempts=0,
                escalated=False,
                final_error=error,
                user_message="This error cannot be automatically retried",
            )

        max_retries = self.config.max_retries
        start_time = time.perf_counter()
        last_exception: Exception | None = None
        attempts = 0

        while attempts < max_retries:
            attempts += 1
            logger.info(
                f"Attempting retry {attempts}/{max_retries}",
                extra={
                    "recovery_context": context,
                    "attempt": attempts,
                    "max_retries": max_retries,
                    "error_code": error.code,
                },
            )

            try:
                result = await invoke_operation(fn)
            except Exception as e:
                last_exception = e
                error.record_retry()
                logger.warning(
                    f"Retry attempt {attempts}/{max_retries} failed: {e}",
                    extra={
                        "recovery_context": context,
                        "attempt": attempts,
                        "max_retries": max_retries,
                        "error_code": error.code,
                        "error_type": type(e).__name__,
                    },
                )

                if attempts < max_retries:
                    delay = self.backoff.get_delay(attempts)
                    logger.debug(f"Backing off {delay:.3f}s before attempt {attempts + 1}")
                    await self._sleep(delay)
                continue

            elapsed = time.perf_counter() - start_time
            logger.info(
                f"Retry succeeded on attempt {attempts}",
                extra={
                    "recovery_context": context,
                    "attempt": attempts,
                    "error_code": error.code,
                    "elapsed_ms": elapsed * 1000,
                },
            )
            return ErrorRecoveryResult(
                success=True,
                strategy=RecoveryStrategy.RETRY,
                attempts=attempts,
                escalated=False,
                recovered_value=result,
                user_message="Operation completed successfully after retry",
            )

        elapsed = time.perf_counter() - start_time
        logger.error(
            f"All {attempts} retry attempts exhausted",
            extra={
                "recovery_context": context,
                "attempts": attempts,
                "error_code": error.code,
                "elapsed_ms": elapsed * 1000,
                "final_error": str(last_exception),
            },
        )

        return ErrorRecoveryResult(
            success=False,
            strategy=RecoveryStrategy.RETRY,
            attempts=attempts,
            escalated=attempts >= max_retries,
            final_error=self._wrap_final_error(last_exception, error, context),
            user_message="Operation failed after multiple attempts",
        )

    @staticmethod
    def _wrap_final_error(
        exc: Exception | None, error: RecoverableError, context: str | None
    ) -> BaseError:
        if exc is None:
            return error
        carried = error_from_exception(exc)
        if carried is not None:
            return carried
        return ErrorFactory.create_network_error(
            str(exc) or type(exc).__name__,
            {"context": context, "exception_type": type(exc).__name__},
        )
