"""
Fallback Strategies and Graceful Degradation

Runs a primary operation under a timeout and substitutes an alternative
result (a fallback function or a static value) when it fails.
"""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from inbox_recovery.domain.errors import (
    BaseError,
    ErrorFactory,
    ErrorRecoveryResult,
    RecoveryStrategy,
)

from .retry import error_from_exception, invoke_operation

logger = logging.getLogger(__name__)


class _Unset:
    """Marker type for an unconfigured fallback value."""

    def __repr__(self) -> str:
        return "<unset>"


_UNSET: Any = _Unset()


class FallbackUnavailableError(Exception):
    """Raised when a fallback is enabled but neither a function nor a value is configured."""


@dataclass(frozen=True)
class FallbackConfig:
    """Configuration for a fallback handler."""

    enabled: bool = True
    fallback_function: Callable[[], Awaitable[Any] | Any] | None = None
    fallback_value: Any = _UNSET
    timeout: float = 10.0  # Seconds allowed for the primary operation

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.fallback_function is not None and not callable(self.fallback_function):
            raise ValueError("fallback_function must be callable")

    @property
    def has_fallback_value(self) -> bool:
        return self.fallback_value is not _UNSET


class FallbackHandler:
    """Executes a primary operation with a configured fallback."""

    def __init__(self, config: FallbackConfig | None = None, name: str = "fallback") -> None:
        self.name = name
        self.config = config or FallbackConfig()
        self.metrics: dict[str, int] = defaultdict(int)

        logger.info(f"Initialized fallback handler '{name}' with config: {self.config}")

    async def execute_with_fallback(
        self,
        primary_fn: Callable[[], Awaitable[Any] | Any],
        context: str | None = None,
    ) -> ErrorRecoveryResult:
        """
        Execute ``primary_fn`` and fall back on failure or timeout.

        Args:
            primary_fn: Zero-argument primary operation
            context: Label used in logs

        Returns:
            ErrorRecoveryResult with ``attempts=1`` when the primary answered
            and ``attempts=2`` when the fallback step ran
        """
        self.metrics["total_calls"] += 1

        if not self.config.enabled:
            return await self._execute_primary_only(primary_fn, context)

        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(invoke_operation(primary_fn), timeout=self.config.timeout)
        except Exception as e:
            primary_error = self._to_error(e, context)
            self.metrics["primary_failures"] += 1
            logger.warning(
                f"Primary operation failed, using fallback: {e}",
                extra={
                    "fallback_handler": self.name,
                    "recovery_context": context,
                    "error_code": primary_error.code,
                    "elapsed_ms": (time.perf_counter() - start_time) * 1000,
                },
            )
            return await self._execute_fallback(primary_error, context)

        self.metrics["primary_successes"] += 1
        return ErrorRecoveryResult(
            success=True,
            strategy=RecoveryStrategy.FALLBACK,
            attempts=1,
            escalated=False,
            recovered_value=result,
            user_message="Operation completed successfully",
        )

    async def _execute_primary_only(
        self, primary_fn: Callable[[], Awaitable[Any] | Any], context: str | None
    ) -> ErrorRecoveryResult:
        try:
            result = await invoke_operation(primary_fn)
        except Exception as e:
            self.metrics["primary_failures"] += 1
            error = self._to_error(e, context)
            logger.error(
                f"Operation failed with fallback disabled: {e}",
                extra={
                    "fallback_handler": self.name,
                    "recovery_context": context,
                    "error_code": error.code,
                },
            )
            return ErrorRecoveryResult(
                success=False,
                strategy=RecoveryStrategy.FALLBACK,
                attempts=1,
                escalated=True,
                final_error=error,
                user_message="Operation failed and no fallback is available",
            )

        self.metrics["primary_successes"] += 1
        return ErrorRecoveryResult(
            success=True,
            strategy=RecoveryStrategy.FALLBACK,
            attempts=1,
            escalated=False,
            recovered_value=result,
            user_message="Operation completed successfully",
        )

    async def _execute_fallback(self, primary_error: BaseError, context: str | None) -> ErrorRecoveryResult:
        try:
            if self.config.fallback_function is not None:
                value = await invoke_operation(self.config.fallback_function)
            elif self.config.has_fallback_value:
                value = self.config.fallback_value
            else:
                raise FallbackUnavailableError(f"No fallback configured for '{self.name}'")
        except Exception as fallback_error:
            self.metrics["fallback_failures"] += 1
            logger.error(
                f"Fallback also failed: {fallback_error}",
                extra={
                    "fallback_handler": self.name,
                    "recovery_context": context,
                    "error_code": primary_error.code,
                    "fallback_error": str(fallback_error),
                },
            )
            return ErrorRecoveryResult(
                success=False,
                strategy=RecoveryStrategy.FALLBACK,
                attempts=2,
                escalated=True,
                final_error=primary_error,
                user_message="Operation failed and fallback was unsuccessful",
            )

        self.metrics["fallback_successes"] += 1
        logger.info(
            "Fallback succeeded",
            extra={"fallback_handler": self.name, "recovery_context": context},
        )
        return ErrorRecoveryResult(
            success=True,
            strategy=RecoveryStrategy.FALLBACK,
            attempts=2,
            escalated=False,
            recovered_value=value,
            user_message="Operation completed using fallback method",
        )

    def _to_error(self, exc: Exception, context: str | None) -> BaseError:
        carried = error_from_exception(exc)
        if carried is not None:
            return carried
        if isinstance(exc, TimeoutError):
            return ErrorFactory.create_timeout_error(
                f"Operation timed out after {self.config.timeout}s",
                {"service": self.name, "context": context, "timeout": self.config.timeout},
            )
        return ErrorFactory.create_integration_error(
            self.name,
            str(exc) or type(exc).__name__,
            {"context": context, "exception_type": type(exc).__name__},
        )

    def get_metrics(self) -> dict[str, Any]:
        return {"name": self.name, "enabled": self.config.enabled, **self.metrics}
