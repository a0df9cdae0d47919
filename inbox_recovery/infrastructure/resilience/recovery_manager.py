"""
Recovery Manager

Dispatches a classified failure to the recovery mechanism named by its
strategy and owns the per-service circuit breakers and fallback handlers.
"""

import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from inbox_recovery.domain.errors import (
    ErrorRecoveryResult,
    RecoverableError,
    RecoveryError,
    RecoveryStrategy,
)

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerError
from .config import RecoveryConfig
from .fallback import FallbackConfig, FallbackHandler
from .retry import RetryConfig, RetryHandler, SleepFunc

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any] | Any]


class RecoveryManager:
    """
    Routes failed operations through retry, circuit breaker or fallback.

    Breakers and fallback handlers are registered by service name; a second
    registration under the same name replaces the first.
    """

    def __init__(self, retry_config: RetryConfig | None = None, sleep: SleepFunc | None = None) -> None:
        self.retry_handler = RetryHandler(retry_config, sleep=sleep)
        self._circuit_breakers: dict[str, CircuitBreaker] = {}
        self._fallback_handlers: dict[str, FallbackHandler] = {}
        self._stats: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

    def register_circuit_breaker(
        self, name: str, config: CircuitBreakerConfig | None = None
    ) -> CircuitBreaker:
        """
        Register (or replace) the circuit breaker for a service.

        Args:
            name: Service name
            config: Breaker configuration (defaults to CircuitBreakerConfig())

        Returns:
            The newly registered CircuitBreaker
        """
        previous = self._circuit_breakers.get(name)
        if previous is not None:
            logger.info(f"Replacing circuit breaker '{name}'")
            previous.stop_monitoring()

        breaker = CircuitBreaker(name, config)
        self._circuit_breakers[name] = breaker
        return breaker

    def register_fallback_handler(self, name: str, config: FallbackConfig) -> FallbackHandler:
        """Register (or replace) the fallback handler for a service."""
        handler = FallbackHandler(config, name=name)
        self._fallback_handlers[name] = handler
        return handler

    def get_circuit_breaker(self, name: str) -> CircuitBreaker | None:
        return self._circuit_breakers.get(name)

    def get_fallback_handler(self, name: str) -> FallbackHandler | None:
        return self._fallback_handlers.get(name)

    async def execute_with_recovery(
        self,
        fn: Operation,
        error: RecoverableError,
        service_name: str | None = None,
        context: str | None = None,
    ) -> ErrorRecoveryResult:
        """
        Re-execute ``fn`` using the strategy carried by ``error``.

        Args:
            fn: Zero-argument operation that originally failed
            error: Classified failure describing how to recover
            service_name: Registry key for breaker/fallback lookup
            context: Label used in logs

        Returns:
            ErrorRecoveryResult; this method does not raise for operation failures
        """
        strategy = error.recovery_strategy
        start_time = time.perf_counter()

        logger.info(
            f"Starting recovery with strategy {strategy.value}",
            extra={
                "recovery_context": context,
                "service_name": service_name,
                "strategy": strategy.value,
                "error_code": error.code,
                "error_id": error.id,
            },
        )

        try:
            result = await self._dispatch(fn, error, service_name, context)
        except Exception as e:
            logger.error(
                f"Recovery machinery failed: {e}",
                exc_info=True,
                extra={
                    "recovery_context": context,
                    "service_name": service_name,
                    "strategy": strategy.value,
                    "error_code": error.code,
                },
            )
            result = ErrorRecoveryResult(
                success=False,
                strategy=strategy,
                attempts=1,
                escalated=True,
                final_error=error,
                user_message="Recovery failed; the issue has been escalated",
            )

        self._record_outcome(result)
        logger.info(
            f"Recovery finished: {'success' if result.success else 'failure'}",
            extra={
                "recovery_context": context,
                "service_name": service_name,
                "strategy": result.strategy.value,
                "attempts": result.attempts,
                "escalated": result.escalated,
                "elapsed_ms": (time.perf_counter() - start_time) * 1000,
            },
        )
        return result

    async def _dispatch(
        self,
        fn: Operation,
        error: RecoverableError,
        service_name: str | None,
        context: str | None,
    ) -> ErrorRecoveryResult:
        strategy = error.recovery_strategy

        if strategy == RecoveryStrategy.CIRCUIT_BREAKER:
            breaker = self._circuit_breakers.get(service_name) if service_name else None
            if breaker is not None:
                return await self._execute_with_circuit_breaker(breaker, fn, error, context)
            return await self.retry_handler.execute_with_retry(fn, error, context)

        if strategy == RecoveryStrategy.FALLBACK:
            handler = self._fallback_handlers.get(service_name) if service_name else None
            if handler is not None:
                return await handler.execute_with_fallback(fn, context)
            return await self.retry_handler.execute_with_retry(fn, error, context)

        if strategy == RecoveryStrategy.ESCALATE:
            logger.warning(
                f"Escalating error {error.code}",
                extra={"recovery_context": context, "error_code": error.code, "error_id": error.id},
            )
            return ErrorRecoveryResult(
                success=False,
                strategy=strategy,
                attempts=0,
                escalated=True,
                final_error=error,
                user_message="This issue has been escalated to our support team",
            )

        if strategy == RecoveryStrategy.IGNORE:
            # The operation is not re-run; callers treat this as recovered
            return ErrorRecoveryResult(
                success=True,
                strategy=strategy,
                attempts=0,
                escalated=False,
                user_message="Error ignored, continuing operation",
            )

        # RETRY and MANUAL_INTERVENTION
        return await self.retry_handler.execute_with_retry(fn, error, context)

    async def _execute_with_circuit_breaker(
        self,
        breaker: CircuitBreaker,
        fn: Operation,
        error: RecoverableError,
        context: str | None,
    ) -> ErrorRecoveryResult:
        try:
            result = await breaker.execute(fn)
        except CircuitBreakerError as e:
            return ErrorRecoveryResult(
                success=False,
                strategy=RecoveryStrategy.CIRCUIT_BREAKER,
                attempts=0,
                escalated=False,
                final_error=e.error,
                user_message="Service is temporarily unavailable, please try again later",
            )
        except Exception as e:
            logger.warning(
                f"Operation failed through circuit breaker '{breaker.name}': {e}",
                extra={
                    "recovery_context": context,
                    "circuit_breaker": breaker.name,
                    "circuit_state": breaker.state.value,
                    "error_code": error.code,
                    "error_type": type(e).__name__,
                },
            )
            # The caller's classification stands unless the failure carries its own
            return ErrorRecoveryResult(
                success=False,
                strategy=RecoveryStrategy.CIRCUIT_BREAKER,
                attempts=1,
                escalated=True,
                final_error=e.error if isinstance(e, RecoveryError) else error,
                user_message="Recovery attempt failed",
            )

        return ErrorRecoveryResult(
            success=True,
            strategy=RecoveryStrategy.CIRCUIT_BREAKER,
            attempts=1,
            escalated=False,
            recovered_value=result,
            user_message="Operation completed successfully",
        )

    def _record_outcome(self, result: ErrorRecoveryResult) -> None:
        stats = self._stats[result.strategy.value]
        stats["total"] += 1
        stats["succeeded" if result.success else "failed"] += 1
        if result.escalated:
            stats["escalated"] += 1
        stats["attempts"] += result.attempts

    def get_circuit_breaker_metrics(self) -> dict[str, dict[str, Any]]:
        """Get metrics for all circuit breakers."""
        return {name: breaker.get_metrics() for name, breaker in self._circuit_breakers.items()}

    def get_recovery_stats(self) -> dict[str, Any]:
        """
        Summarize recovery outcomes since construction.

        Returns:
            Dictionary with overall totals and a per-strategy breakdown
        """
        by_strategy = {name: dict(counts) for name, counts in self._stats.items()}
        total = sum(counts.get("total", 0) for counts in by_strategy.values())
        succeeded = sum(counts.get("succeeded", 0) for counts in by_strategy.values())
        return {
            "total_recoveries": total,
            "successful_recoveries": succeeded,
            "failed_recoveries": total - succeeded,
            "escalations": sum(counts.get("escalated", 0) for counts in by_strategy.values()),
            "success_rate": succeeded / total if total else 0.0,
            "by_strategy": by_strategy,
        }

    async def close(self) -> None:
        """Stop every circuit breaker monitor."""
        for breaker in self._circuit_breakers.values():
            await breaker.close()

    async def __aenter__(self) -> "RecoveryManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def create_recovery_manager(
    config: RecoveryConfig | None = None, sleep: SleepFunc | None = None
) -> RecoveryManager:
    """
    Build a RecoveryManager from configuration.

    Registers one circuit breaker per entry in ``config.circuit_breakers``
    when ``register_default_breakers`` is set.
    """
    config = config or RecoveryConfig()
    config.validate()

    manager = RecoveryManager(config.to_retry_config(), sleep=sleep)
    if config.register_default_breakers:
        for name in config.circuit_breakers:
            manager.register_circuit_breaker(name, config.circuit_breaker_config(name))

    logger.info(
        f"Created recovery manager with {len(manager.get_circuit_breaker_metrics())} circuit breakers"
    )
    return manager
