"""Service Error Handler - classifies channel service failures and routes them to recovery."""

import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from inbox_recovery.domain.errors import (
    BaseError,
    ErrorCategory,
    ErrorCodes,
    ErrorFactory,
    ErrorSeverity,
    RecoverableError,
    RecoveryError,
    RecoveryStrategy,
)
from inbox_recovery.infrastructure.resilience.recovery_manager import RecoveryManager
from inbox_recovery.infrastructure.resilience.retry import invoke_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Categories that share a code with the error factory, so retry allow-lists apply
_CANONICAL_CODES = {
    ErrorCategory.NETWORK: ErrorCodes.NETWORK,
    ErrorCategory.TIMEOUT: ErrorCodes.TIMEOUT,
    ErrorCategory.RATE_LIMIT: ErrorCodes.RATE_LIMIT,
    ErrorCategory.INTEGRATION: ErrorCodes.INTEGRATION,
}

_STRATEGIES = {
    ErrorCategory.NETWORK: RecoveryStrategy.RETRY,
    ErrorCategory.TIMEOUT: RecoveryStrategy.RETRY,
    ErrorCategory.RATE_LIMIT: RecoveryStrategy.RETRY,
    ErrorCategory.DATABASE: RecoveryStrategy.CIRCUIT_BREAKER,
    ErrorCategory.INTEGRATION: RecoveryStrategy.CIRCUIT_BREAKER,
    ErrorCategory.AUTHENTICATION: RecoveryStrategy.ESCALATE,
    ErrorCategory.AUTHORIZATION: RecoveryStrategy.ESCALATE,
}


@dataclass(frozen=True)
class ServiceErrorConfig:
    """Behavior switches for a service error handler."""

    enable_recovery: bool = True
    enable_logging: bool = True
    default_retries: int = 3
    default_retry_delay: float = 2.0  # seconds

    def __post_init__(self) -> None:
        if self.default_retries < 1:
            raise ValueError("default_retries must be at least 1")
        if self.default_retry_delay < 0:
            raise ValueError("default_retry_delay must be non-negative")


class ServiceErrorHandler:
    """Application layer wrapper that gives a channel service uniform error handling.

    Failures are classified into the error taxonomy, handed to the recovery
    manager under this service's name and, if recovery does not succeed,
    re-raised as ``RecoveryError`` carrying the structured error.
    """

    def __init__(
        self,
        service_name: str,
        manager: RecoveryManager,
        config: ServiceErrorConfig | None = None,
    ) -> None:
        self.service_name = service_name
        self.manager = manager
        self.config = config or ServiceErrorConfig()

    async def execute(
        self,
        operation: Callable[[], Awaitable[T] | T],
        operation_name: str = "unknown",
        user_id: str | None = None,
        request_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> T:
        """Run ``operation``; on failure classify it and attempt recovery.

        Raises:
            RecoveryError: If the operation failed and could not be recovered
        """
        start_time = time.perf_counter()
        if self.config.enable_logging:
            logger.debug(
                f"Service operation started: {self.service_name}.{operation_name}",
                extra={"service_name": self.service_name, "operation": operation_name},
            )

        try:
            result = await invoke_operation(operation)
        except Exception as e:
            return await self._handle_error(
                e, operation, operation_name, user_id, request_id, metadata
            )

        if self.config.enable_logging:
            logger.debug(
                f"Service operation completed: {self.service_name}.{operation_name}",
                extra={
                    "service_name": self.service_name,
                    "operation": operation_name,
                    "elapsed_ms": (time.perf_counter() - start_time) * 1000,
                },
            )
        return result

    async def execute_with_recovery(
        self,
        operation: Callable[[], Awaitable[T] | T],
        operation_name: str = "unknown",
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        fallback_function: Callable[[], Awaitable[Any]] | None = None,
        user_id: str | None = None,
        request_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> T:
        """Run ``operation`` once directly, then hand a failure to the recovery manager.

        Args:
            operation: Zero-argument operation
            operation_name: Name used in logs and error context
            max_retries: Retry budget recorded on the recoverable error
            retry_delay: Delay recorded on the recoverable error, in seconds
            fallback_function: Fallback recorded on the recoverable error

        Raises:
            RecoveryError: Carrying the final error when recovery fails
        """
        if not self.config.enable_recovery:
            return await self.execute(operation, operation_name, user_id, request_id, metadata)

        try:
            return await invoke_operation(operation)
        except Exception as e:
            error = self.create_recoverable_error(
                e,
                operation_name,
                max_retries=max_retries,
                retry_delay=retry_delay,
                fallback_function=fallback_function,
                user_id=user_id,
                request_id=request_id,
                metadata=metadata,
            )
            result = await self.manager.execute_with_recovery(
                operation, error, self.service_name, f"{self.service_name}_{operation_name}"
            )

            if not result.success:
                raise RecoveryError(result.final_error or error) from e

            if self.config.enable_logging:
                logger.info(
                    f"Service operation recovered: {self.service_name}.{operation_name}",
                    extra={
                        "service_name": self.service_name,
                        "operation": operation_name,
                        "strategy": result.strategy.value,
                        "attempts": result.attempts,
                    },
                )
            return result.recovered_value

    async def _handle_error(
        self,
        exc: Exception,
        operation: Callable[[], Awaitable[T] | T],
        operation_name: str,
        user_id: str | None,
        request_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> T:
        structured = self.create_structured_error(exc, operation_name, user_id, request_id, metadata)

        if self.config.enable_logging:
            logger.error(
                f"Service operation failed: {self.service_name}.{operation_name}: {exc}",
                extra={
                    "service_name": self.service_name,
                    "operation": operation_name,
                    "error_id": structured.id,
                    "error_code": structured.code,
                },
            )

        if self.config.enable_recovery:
            error = self._attach_policy(structured)
            result = await self.manager.execute_with_recovery(
                operation, error, self.service_name, f"{self.service_name}_{operation_name}"
            )
            if result.success:
                return result.recovered_value

        raise RecoveryError(structured) from exc

    def create_structured_error(
        self,
        exc: Exception,
        operation_name: str = "unknown",
        user_id: str | None = None,
        request_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> BaseError:
        """Classify ``exc`` into a BaseError attributed to this service."""
        if isinstance(exc, RecoveryError):
            return exc.error

        category = self.categorize(exc)
        return ErrorFactory.create_error(
            self.generate_error_code(exc, category),
            str(exc) or "Service operation failed",
            category,
            self.determine_severity(exc),
            self.service_name,
            {
                "operation": operation_name,
                "exception_type": type(exc).__name__,
                "metadata": metadata or {},
            },
            user_id=user_id,
            request_id=request_id,
        )

    def create_recoverable_error(
        self,
        exc: Exception,
        operation_name: str = "unknown",
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        fallback_function: Callable[[], Awaitable[Any]] | None = None,
        user_id: str | None = None,
        request_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RecoverableError:
        structured = self.create_structured_error(exc, operation_name, user_id, request_id, metadata)
        return self._attach_policy(structured, max_retries, retry_delay, fallback_function)

    def _attach_policy(
        self,
        error: BaseError,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        fallback_function: Callable[[], Awaitable[Any]] | None = None,
    ) -> RecoverableError:
        if isinstance(error, RecoverableError):
            return error
        return ErrorFactory.create_recoverable_error(
            error,
            self.determine_recovery_strategy(error),
            max_retries=max_retries or self.config.default_retries,
            retry_after=retry_delay if retry_delay is not None else self.config.default_retry_delay,
            fallback_action=fallback_function,
        )

    def categorize(self, exc: Exception) -> ErrorCategory:
        """Map an exception to a category using the service name and message."""
        message = str(exc).lower()
        service = self.service_name.lower()

        if any(name in service for name in ("twilio", "sms", "whatsapp")):
            if "authentication" in message or "unauthorized" in message:
                return ErrorCategory.AUTHENTICATION
            if "rate limit" in message or "too many requests" in message:
                return ErrorCategory.RATE_LIMIT
            return ErrorCategory.INTEGRATION

        if "email" in service:
            if "smtp" in message or "connection" in message:
                return ErrorCategory.NETWORK
            return ErrorCategory.INTEGRATION

        if "database" in service or "prisma" in service:
            return ErrorCategory.DATABASE

        if isinstance(exc, TimeoutError):
            return ErrorCategory.TIMEOUT
        if isinstance(exc, ConnectionError):
            return ErrorCategory.NETWORK
        if "validation" in message or "invalid" in message:
            return ErrorCategory.VALIDATION
        if "timeout" in message or "timed out" in message:
            return ErrorCategory.TIMEOUT
        if "network" in message or "connection" in message:
            return ErrorCategory.NETWORK
        if "rate limit" in message or "too many requests" in message:
            return ErrorCategory.RATE_LIMIT
        if "unauthorized" in message or "authentication" in message:
            return ErrorCategory.AUTHENTICATION
        if "forbidden" in message or "permission" in message:
            return ErrorCategory.AUTHORIZATION

        return ErrorCategory.BUSINESS_LOGIC

    def determine_severity(self, exc: Exception) -> ErrorSeverity:
        message = str(exc).lower()
        service = self.service_name.lower()

        if "database" in service or "auth" in service:
            return ErrorSeverity.CRITICAL
        if any(word in message for word in ("critical", "fatal", "connection")):
            return ErrorSeverity.HIGH
        if "validation" in message or "rate limit" in message:
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.HIGH

    @staticmethod
    def determine_recovery_strategy(error: BaseError) -> RecoveryStrategy:
        return _STRATEGIES.get(error.category, RecoveryStrategy.RETRY)

    def generate_error_code(self, exc: Exception, category: ErrorCategory) -> str:
        """Return the canonical code for ``category`` or a ``<SERVICE>_<TYPE>`` code."""
        canonical = _CANONICAL_CODES.get(category)
        if canonical is not None:
            return canonical

        prefix = re.sub(r"[^A-Z]", "", self.service_name.upper()) or "SERVICE"
        return f"{prefix}_{self._error_type(exc)}"

    @staticmethod
    def _error_type(exc: Exception) -> str:
        message = str(exc).lower()

        if "network" in message or "connection" in message:
            return "NETWORK"
        if "timeout" in message:
            return "TIMEOUT"
        if "validation" in message:
            return "VALIDATION"
        if "authentication" in message:
            return "AUTH"
        if "rate limit" in message:
            return "RATE_LIMIT"
        if "database" in message:
            return "DATABASE"
        return "GENERAL"
