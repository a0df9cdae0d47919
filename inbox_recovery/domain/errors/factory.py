"""
Error Factory

Builds pre-classified errors so call sites never hand-assemble severity,
category and recovery policy.
"""

import random
import string
import time
import traceback
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from .codes import ErrorCodes
from .types import BaseError, ErrorCategory, ErrorSeverity, RecoverableError, RecoveryStrategy

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ErrorFactory:
    """Factory for standardized error records."""

    @staticmethod
    def generate_error_id() -> str:
        """Generate an id of the form ``err_<epoch-ms>_<9 base36 chars>``."""
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"err_{int(time.time() * 1000)}_{suffix}"

    @classmethod
    def create_error(
        cls,
        code: str,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        source: str,
        context: dict[str, Any] | None = None,
        user_id: str | None = None,
        request_id: str | None = None,
    ) -> BaseError:
        """
        Create a base error.

        Args:
            code: Stable machine-readable code
            message: Human-readable description
            category: Failure category
            severity: Failure severity
            source: Name of the originating component
            context: Free-form diagnostic payload
            user_id: Affected user, if known
            request_id: Originating request, if known

        Returns:
            BaseError instance
        """
        return BaseError(
            id=cls.generate_error_id(),
            code=code,
            message=message,
            category=category,
            severity=severity,
            source=source,
            timestamp=datetime.now(UTC),
            context=dict(context or {}),
            user_id=user_id,
            request_id=request_id,
            stack="".join(traceback.format_stack()[:-1]),
        )

    @staticmethod
    def create_recoverable_error(
        base_error: BaseError,
        recovery_strategy: RecoveryStrategy,
        *,
        max_retries: int = 3,
        retry_after: float = 1.0,
        fallback_action: Callable[[], Awaitable[Any]] | None = None,
        escalation_threshold: int = 5,
    ) -> RecoverableError:
        """Attach a recovery policy to a base error."""
        return RecoverableError(
            id=base_error.id,
            code=base_error.code,
            message=base_error.message,
            category=base_error.category,
            severity=base_error.severity,
            source=base_error.source,
            timestamp=base_error.timestamp,
            context=base_error.context,
            user_id=base_error.user_id,
            request_id=base_error.request_id,
            stack=base_error.stack,
            recovery_strategy=recovery_strategy,
            max_retries=max_retries,
            retry_after=retry_after,
            escalation_threshold=escalation_threshold,
            fallback_action=fallback_action,
            can_recover=True,
            retry_count=0,
        )

    @classmethod
    def create_authentication_error(
        cls, message: str, context: dict[str, Any] | None = None
    ) -> RecoverableError:
        base_error = cls.create_error(
            ErrorCodes.AUTHENTICATION,
            message,
            ErrorCategory.AUTHENTICATION,
            ErrorSeverity.HIGH,
            "authentication_service",
            context,
        )
        return cls.create_recoverable_error(base_error, RecoveryStrategy.ESCALATE, max_retries=1)

    @classmethod
    def create_validation_error(cls, message: str, context: dict[str, Any] | None = None) -> BaseError:
        """Validation failures are not recoverable, so no policy is attached."""
        return cls.create_error(
            ErrorCodes.VALIDATION,
            message,
            ErrorCategory.VALIDATION,
            ErrorSeverity.MEDIUM,
            "validation_service",
            context,
        )

    @classmethod
    def create_network_error(
        cls, message: str, context: dict[str, Any] | None = None
    ) -> RecoverableError:
        base_error = cls.create_error(
            ErrorCodes.NETWORK,
            message,
            ErrorCategory.NETWORK,
            ErrorSeverity.HIGH,
            "network_service",
            context,
        )
        return cls.create_recoverable_error(
            base_error, RecoveryStrategy.RETRY, max_retries=3, retry_after=2.0
        )

    @classmethod
    def create_database_error(
        cls, message: str, context: dict[str, Any] | None = None
    ) -> RecoverableError:
        base_error = cls.create_error(
            ErrorCodes.DATABASE,
            message,
            ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL,
            "database_service",
            context,
        )
        return cls.create_recoverable_error(
            base_error,
            RecoveryStrategy.CIRCUIT_BREAKER,
            max_retries=2,
            retry_after=5.0,
            escalation_threshold=3,
        )

    @classmethod
    def create_integration_error(
        cls, service: str, message: str, context: dict[str, Any] | None = None
    ) -> RecoverableError:
        base_error = cls.create_error(
            ErrorCodes.INTEGRATION,
            message,
            ErrorCategory.INTEGRATION,
            ErrorSeverity.HIGH,
            f"{service}_integration",
            context,
        )
        return cls.create_recoverable_error(
            base_error, RecoveryStrategy.FALLBACK, max_retries=2, retry_after=3.0
        )

    @classmethod
    def create_rate_limit_error(cls, service: str, retry_after: float) -> RecoverableError:
        """
        Create a rate-limit error.

        Args:
            service: Rate-limited service; also used as the error source
            retry_after: Seconds the provider asked us to wait
        """
        base_error = cls.create_error(
            ErrorCodes.RATE_LIMIT,
            f"Rate limit exceeded for {service}",
            ErrorCategory.RATE_LIMIT,
            ErrorSeverity.MEDIUM,
            service,
            {"retry_after": retry_after},
        )
        return cls.create_recoverable_error(
            base_error, RecoveryStrategy.RETRY, max_retries=1, retry_after=retry_after
        )

    @classmethod
    def create_timeout_error(
        cls, message: str, context: dict[str, Any] | None = None
    ) -> RecoverableError:
        base_error = cls.create_error(
            ErrorCodes.TIMEOUT,
            message,
            ErrorCategory.TIMEOUT,
            ErrorSeverity.MEDIUM,
            "timeout_service",
            context,
        )
        return cls.create_recoverable_error(
            base_error, RecoveryStrategy.RETRY, max_retries=3, retry_after=1.0
        )
