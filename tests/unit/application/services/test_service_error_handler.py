"""Tests for the service error handler."""

from unittest.mock import AsyncMock

import pytest

from inbox_recovery.application.services import ServiceErrorConfig, ServiceErrorHandler
from inbox_recovery.domain.errors import (
    ErrorCategory,
    ErrorFactory,
    ErrorRecoveryResult,
    ErrorSeverity,
    RecoveryError,
    RecoveryStrategy,
)
from inbox_recovery.infrastructure.resilience.circuit_breaker import CircuitBreakerConfig
from inbox_recovery.infrastructure.resilience.recovery_manager import RecoveryManager


@pytest.fixture
def idle_manager():
    """Manager for tests that only classify and never execute."""
    return RecoveryManager()


class TestServiceErrorConfig:
    def test_defaults(self):
        config = ServiceErrorConfig()

        assert config.enable_recovery is True
        assert config.enable_logging is True
        assert config.default_retries == 3
        assert config.default_retry_delay == 2.0

    def test_validation(self):
        with pytest.raises(ValueError, match="default_retries"):
            ServiceErrorConfig(default_retries=0)
        with pytest.raises(ValueError, match="default_retry_delay"):
            ServiceErrorConfig(default_retry_delay=-1)


class TestClassification:
    """Test category, severity, strategy and code heuristics."""

    @pytest.mark.parametrize(
        "service, exc, category, code, strategy",
        [
            ("twilio", Exception("Unauthorized request"), ErrorCategory.AUTHENTICATION, "TWILIO_GENERAL", RecoveryStrategy.ESCALATE),
            ("twilio", Exception("Rate limit exceeded"), ErrorCategory.RATE_LIMIT, "RATE_001", RecoveryStrategy.RETRY),
            ("whatsapp", Exception("503 Service Unavailable"), ErrorCategory.INTEGRATION, "INT_001", RecoveryStrategy.CIRCUIT_BREAKER),
            ("email", Exception("SMTP connection dropped"), ErrorCategory.NETWORK, "NET_001", RecoveryStrategy.RETRY),
            ("email", Exception("mailbox full"), ErrorCategory.INTEGRATION, "INT_001", RecoveryStrategy.CIRCUIT_BREAKER),
            ("database_service", Exception("deadlock detected"), ErrorCategory.DATABASE, "DATABASESERVICE_GENERAL", RecoveryStrategy.CIRCUIT_BREAKER),
            ("inbox", TimeoutError(), ErrorCategory.TIMEOUT, "TIMEOUT_001", RecoveryStrategy.RETRY),
            ("inbox", ConnectionResetError("peer reset"), ErrorCategory.NETWORK, "NET_001", RecoveryStrategy.RETRY),
            ("inbox", ValueError("validation failed for field 'to'"), ErrorCategory.VALIDATION, "INBOX_VALIDATION", RecoveryStrategy.RETRY),
            ("inbox", Exception("permission denied"), ErrorCategory.AUTHORIZATION, "INBOX_GENERAL", RecoveryStrategy.ESCALATE),
            ("inbox", Exception("thread already archived"), ErrorCategory.BUSINESS_LOGIC, "INBOX_GENERAL", RecoveryStrategy.RETRY),
        ],
    )
    def test_classification(self, idle_manager, service, exc, category, code, strategy):
        handler = ServiceErrorHandler(service, idle_manager)

        error = handler.create_recoverable_error(exc, "send")

        assert error.category == category
        assert error.code == code
        assert error.recovery_strategy == strategy
        assert error.source == service
        assert error.context["operation"] == "send"
        assert error.context["exception_type"] == type(exc).__name__

    @pytest.mark.parametrize(
        "service, message, severity",
        [
            ("database", "anything", ErrorSeverity.CRITICAL),
            ("auth_provider", "anything", ErrorSeverity.CRITICAL),
            ("sms", "fatal provider error", ErrorSeverity.HIGH),
            ("sms", "rate limit hit", ErrorSeverity.MEDIUM),
            ("sms", "something else", ErrorSeverity.HIGH),
        ],
    )
    def test_severity(self, idle_manager, service, message, severity):
        handler = ServiceErrorHandler(service, idle_manager)

        assert handler.determine_severity(Exception(message)) == severity

    def test_recovery_error_keeps_carried_error(self, idle_manager):
        handler = ServiceErrorHandler("twilio", idle_manager)
        carried = ErrorFactory.create_rate_limit_error("twilio", 20)

        assert handler.create_recoverable_error(RecoveryError(carried)) is carried

    def test_policy_values(self, idle_manager):
        """Test retry settings and fallback are recorded on the error."""
        handler = ServiceErrorHandler("inbox", idle_manager, ServiceErrorConfig(default_retry_delay=1.5))
        fallback = AsyncMock()

        explicit = handler.create_recoverable_error(
            ConnectionError(), max_retries=5, retry_delay=0.5, fallback_function=fallback
        )
        defaults = handler.create_recoverable_error(ConnectionError())

        assert explicit.max_retries == 5
        assert explicit.retry_after == 0.5
        assert explicit.fallback_action is fallback
        assert defaults.max_retries == 3
        assert defaults.retry_after == 1.5

    def test_user_and_request_ids(self, idle_manager):
        handler = ServiceErrorHandler("inbox", idle_manager)

        error = handler.create_structured_error(
            ConnectionError("x"), "sync", user_id="u1", request_id="r1", metadata={"thread": "t1"}
        )

        assert error.user_id == "u1"
        assert error.request_id == "r1"
        assert error.context["metadata"] == {"thread": "t1"}


class TestExecute:
    """Test execute()."""

    @pytest.mark.asyncio
    async def test_success(self, manager):
        handler = ServiceErrorHandler("inbox", manager)

        assert await handler.execute(AsyncMock(return_value="ok"), "load") == "ok"

    @pytest.mark.asyncio
    async def test_failure_recovered_by_retry(self, manager, recording_sleep):
        handler = ServiceErrorHandler("inbox", manager)
        operation = AsyncMock(side_effect=[ConnectionError("network unreachable"), "ok"])

        assert await handler.execute(operation, "load") == "ok"
        assert operation.await_count == 2
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_unrecoverable_failure_raises_structured_error(self, manager):
        """Test codes outside the retry allow-list surface as RecoveryError."""
        handler = ServiceErrorHandler("inbox", manager)
        original = ValueError("validation failed")
        operation = AsyncMock(side_effect=original)

        with pytest.raises(RecoveryError) as exc_info:
            await handler.execute(operation, "send")

        assert exc_info.value.error.code == "INBOX_VALIDATION"
        assert exc_info.value.__cause__ is original
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_recovery_disabled(self, manager):
        handler = ServiceErrorHandler("inbox", manager, ServiceErrorConfig(enable_recovery=False))
        operation = AsyncMock(side_effect=ConnectionError("network unreachable"))

        with pytest.raises(RecoveryError) as exc_info:
            await handler.execute(operation, "send")

        assert exc_info.value.error.code == "NET_001"
        assert operation.await_count == 1


class TestExecuteWithRecovery:
    """Test execute_with_recovery()."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, manager):
        handler = ServiceErrorHandler("inbox", manager)
        operation = AsyncMock(return_value="ok")

        assert await handler.execute_with_recovery(operation, "send") == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_recovered_through_retry(self, manager):
        handler = ServiceErrorHandler("inbox", manager)
        operation = AsyncMock(side_effect=[ConnectionError("connection refused"), "ok"])

        assert await handler.execute_with_recovery(operation, "send") == "ok"
        assert operation.await_count == 2
        assert manager.get_recovery_stats()["by_strategy"]["retry"]["succeeded"] == 1

    @pytest.mark.asyncio
    async def test_recovered_through_circuit_breaker(self, manager):
        """Test integration failures go through the service's breaker."""
        manager.register_circuit_breaker("twilio", CircuitBreakerConfig(failure_threshold=3))
        handler = ServiceErrorHandler("twilio", manager)
        operation = AsyncMock(side_effect=[Exception("503 from provider"), "SM123"])

        assert await handler.execute_with_recovery(operation, "send_sms") == "SM123"
        assert manager.get_circuit_breaker("twilio").success_count == 1

    @pytest.mark.asyncio
    async def test_breaker_failure_keeps_service_classification(self, manager):
        """Test a failure through the breaker surfaces the handler's own classification."""
        manager.register_circuit_breaker("database")
        handler = ServiceErrorHandler("database", manager)
        operation = AsyncMock(side_effect=OSError("database connection refused"))

        with pytest.raises(RecoveryError) as exc_info:
            await handler.execute_with_recovery(operation, "load_threads")

        error = exc_info.value.error
        assert error.category == ErrorCategory.DATABASE
        assert error.code == "DATABASE_NETWORK"
        assert error.recovery_strategy == RecoveryStrategy.CIRCUIT_BREAKER
        assert error.source == "database"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_result_without_final_error_raises_classified_error(self, idle_manager):
        """Test the handler's own error is raised when the result carries none."""
        failed = ErrorRecoveryResult(
            success=False,
            strategy=RecoveryStrategy.RETRY,
            attempts=3,
            escalated=True,
            user_message="failed",
            final_error=ErrorFactory.create_network_error("reset"),
        )
        failed.final_error = None
        idle_manager.execute_with_recovery = AsyncMock(return_value=failed)
        handler = ServiceErrorHandler("inbox", idle_manager)

        with pytest.raises(RecoveryError) as exc_info:
            await handler.execute_with_recovery(
                AsyncMock(side_effect=ConnectionError("connection refused")), "send"
            )

        assert exc_info.value.error.code == "NET_001"
        assert exc_info.value.error.source == "inbox"

    @pytest.mark.asyncio
    async def test_escalation_raises(self, manager):
        handler = ServiceErrorHandler("twilio", manager)
        operation = AsyncMock(side_effect=Exception("Authentication failed"))

        with pytest.raises(RecoveryError) as exc_info:
            await handler.execute_with_recovery(operation, "send_sms")

        assert exc_info.value.error.category == ErrorCategory.AUTHENTICATION
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_final_error(self, manager):
        handler = ServiceErrorHandler("inbox", manager)
        operation = AsyncMock(side_effect=ConnectionError("connection refused"))

        with pytest.raises(RecoveryError) as exc_info:
            await handler.execute_with_recovery(operation, "send")

        assert exc_info.value.error.code == "NET_001"
        assert operation.await_count == 4

    @pytest.mark.asyncio
    async def test_disabled_recovery_delegates_to_execute(self, manager):
        handler = ServiceErrorHandler("inbox", manager, ServiceErrorConfig(enable_recovery=False))

        assert await handler.execute_with_recovery(AsyncMock(return_value="ok")) == "ok"
