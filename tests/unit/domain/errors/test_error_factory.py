"""
Tests for the error factory.
"""

import re
from datetime import UTC

import pytest

from inbox_recovery.domain.errors import (
    BaseError,
    ErrorCategory,
    ErrorCodes,
    ErrorFactory,
    ErrorSeverity,
    RecoverableError,
    RecoveryStrategy,
)


class TestErrorFactory:
    """Test base error construction."""

    def test_generate_error_id_format(self):
        """Test ids look like err_<epoch-ms>_<9 base36 chars>."""
        error_id = ErrorFactory.generate_error_id()

        assert re.fullmatch(r"err_\d{13}_[a-z0-9]{9}", error_id)

    def test_ids_are_unique(self):
        """Test every error gets its own id."""
        ids = {ErrorFactory.generate_error_id() for _ in range(200)}
        assert len(ids) == 200

    def test_create_error(self):
        """Test all fields are populated."""
        error = ErrorFactory.create_error(
            "CUSTOM_001",
            "Something broke",
            ErrorCategory.SYSTEM,
            ErrorSeverity.LOW,
            "scheduler",
            {"job": "digest"},
            user_id="user-1",
            request_id="req-1",
        )

        assert error.code == "CUSTOM_001"
        assert error.category == ErrorCategory.SYSTEM
        assert error.severity == ErrorSeverity.LOW
        assert error.source == "scheduler"
        assert error.context == {"job": "digest"}
        assert error.user_id == "user-1"
        assert error.request_id == "req-1"
        assert error.timestamp.tzinfo == UTC
        assert error.stack

    def test_context_is_copied(self):
        """Test caller mutations do not leak into the error."""
        context = {"channel": "sms"}
        error = ErrorFactory.create_error(
            "X", "m", ErrorCategory.UNKNOWN, ErrorSeverity.LOW, "src", context
        )
        context["channel"] = "email"

        assert error.context == {"channel": "sms"}

    def test_create_recoverable_error_preserves_base(self):
        """Test recovery policy is attached without changing identity."""
        base = ErrorFactory.create_error(
            "X", "m", ErrorCategory.SYSTEM, ErrorSeverity.HIGH, "src"
        )

        error = ErrorFactory.create_recoverable_error(
            base, RecoveryStrategy.FALLBACK, max_retries=5, retry_after=0.5, escalation_threshold=2
        )

        assert error.id == base.id
        assert error.code == base.code
        assert error.recovery_strategy == RecoveryStrategy.FALLBACK
        assert error.max_retries == 5
        assert error.retry_after == 0.5
        assert error.escalation_threshold == 2
        assert error.can_recover is True
        assert error.retry_count == 0


class TestConvenienceConstructors:
    """Test the pre-classified constructors."""

    @pytest.mark.parametrize(
        "error, code, category, severity, strategy, max_retries, retry_after, source",
        [
            (
                ErrorFactory.create_authentication_error("token expired"),
                "AUTH_001",
                ErrorCategory.AUTHENTICATION,
                ErrorSeverity.HIGH,
                RecoveryStrategy.ESCALATE,
                1,
                1.0,
                "authentication_service",
            ),
            (
                ErrorFactory.create_network_error("reset"),
                "NET_001",
                ErrorCategory.NETWORK,
                ErrorSeverity.HIGH,
                RecoveryStrategy.RETRY,
                3,
                2.0,
                "network_service",
            ),
            (
                ErrorFactory.create_database_error("deadlock"),
                "DB_001",
                ErrorCategory.DATABASE,
                ErrorSeverity.CRITICAL,
                RecoveryStrategy.CIRCUIT_BREAKER,
                2,
                5.0,
                "database_service",
            ),
            (
                ErrorFactory.create_integration_error("twilio", "503 from provider"),
                "INT_001",
                ErrorCategory.INTEGRATION,
                ErrorSeverity.HIGH,
                RecoveryStrategy.FALLBACK,
                2,
                3.0,
                "twilio_integration",
            ),
            (
                ErrorFactory.create_timeout_error("read timed out"),
                "TIMEOUT_001",
                ErrorCategory.TIMEOUT,
                ErrorSeverity.MEDIUM,
                RecoveryStrategy.RETRY,
                3,
                1.0,
                "timeout_service",
            ),
        ],
    )
    def test_classification(
        self, error, code, category, severity, strategy, max_retries, retry_after, source
    ):
        """Test each constructor's classification and policy."""
        assert isinstance(error, RecoverableError)
        assert error.code == code
        assert error.category == category
        assert error.severity == severity
        assert error.recovery_strategy == strategy
        assert error.max_retries == max_retries
        assert error.retry_after == retry_after
        assert error.source == source

    def test_database_error_escalation_threshold(self):
        assert ErrorFactory.create_database_error("deadlock").escalation_threshold == 3

    def test_validation_error_is_not_recoverable(self):
        """Test validation failures carry no recovery policy."""
        error = ErrorFactory.create_validation_error("invalid phone", {"field": "to"})

        assert type(error) is BaseError
        assert error.code == ErrorCodes.VALIDATION
        assert error.category == ErrorCategory.VALIDATION
        assert error.severity == ErrorSeverity.MEDIUM
        assert error.source == "validation_service"

    def test_rate_limit_error(self):
        """Test provider retry-after is kept as policy and context."""
        error = ErrorFactory.create_rate_limit_error("twilio", 30.0)

        assert error.code == "RATE_001"
        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.severity == ErrorSeverity.MEDIUM
        assert error.recovery_strategy == RecoveryStrategy.RETRY
        assert error.max_retries == 1
        assert error.retry_after == 30.0
        assert error.context == {"retry_after": 30.0}
        assert error.source == "twilio"
        assert error.message == "Rate limit exceeded for twilio"

    def test_default_retryable_codes(self):
        assert ErrorCodes.DEFAULT_RETRYABLE == frozenset(
            {"NET_001", "TIMEOUT_001", "RATE_001", "INT_001"}
        )
