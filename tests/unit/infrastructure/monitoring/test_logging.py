"""
Tests for structured logging.
"""

import json
import logging
import sys

import pytest
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext

from inbox_recovery.domain.errors import RecoveryStrategy
from inbox_recovery.infrastructure.monitoring.logging import (
    RecoveryJSONFormatter,
    RecoveryLogFilter,
    SensitiveDataMasker,
    correlation_context,
    get_correlation_id,
    request_context,
    setup_structured_logging,
)


def _format(formatter, msg="recovery finished", level=logging.INFO, extra=None, exc_info=None):
    record = logging.getLogger("inbox_recovery.test").makeRecord(
        "inbox_recovery.test", level, __file__, 10, msg, (), exc_info, extra=extra
    )
    RecoveryLogFilter().filter(record)
    return json.loads(formatter.format(record))


@pytest.fixture
def preserve_root_logger():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSensitiveDataMasker:
    """Test credential masking."""

    def test_mask_key_value_pairs(self):
        masker = SensitiveDataMasker()

        masked = masker.mask_message("twilio call failed auth_token=abc123 account_sid: AC42")

        assert "abc123" not in masked
        assert "AC42" not in masked
        assert "auth_token=***MASKED***" in masked
        assert 'account_sid: "***MASKED***"' in masked

    def test_mask_json_fragment(self):
        masker = SensitiveDataMasker()

        masked = masker.mask_message('payload {"api_key": "sk_live_1"}')

        assert "sk_live_1" not in masked
        assert '"api_key": "***MASKED***"' in masked

    def test_plain_message_untouched(self):
        assert SensitiveDataMasker().mask_message("retry 2/3 failed") == "retry 2/3 failed"

    def test_mask_extra_fields(self):
        """Test sensitive keys are masked, excluded keys dropped and dicts traversed."""
        masker = SensitiveDataMasker()

        masked = masker.mask_extra_fields(
            {
                "webhook_secret": "whsec",
                "password": "hunter2",
                "channel": "sms",
                "provider": {"client_secret": "cs", "region": "us1"},
                "note": "token refresh_token=rt1",
            }
        )

        assert masked["webhook_secret"] == "***MASKED***"
        assert "password" not in masked
        assert masked["channel"] == "sms"
        assert masked["provider"] == {"client_secret": "***MASKED***", "region": "us1"}
        assert "rt1" not in masked["note"]


class TestRecoveryJSONFormatter:
    """Test JSON log output."""

    def test_basic_fields(self):
        entry = _format(RecoveryJSONFormatter())

        assert entry["message"] == "recovery finished"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "inbox_recovery.test"
        assert entry["timestamp"].endswith("+00:00")
        assert "correlation_id" not in entry
        assert "trace_id" not in entry

    def test_recovery_fields_are_grouped(self):
        """Test recovery extras land under 'recovery' and the rest under 'extra'."""
        entry = _format(
            RecoveryJSONFormatter(),
            extra={
                "error_code": "NET_001",
                "attempt": 2,
                "strategy": RecoveryStrategy.RETRY,
                "circuit_breaker": "twilio",
                "channel": "sms",
                "auth_token": "secret-value",
            },
        )

        assert entry["recovery"] == {
            "error_code": "NET_001",
            "attempt": 2,
            "strategy": "retry",
            "circuit_breaker": "twilio",
        }
        assert entry["extra"] == {"channel": "sms", "auth_token": "***MASKED***"}

    def test_exception_info(self):
        try:
            raise ConnectionError("socket closed")
        except ConnectionError:
            entry = _format(RecoveryJSONFormatter(), level=logging.ERROR, exc_info=sys.exc_info())

        assert entry["exception"]["type"] == "ConnectionError"
        assert entry["exception"]["message"] == "socket closed"
        assert "Traceback" in entry["exception"]["traceback"]

    def test_message_is_masked(self):
        entry = _format(RecoveryJSONFormatter(), msg="send failed api_key=k1")

        assert entry["message"] == "send failed api_key=***MASKED***"


class TestCorrelation:
    """Test correlation and trace context propagation."""

    def test_correlation_context(self):
        formatter = RecoveryJSONFormatter()

        with correlation_context("corr-1") as correlation_id:
            assert get_correlation_id() == "corr-1"
            entry = _format(formatter)

        assert correlation_id == "corr-1"
        assert entry["correlation_id"] == "corr-1"
        assert get_correlation_id() is None

    def test_generated_correlation_id(self):
        with correlation_context() as correlation_id:
            assert correlation_id
            assert get_correlation_id() == correlation_id

    def test_request_context(self):
        formatter = RecoveryJSONFormatter()

        with request_context("req-9", user_id="user-3"):
            entry = _format(formatter)

        assert entry["request_id"] == "req-9"
        assert entry["user_id"] == "user-3"
        assert "request_id" not in _format(formatter)

    def test_trace_context(self):
        """Test trace and span ids come from the current OpenTelemetry span."""
        span_context = SpanContext(trace_id=0x1234, span_id=0xABCD, is_remote=False)

        with trace.use_span(NonRecordingSpan(span_context), end_on_exit=False):
            entry = _format(RecoveryJSONFormatter())

        assert entry["trace_id"] == format(0x1234, "032x")
        assert entry["span_id"] == format(0xABCD, "016x")


class TestSetupStructuredLogging:
    """Test logging configuration."""

    def test_json_to_file(self, tmp_path, preserve_root_logger):
        log_file = tmp_path / "recovery.log"

        setup_structured_logging(level="DEBUG", format_type="json", log_file=str(log_file))
        with correlation_context("corr-setup"):
            logging.getLogger("inbox_recovery.demo").warning(
                "breaker opened", extra={"circuit_breaker": "email"}
            )
        for handler in preserve_root_logger.handlers:
            handler.flush()

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        entry = next(line for line in lines if line["message"] == "breaker opened")

        assert preserve_root_logger.level == logging.DEBUG
        assert entry["correlation_id"] == "corr-setup"
        assert entry["recovery"] == {"circuit_breaker": "email"}

    def test_text_format(self, tmp_path, preserve_root_logger):
        log_file = tmp_path / "recovery.log"

        setup_structured_logging(level="INFO", format_type="text", log_file=str(log_file))
        logging.getLogger("inbox_recovery.demo").info("retry scheduled")
        for handler in preserve_root_logger.handlers:
            handler.flush()

        assert "INFO - [None] retry scheduled" in log_file.read_text()
