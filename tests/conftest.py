"""Global pytest configuration and fixtures."""

# Standard library imports
from pathlib import Path

# Load test environment variables
from dotenv import load_dotenv

test_env_path = Path(__file__).parent.parent / ".env.test"
if test_env_path.exists():
    load_dotenv(test_env_path, override=True)

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from inbox_recovery.domain.errors import ErrorFactory, RecoverableError
from inbox_recovery.infrastructure.resilience.recovery_manager import RecoveryManager
from inbox_recovery.infrastructure.resilience.retry import RetryConfig


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def no_jitter_config() -> RetryConfig:
    """Retry policy with deterministic delays: 1.0s, 2.0s, 4.0s, ..."""
    return RetryConfig(
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        backoff_multiplier=2.0,
        jitter_factor=0.0,
    )


@pytest.fixture
def network_error() -> RecoverableError:
    return ErrorFactory.create_network_error("Connection reset by peer", {"channel": "sms"})


@pytest_asyncio.fixture
async def manager(no_jitter_config, recording_sleep):
    """Recovery manager whose retries never actually sleep."""
    async with RecoveryManager(no_jitter_config, sleep=recording_sleep) as recovery_manager:
        yield recovery_manager
