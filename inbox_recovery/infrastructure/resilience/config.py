"""
Recovery Configuration Management

Environment-aware configuration for the recovery layer: retry policy,
circuit breaker defaults and per-service overrides, fallback timeout and
logging settings. Values are merged from YAML/JSON files, a ``.env`` file
and ``INBOX_RECOVERY_`` prefixed environment variables.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from inbox_recovery.domain.errors import ErrorCodes

from .circuit_breaker import CircuitBreakerConfig
from .fallback import FallbackConfig
from .retry import RetryConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "INBOX_RECOVERY_"


class Environment(Enum):
    """Environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class ConfigValidationError(Exception):
    """Configuration validation error."""

    field_name: str
    expected_type: type[Any]
    actual_value: Any
    message: str = ""

    def __str__(self) -> str:
        return (
            f"Config validation failed for '{self.field_name}': "
            f"expected {self.expected_type.__name__}, got {self.actual_value!r}"
            + (f" - {self.message}" if self.message else "")
        )


# Channel breakers registered by create_recovery_manager()
DEFAULT_CIRCUIT_BREAKERS: dict[str, dict[str, Any]] = {
    "twilio": {"failure_threshold": 3, "recovery_timeout": 30.0},
    "database": {"failure_threshold": 5, "recovery_timeout": 60.0},
    "email": {"failure_threshold": 3, "recovery_timeout": 45.0},
    "social_media": {"failure_threshold": 4, "recovery_timeout": 120.0},
}

_BREAKER_FIELDS = frozenset(f.name for f in fields(CircuitBreakerConfig))


@dataclass
class RecoveryConfig:
    """Recovery-layer configuration."""

    # Retry settings
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_multiplier: float = 2.0
    retry_jitter_factor: float = 0.1
    retryable_codes: list[str] = field(
        default_factory=lambda: sorted(ErrorCodes.DEFAULT_RETRYABLE)
    )

    # Circuit breaker defaults
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_recovery_timeout: float = 60.0
    circuit_breaker_monitoring_period: float = 300.0
    circuit_breaker_minimum_throughput: int = 10

    # Per-service breaker overrides, merged over the defaults above
    register_default_breakers: bool = True
    circuit_breakers: dict[str, dict[str, Any]] = field(
        default_factory=lambda: {name: dict(cfg) for name, cfg in DEFAULT_CIRCUIT_BREAKERS.items()}
    )

    # Fallback settings
    fallback_timeout: float = 10.0

    def validate(self) -> None:
        """Validate recovery configuration."""
        if self.retry_max_retries < 1:
            raise ConfigValidationError(
                "retry_max_retries", int, self.retry_max_retries, "must be at least 1"
            )

        if self.retry_base_delay < 0:
            raise ConfigValidationError(
                "retry_base_delay", float, self.retry_base_delay, "must be non-negative"
            )

        if self.retry_max_delay < self.retry_base_delay:
            raise ConfigValidationError(
                "retry_max_delay", float, self.retry_max_delay, "must be >= retry_base_delay"
            )

        if self.retry_backoff_multiplier < 1.0:
            raise ConfigValidationError(
                "retry_backoff_multiplier", float, self.retry_backoff_multiplier, "must be >= 1.0"
            )

        if not 0 <= self.retry_jitter_factor <= 1:
            raise ConfigValidationError(
                "retry_jitter_factor", float, self.retry_jitter_factor, "must be between 0 and 1"
            )

        if self.circuit_breaker_failure_threshold <= 0:
            raise ConfigValidationError(
                "circuit_breaker_failure_threshold",
                int,
                self.circuit_breaker_failure_threshold,
                "must be positive",
            )

        if self.circuit_breaker_recovery_timeout <= 0:
            raise ConfigValidationError(
                "circuit_breaker_recovery_timeout",
                float,
                self.circuit_breaker_recovery_timeout,
                "must be positive",
            )

        if self.circuit_breaker_monitoring_period <= 0:
            raise ConfigValidationError(
                "circuit_breaker_monitoring_period",
                float,
                self.circuit_breaker_monitoring_period,
                "must be positive",
            )

        if self.circuit_breaker_minimum_throughput < 0:
            raise ConfigValidationError(
                "circuit_breaker_minimum_throughput",
                int,
                self.circuit_breaker_minimum_throughput,
                "must be non-negative",
            )

        if self.fallback_timeout <= 0:
            raise ConfigValidationError(
                "fallback_timeout", float, self.fallback_timeout, "must be positive"
            )

        # Policy objects enforce their own invariants; surface them as config errors
        try:
            self.to_retry_config()
        except (TypeError, ValueError) as e:
            raise ConfigValidationError("retry", RetryConfig, self.retryable_codes, str(e)) from e

        for name, overrides in self.circuit_breakers.items():
            unknown = set(overrides) - _BREAKER_FIELDS
            if unknown:
                raise ConfigValidationError(
                    f"circuit_breakers.{name}",
                    dict,
                    overrides,
                    f"unknown keys: {', '.join(sorted(unknown))}",
                )
            try:
                self.circuit_breaker_config(name)
            except (TypeError, ValueError) as e:
                raise ConfigValidationError(
                    f"circuit_breakers.{name}", CircuitBreakerConfig, overrides, str(e)
                ) from e

    def to_retry_config(self) -> RetryConfig:
        """Build the retry policy shared by the recovery manager."""
        return RetryConfig(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
            jitter_factor=self.retry_jitter_factor,
            retryable_errors=frozenset(self.retryable_codes),
        )

    def circuit_breaker_config(self, name: str | None = None) -> CircuitBreakerConfig:
        """
        Build the breaker configuration for ``name``.

        Args:
            name: Service name; overrides from ``circuit_breakers`` apply when present

        Returns:
            CircuitBreakerConfig instance
        """
        values: dict[str, Any] = {
            "failure_threshold": self.circuit_breaker_failure_threshold,
            "recovery_timeout": self.circuit_breaker_recovery_timeout,
            "monitoring_period": self.circuit_breaker_monitoring_period,
            "minimum_throughput": self.circuit_breaker_minimum_throughput,
        }
        if name is not None:
            values.update(self.circuit_breakers.get(name, {}))
        return CircuitBreakerConfig(**values)

    def fallback_config(self, **overrides: Any) -> FallbackConfig:
        """Build a fallback configuration using the configured timeout."""
        overrides.setdefault("timeout", self.fallback_timeout)
        return FallbackConfig(**overrides)


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str | None = None

    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)

    def validate(self) -> None:
        """Validate entire configuration."""
        logger.info("Validating application configuration...")

        if self.log_level.upper() not in logging.getLevelNamesMapping():
            raise ConfigValidationError("log_level", str, self.log_level, "unknown log level")

        if self.log_format not in ("json", "text"):
            raise ConfigValidationError("log_format", str, self.log_format, "must be json or text")

        self.recovery.validate()

        if self.environment == Environment.PRODUCTION and self.log_level.upper() == "DEBUG":
            logger.warning("Debug logging enabled in production environment")

        logger.info("Configuration validation completed successfully")

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION


class ConfigLoader(ABC):
    """Abstract base class for configuration loaders."""

    @abstractmethod
    def load(self, source: str) -> dict[str, Any]:
        """Load configuration from source."""
        pass


class EnvironmentConfigLoader(ConfigLoader):
    """Load configuration from environment variables."""

    def __init__(self, prefix: str = ENV_PREFIX) -> None:
        self.prefix = prefix

    def load(self, source: str = "") -> dict[str, Any]:
        """Load configuration from environment variables."""
        config: dict[str, Any] = {}

        for key, value in os.environ.items():
            if key.startswith(self.prefix):
                config_key = key[len(self.prefix) :].lower()
                config[config_key] = self._coerce(value)

        return config

    @staticmethod
    def _coerce(value: str) -> Any:
        if value.lower() in ("true", "false"):
            return value.lower() == "true"
        if value.isdigit():
            return int(value)
        try:
            return float(value)
        except ValueError:
            pass
        if "," in value:
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class FileConfigLoader(ConfigLoader):
    """Load configuration from files."""

    def load(self, source: str) -> dict[str, Any]:
        """Load configuration from file."""
        path = Path(source)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {source}")

        content = path.read_text()

        if path.suffix.lower() == ".json":
            result = json.loads(content)
            return result if isinstance(result, dict) else {}
        elif path.suffix.lower() in (".yaml", ".yml"):
            result = yaml.safe_load(content)
            return result if isinstance(result, dict) else {}
        else:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")


class ConfigManager:
    """
    Recovery configuration manager.

    Precedence, lowest first: defaults, ``config.yaml``,
    ``config.<environment>.yaml``, an explicit file, environment variables.
    """

    def __init__(self, config_dir: str | None = None, env_file: str | None = None) -> None:
        self.config_dir = Path(config_dir or "config")
        self.env_file = env_file
        self.loaders: dict[str, ConfigLoader] = {
            "env": EnvironmentConfigLoader(),
            "file": FileConfigLoader(),
        }
        self._config: ApplicationConfig | None = None

    def load_config(
        self, environment: Environment | None = None, config_file: str | None = None
    ) -> ApplicationConfig:
        """
        Load configuration with environment precedence.

        Args:
            environment: Target environment
            config_file: Specific configuration file

        Returns:
            ApplicationConfig instance

        Raises:
            ConfigValidationError: If the merged configuration is invalid
        """
        load_dotenv(self.env_file, override=False)

        env = environment or self._environment_from_env()
        logger.info(f"Loading configuration for environment: {env.value}")

        config_data: dict[str, Any] = {}

        base_file = self.config_dir / "config.yaml"
        if base_file.exists():
            self._merge(config_data, self.loaders["file"].load(str(base_file)))
            logger.debug(f"Loaded base configuration from {base_file}")

        env_file = self.config_dir / f"config.{env.value}.yaml"
        if env_file.exists():
            self._merge(config_data, self.loaders["file"].load(str(env_file)))
            logger.debug(f"Loaded environment configuration from {env_file}")

        if config_file:
            self._merge(config_data, self.loaders["file"].load(config_file))
            logger.debug(f"Loaded specific configuration from {config_file}")

        self._merge(config_data, self.loaders["env"].load(""))

        config = self._create_config_from_dict(config_data, env)
        config.validate()

        self._config = config
        logger.info(f"Configuration loaded successfully for {env.value}")
        return config

    @staticmethod
    def _environment_from_env() -> Environment:
        raw = os.getenv(f"{ENV_PREFIX}ENV", Environment.DEVELOPMENT.value)
        try:
            return Environment(raw.lower())
        except ValueError as e:
            raise ConfigValidationError(
                f"{ENV_PREFIX}ENV", Environment, raw, "unknown environment"
            ) from e

    @staticmethod
    def _merge(target: dict[str, Any], source: dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._merge(target[key], value)
            else:
                target[key] = value

    def _create_config_from_dict(self, data: dict[str, Any], env: Environment) -> ApplicationConfig:
        """Create ApplicationConfig from dictionary."""
        recovery_fields = {f.name for f in fields(RecoveryConfig)}

        recovery_data = dict(data.get("recovery", {}))
        # Flat keys (as produced by the environment loader) also address RecoveryConfig
        for key, value in data.items():
            if key in recovery_fields:
                recovery_data[key] = value

        unknown = set(recovery_data) - recovery_fields
        if unknown:
            raise ConfigValidationError(
                "recovery", dict, sorted(unknown), "unknown recovery settings"
            )

        if isinstance(recovery_data.get("retryable_codes"), str):
            recovery_data["retryable_codes"] = [recovery_data["retryable_codes"]]

        return ApplicationConfig(
            environment=env,
            log_level=str(data.get("log_level", "DEBUG" if env == Environment.DEVELOPMENT else "INFO")),
            log_format=str(data.get("log_format", "json")),
            log_file=data.get("log_file"),
            recovery=RecoveryConfig(**recovery_data),
        )

    def get_config(self) -> ApplicationConfig:
        """Get current configuration."""
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self._config

    def reload_config(self) -> ApplicationConfig:
        """Reload configuration from sources."""
        logger.info("Reloading configuration...")
        return self.load_config(self._config.environment if self._config else None)

    def export_config(self) -> str:
        """Export the current recovery configuration as YAML."""
        if self._config is None:
            raise RuntimeError("Configuration not loaded")

        config_dict = {
            "environment": self._config.environment.value,
            "log_level": self._config.log_level,
            "log_format": self._config.log_format,
            "recovery": {
                f.name: getattr(self._config.recovery, f.name) for f in fields(RecoveryConfig)
            },
        }
        return yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True)
