"""Error taxonomy, factory and user-facing messages."""

from .codes import ErrorCodes
from .factory import ErrorFactory
from .messages import UserErrorAction, UserErrorMessage, UserErrorMessageGenerator
from .types import (
    BaseError,
    ErrorCategory,
    ErrorRecoveryResult,
    ErrorSeverity,
    RecoverableError,
    RecoveryError,
    RecoveryStrategy,
)

__all__ = [
    "BaseError",
    "ErrorCategory",
    "ErrorCodes",
    "ErrorFactory",
    "ErrorRecoveryResult",
    "ErrorSeverity",
    "RecoverableError",
    "RecoveryError",
    "RecoveryStrategy",
    "UserErrorAction",
    "UserErrorMessage",
    "UserErrorMessageGenerator",
]
