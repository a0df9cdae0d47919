"""User-facing wording for classified errors."""

import math
from dataclasses import dataclass, field, replace
from typing import ClassVar

from .codes import ErrorCodes
from .types import BaseError, ErrorSeverity


@dataclass(frozen=True)
class UserErrorAction:
    """A suggested next step shown alongside an error."""

    label: str
    action: str
    primary: bool = False


@dataclass(frozen=True)
class UserErrorMessage:
    """Presentation-ready error description."""

    title: str
    message: str
    actionable: bool
    severity: ErrorSeverity
    actions: tuple[UserErrorAction, ...] = field(default_factory=tuple)


class UserErrorMessageGenerator:
    """Maps error codes to user-facing messages."""

    ERROR_MESSAGES: ClassVar[dict[str, UserErrorMessage]] = {
        ErrorCodes.AUTHENTICATION: UserErrorMessage(
            title="Authentication Required",
            message="Please log in to continue accessing this feature.",
            actionable=True,
            severity=ErrorSeverity.HIGH,
            actions=(
                UserErrorAction("Log In", "login", primary=True),
                UserErrorAction("Contact Support", "support"),
            ),
        ),
        ErrorCodes.VALIDATION: UserErrorMessage(
            title="Invalid Input",
            message="Please check your input and try again.",
            actionable=True,
            severity=ErrorSeverity.MEDIUM,
            actions=(UserErrorAction("Try Again", "retry", primary=True),),
        ),
        ErrorCodes.NETWORK: UserErrorMessage(
            title="Connection Problem",
            message=(
                "We're having trouble connecting to our servers. "
                "Please try again in a moment."
            ),
            actionable=True,
            severity=ErrorSeverity.HIGH,
            actions=(
                UserErrorAction("Retry", "retry", primary=True),
                UserErrorAction("Check Status", "status"),
            ),
        ),
        ErrorCodes.DATABASE: UserErrorMessage(
            title="Service Temporarily Unavailable",
            message=(
                "Our service is temporarily unavailable. "
                "We're working to resolve this quickly."
            ),
            actionable=False,
            severity=ErrorSeverity.CRITICAL,
            actions=(UserErrorAction("Contact Support", "support", primary=True),),
        ),
        ErrorCodes.INTEGRATION: UserErrorMessage(
            title="Service Integration Issue",
            message=(
                "We're experiencing issues with an external service. "
                "Some features may be limited."
            ),
            actionable=True,
            severity=ErrorSeverity.HIGH,
            actions=(
                UserErrorAction("Try Again", "retry", primary=True),
                UserErrorAction("Use Alternative", "fallback"),
            ),
        ),
        ErrorCodes.RATE_LIMIT: UserErrorMessage(
            title="Too Many Requests",
            message=(
                "You've made too many requests. "
                "Please wait a moment before trying again."
            ),
            actionable=True,
            severity=ErrorSeverity.MEDIUM,
            actions=(UserErrorAction("Wait and Retry", "wait_retry", primary=True),),
        ),
    }

    GENERIC_MESSAGE: ClassVar[UserErrorMessage] = UserErrorMessage(
        title="Something Went Wrong",
        message=(
            "An unexpected error occurred. "
            "Please try again or contact support if the problem persists."
        ),
        actionable=True,
        severity=ErrorSeverity.HIGH,
        actions=(
            UserErrorAction("Try Again", "retry", primary=True),
            UserErrorAction("Contact Support", "support"),
        ),
    )

    @classmethod
    def generate(cls, error: BaseError) -> UserErrorMessage:
        """Return the message template for ``error.code``, personalized from its context."""
        template = cls.ERROR_MESSAGES.get(error.code)
        if template is None:
            return cls.GENERIC_MESSAGE
        return replace(template, message=cls._personalize(template.message, error))

    @staticmethod
    def _personalize(template: str, error: BaseError) -> str:
        service = error.context.get("service")
        if service:
            return template.replace("service", str(service), 1)

        retry_after = error.context.get("retry_after")
        if retry_after:
            seconds = math.ceil(float(retry_after))
            return template.replace("a moment", f"{seconds} seconds", 1)

        return template
