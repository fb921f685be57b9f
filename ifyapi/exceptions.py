"""Exception hierarchy for ifyapi.

Every error carries an ErrorCategory (retry or not), the module it came
from, and free-form context for structured logging. Subclasses set their
defaults as class attributes and only add constructors when they expose
extra attributes.

Raised synchronously:
    BuilderValidationError, CommandConflictError, UnsupportedPlatformError.
Raised by platform handles and transports:
    BotLifecycleError, MessageError, TransportError.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"            # Network blip, platform 5xx
    PERMANENT = "permanent"            # Bad input, builder misuse
    INFRASTRUCTURE = "infrastructure"  # Missing token, unreadable config


class IfyApiError(Exception):
    """Base exception for all ifyapi errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "lifecycle").
        context: Arbitrary key-value pairs for structured logging.
    """

    default_category = ErrorCategory.PERMANENT
    default_module: Optional[str] = None

    def __init__(
        self,
        message: str = "",
        *,
        category: Optional[ErrorCategory] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category or self.default_category
        self.module = module or self.default_module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        # Result strings embed str(error); keep it to the message alone
        return self.message or self.__class__.__name__

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, "
            f"category={self.category.value!r}, module={self.module!r})"
        )


class ConfigurationError(IfyApiError):
    """A required setting is missing or unusable.

    Attributes:
        setting_name: Dotted path of the setting (e.g. "platforms.discord.token").
    """

    default_category = ErrorCategory.INFRASTRUCTURE
    default_module = "config"

    def __init__(self, message: str = "", *, setting_name: Optional[str] = None, **kwargs: Any):
        self.setting_name = setting_name
        super().__init__(message, **kwargs)


class BuilderValidationError(IfyApiError):
    """A page or button builder was asked to build an incomplete value."""

    default_module = "pages"


class CommandConflictError(IfyApiError):
    """A strict registry refused a name or alias already bound elsewhere.

    Attributes:
        key: The lowercased name or alias that collided.
        existing: Primary name of the command that already owns the key.
    """

    default_module = "commands"

    def __init__(
        self,
        message: str = "",
        *,
        key: Optional[str] = None,
        existing: Optional[str] = None,
        **kwargs: Any,
    ):
        self.key = key
        self.existing = existing
        super().__init__(message, **kwargs)


class PlatformError(IfyApiError):
    """Base for errors tied to one chat platform."""

    def __init__(self, message: str = "", *, platform: Optional[str] = None, **kwargs: Any):
        self.platform = platform
        super().__init__(message, **kwargs)


class UnsupportedPlatformError(PlatformError):
    """A bot was requested for a platform that is unknown or disabled."""

    default_module = "lifecycle"


class BotLifecycleError(PlatformError):
    """A platform bot failed to start or stop.

    Attributes:
        operation: "start" or "stop".
    """

    default_category = ErrorCategory.TRANSIENT
    default_module = "platforms"

    def __init__(self, message: str = "", *, operation: Optional[str] = None, **kwargs: Any):
        self.operation = operation
        super().__init__(message, **kwargs)


class MessageError(PlatformError):
    """A send, edit or delete request was invalid or failed."""

    default_module = "messaging"


class TransportError(MessageError):
    """The platform API rejected a request or could not be reached.

    Attributes:
        status: HTTP status code returned by the platform, if any.
    """

    default_category = ErrorCategory.TRANSIENT
    default_module = "transport"

    def __init__(self, message: str = "", *, status: Optional[int] = None, **kwargs: Any):
        self.status = status
        super().__init__(message, **kwargs)
