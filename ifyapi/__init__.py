"""ifyapi - one bot, several chat platforms.

Commands, pages and buttons are declared once and served on Discord and
Telegram. See BotContext / create_context() for the wiring.
"""

__version__ = "1.0.0"

from .commands import BaseCommandHandler, Command, CommandRegistry
from .config import Config, ConfigManager
from .context import BotContext, create_context
from .exceptions import (
    BotLifecycleError,
    BuilderValidationError,
    CommandConflictError,
    ConfigurationError,
    IfyApiError,
    MessageError,
    TransportError,
    UnsupportedPlatformError,
)
from .executor import PlatformExecutor, RenderedPage
from .lifecycle import BotManager
from .messaging import MessageOptions, Messenger
from .pages import Button, ButtonStyle, Page, PageGraph
from .types import Platform

__all__ = [
    "BaseCommandHandler",
    "BotContext",
    "BotLifecycleError",
    "BotManager",
    "BuilderValidationError",
    "Button",
    "ButtonStyle",
    "Command",
    "CommandConflictError",
    "CommandRegistry",
    "Config",
    "ConfigManager",
    "ConfigurationError",
    "IfyApiError",
    "MessageError",
    "MessageOptions",
    "Messenger",
    "Page",
    "PageGraph",
    "Platform",
    "PlatformExecutor",
    "RenderedPage",
    "TransportError",
    "UnsupportedPlatformError",
    "create_context",
]
