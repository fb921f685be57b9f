"""Shared application state.

One BotContext is built per process (or per test) by create_context() and
passed to every component that needs the registry, the page graph or the
running bots. Nothing here is a module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .commands import CommandRegistry, CoreCommandHandler
from .config import Config
from .executor import PlatformExecutor
from .messaging import Messenger
from .pages import PageGraph

if TYPE_CHECKING:
    from .lifecycle import BotManager


@dataclass
class BotContext:
    """Dependency container for the bot runtime.

    Attributes:
        config: Loaded settings.
        commands: Name/alias -> Command table.
        pages: Page table used for navigation.
        messenger: Multi-platform outbound messaging.
        executor: Runs buttons and tracks the current page per conversation.
        manager: Starts and stops the platform bots.
    """
    config: Config
    commands: CommandRegistry = field(default_factory=CommandRegistry)
    pages: PageGraph = field(default_factory=PageGraph)
    messenger: Messenger = field(default_factory=Messenger)
    executor: Optional[PlatformExecutor] = None
    manager: Optional["BotManager"] = None


def create_context(config: Optional[Config] = None, *, strict_commands: bool = False) -> BotContext:
    """Build a fully wired BotContext with the built-in commands registered."""
    from .lifecycle import BotManager

    config = config if config is not None else Config()
    ctx = BotContext(config=config, commands=CommandRegistry(strict=strict_commands))
    ctx.executor = PlatformExecutor(
        ctx.commands, ctx.pages, messenger=ctx.messenger, is_owner=config.is_owner
    )
    ctx.manager = BotManager(ctx)
    CoreCommandHandler(ctx).register()
    return ctx
