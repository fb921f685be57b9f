"""Base class for platform bot handles.

A BotInstance owns the connection to one chat platform: it starts and
stops the platform session, exposes a Transport for outbound messages,
and routes incoming text through the shared command registry and the
page executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import structlog

from ..messaging import Transport
from ..types import Context, Platform

if TYPE_CHECKING:
    from ..context import BotContext

logger = structlog.get_logger("ifyapi.platforms")

COMMAND_PREFIX = "/"
OWNER_ONLY_TEXT = "This command is restricted to bot owners."
ERROR_TEXT = "Something went wrong while running that command."


class BotInstance(ABC):
    """Live handle for one platform.

    Subclasses implement start(), stop() and the ``transport`` property,
    and feed incoming messages to handle_text().

    Args:
        ctx: Shared BotContext (config, registry, pages, executor).
    """

    platform: Platform

    def __init__(self, ctx: "BotContext"):
        self.ctx = ctx
        self.running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin receiving messages. Raises BotLifecycleError."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and release resources. Raises BotLifecycleError."""
        ...

    @property
    @abstractmethod
    def transport(self) -> Transport:
        ...

    async def handle_text(self, text: str, context: Context) -> Optional[str]:
        """Route one incoming message.

        ``/command args`` goes to the command registry; any other text is
        matched against the buttons of the conversation's current page.

        Args:
            text: Raw message text.
            context: Invocation context (chat_id, sender_id, message_id, ...).

        Returns:
            Response text to send back, or None.
        """
        text = text.strip()
        if not text:
            return None

        if not text.startswith(COMMAND_PREFIX):
            button = self.ctx.executor.find_button(self.platform, text, context)
            if button is not None:
                await self.ctx.executor.execute(self.platform, button, context)
            return None

        parts = text[len(COMMAND_PREFIX):].split(maxsplit=1)
        if not parts:
            return None
        # Telegram appends the bot name in groups: /help@my_bot
        name = parts[0].split("@", 1)[0].lower()
        context["command"] = name
        context["args"] = parts[1] if len(parts) > 1 else ""

        command = self.ctx.commands.get(name)
        if command is None:
            logger.debug("unknown_command", platform=self.platform.value, command=name)
            return f"Unknown command: /{name}\nUse /help to see available commands."

        if command.owner_only and not self.ctx.config.is_owner(context.get("sender_id")):
            logger.warning(
                "command_forbidden",
                platform=self.platform.value,
                command=command.name,
                sender=context.get("sender_id"),
            )
            return OWNER_ONLY_TEXT

        logger.info("command_executing", platform=self.platform.value, command=command.name)
        try:
            result = await command.run(self.platform, context)
        except Exception as e:
            logger.error(
                "command_failed",
                platform=self.platform.value,
                command=command.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ERROR_TEXT
        return result if isinstance(result, str) else None
