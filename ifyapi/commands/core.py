"""Built-in commands.

Handles: help (h, commands), ping, start, bots.
"""

from __future__ import annotations

from typing import Optional

import structlog

from ..types import Context, Platform
from .base import BaseCommandHandler, Command

logger = structlog.get_logger("ifyapi.commands")

HELP_PAGE_SIZE = 10


class CoreCommandHandler(BaseCommandHandler):
    """Handles core bot commands."""

    def get_commands(self):
        return [
            Command(
                name="help",
                description="List available commands",
                handler=self.handle_help,
                aliases=frozenset({"h", "commands"}),
            ),
            Command(
                name="ping",
                description="Check that the bot is alive",
                handler=self.handle_ping,
            ),
            Command(
                name="start",
                description="Greet a new user",
                handler=self.handle_start,
                show_in_help=False,
                show_in_list=False,
            ),
            Command(
                name="bots",
                description="Show which platform bots are running",
                handler=self.handle_bots,
                owner_only=True,
            ),
        ]

    async def handle_help(self, platform: Platform, context: Context) -> str:
        """Show one page of the command list.

        Chat usage::

            /help
            /help 2

        Args:
            platform: Platform the request came from.
            context: Invocation context; ``args`` holds the page number.

        Returns:
            Formatted help text.
        """
        page = _parse_page(context.get("args", ""))
        if page is None:
            return self.ctx.commands.show_help()
        return self.ctx.commands.show_help(
            limit=HELP_PAGE_SIZE, offset=(page - 1) * HELP_PAGE_SIZE
        )

    async def handle_ping(self, platform: Platform, context: Context) -> str:
        return "Pong!"

    async def handle_start(self, platform: Platform, context: Context) -> str:
        return "Hello! I am your bot."

    async def handle_bots(self, platform: Platform, context: Context) -> str:
        running = self.ctx.manager.running_platforms
        if not running:
            return "No bots are running."
        names = ", ".join(sorted(p.value for p in running))
        return f"Running bots: {names}"


def _parse_page(args: str) -> Optional[int]:
    """Page number from the help arguments, or None for the full list."""
    args = (args or "").strip()
    if not args:
        return None
    try:
        page = int(args.split()[0])
    except ValueError:
        return None
    return page if page >= 1 else None
