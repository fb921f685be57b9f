"""Button execution and page navigation.

PlatformExecutor.execute() runs a button's effects in a fixed order:

    1. await the button's action, if any
    2. if next_page resolves in the PageGraph, show that page
    3. if a command is named, dispatch it through the CommandRegistry

All three may fire for one button. Showing a page runs the previous
page's on_leave hook (if the conversation was on another page), then the
new page's on_enter hook, then renders content and the buttons visible on
the current platform, numbered from 1 in insertion order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

import structlog

from .commands.base import CommandRegistry
from .pages import Button, Page, PageGraph
from .types import Context, Platform, maybe_await

if TYPE_CHECKING:
    from .messaging import Messenger

logger = structlog.get_logger("ifyapi.executor")


@dataclass(frozen=True)
class RenderedButton:
    number: int
    text: str
    tags: Tuple[str, ...] = ()

    @property
    def line(self) -> str:
        """``"1. Settings (primary danger)"``"""
        if self.tags:
            return f"{self.number}. {self.text} ({' '.join(self.tags)})"
        return f"{self.number}. {self.text}"


@dataclass(frozen=True)
class RenderedPage:
    name: str
    content: str
    buttons: Tuple[RenderedButton, ...] = ()

    @property
    def text(self) -> str:
        if not self.buttons:
            return self.content
        return self.content + "\n\n" + "\n".join(b.line for b in self.buttons)


@dataclass
class ExecutionResult:
    """What a button execution did."""
    action_ran: bool = False
    page: Optional[RenderedPage] = None
    command: Optional[str] = None
    command_result: Any = None


def render_page(platform: Platform, page: Page) -> RenderedPage:
    """Render ``page`` for ``platform`` without running any hooks."""
    buttons = tuple(
        RenderedButton(number=index, text=button.text, tags=tuple(button.style.tags))
        for index, button in enumerate(page.buttons_for(platform), start=1)
    )
    return RenderedPage(name=page.name, content=page.content, buttons=buttons)


class PlatformExecutor:
    """Runs buttons and tracks which page each conversation is on.

    The current page is tracked per ``(platform, context["chat_id"])``;
    contexts without a chat id share one slot per platform.

    Args:
        commands: Registry used to resolve button commands.
        pages: Graph used to resolve next_page names.
        messenger: Delivers rendered pages. Without one, pages are only logged.
        is_owner: Decides whether ``context["sender_id"]`` may run
            owner-only commands. Without one, owner-only commands are refused.
    """

    def __init__(
        self,
        commands: CommandRegistry,
        pages: PageGraph,
        messenger: Optional["Messenger"] = None,
        is_owner: Optional[Callable[[Any], bool]] = None,
    ):
        self.commands = commands
        self.pages = pages
        self.messenger = messenger
        self.is_owner = is_owner
        self._current: Dict[Tuple[Platform, Any], str] = {}

    @staticmethod
    def _conversation_key(platform: Platform, context: Context) -> Tuple[Platform, Any]:
        return (Platform(platform), context.get("chat_id"))

    def current_page(self, platform: Platform, context: Optional[Context] = None) -> Optional[str]:
        """Name of the page the conversation is on, if any."""
        return self._current.get(self._conversation_key(platform, context or {}))

    def find_button(self, platform: Platform, text: str, context: Context) -> Optional[Button]:
        """Match a reply against the current page's buttons.

        ``text`` may be a button's 1-based number as rendered, or its exact label.
        """
        page = self.pages.get(self.current_page(platform, context))
        if page is None:
            return None
        buttons = page.buttons_for(Platform(platform))
        text = text.strip()
        if text.isdigit():
            index = int(text)
            if 1 <= index <= len(buttons):
                return buttons[index - 1]
        for button in buttons:
            if button.text == text:
                return button
        return None

    async def execute(
        self, platform: Platform, button: Button, context: Optional[Context] = None
    ) -> ExecutionResult:
        """Run a button's action, navigation and command, in that order."""
        platform = Platform(platform)
        context = context if context is not None else {}
        result = ExecutionResult()

        if button.action:
            await maybe_await(button.action())
            result.action_ran = True

        if button.next_page:
            page = self.pages.get(button.next_page)
            if page:
                result.page = await self.show_page(platform, page, context)
            else:
                logger.debug(
                    "page_not_found", platform=platform.value, page=button.next_page
                )

        if button.command:
            result.command = button.command
            result.command_result = await self.dispatch_command(
                platform, button.command, context
            )

        return result

    async def navigate(
        self, platform: Platform, page_name: str, context: Optional[Context] = None
    ) -> Optional[RenderedPage]:
        """Show a page by name. Returns None if no such page exists."""
        page = self.pages.get(page_name)
        if page is None:
            logger.debug("page_not_found", platform=Platform(platform).value, page=page_name)
            return None
        return await self.show_page(Platform(platform), page, context if context is not None else {})

    async def show_page(self, platform: Platform, page: Page, context: Context) -> RenderedPage:
        key = self._conversation_key(platform, context)
        previous_name = self._current.get(key)
        if previous_name and previous_name != page.name:
            previous = self.pages.get(previous_name)
            if previous and previous.on_leave:
                await maybe_await(previous.on_leave(platform, context))

        # The previous page has been left even if on_enter raises
        self._current[key] = page.name
        if page.on_enter:
            await maybe_await(page.on_enter(platform, context))

        rendered = render_page(platform, page)
        logger.info(
            "page_displayed",
            platform=platform.value,
            page=page.name,
            content=page.content,
            buttons=[b.line for b in rendered.buttons],
        )
        if self.messenger is not None:
            await self.messenger.send_page(platform, rendered, context)
        return rendered

    async def dispatch_command(self, platform: Platform, name: str, context: Context) -> Any:
        """Run a registered command on behalf of a button.

        Unknown and unauthorized commands are logged and skipped.
        """
        command = self.commands.get(name)
        if command is None:
            logger.warning("unknown_command", platform=platform.value, command=name)
            return None

        if command.owner_only:
            sender = context.get("sender_id")
            if self.is_owner is None or not self.is_owner(sender):
                logger.warning(
                    "command_forbidden", platform=platform.value, command=command.name
                )
                return None

        logger.info("command_executing", platform=platform.value, command=command.name)
        return await command.run(platform, context)
