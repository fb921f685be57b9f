"""Pages, buttons and their fluent builders.

Pages form a directed graph: a button may name a ``next_page``, which is
resolved in the owning PageGraph only when the button is executed.
Dangling names are not an error; they simply lead nowhere.

Example::

    graph = PageGraph()
    graph.build_page("main") \\
        .content("Welcome to the main menu!") \\
        .add_button(graph.build_button("Settings", "telegram").to("settings").build()) \\
        .build()
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import structlog

from .exceptions import BuilderValidationError
from .types import ALL_PLATFORMS, ButtonAction, PageHook, Platform, PlatformLike, parse_platform

logger = structlog.get_logger("ifyapi.pages")

# Order in which style flags are rendered as tags
STYLE_FLAGS = ("primary", "secondary", "success", "danger", "link")


@dataclass(frozen=True)
class ButtonStyle:
    """Visual hints for a button; platforms render what they support."""
    primary: bool = False
    secondary: bool = False
    success: bool = False
    danger: bool = False
    link: bool = False
    class_name: Optional[str] = None
    platform_styles: Mapping[Platform, Mapping[str, Any]] = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )

    @property
    def tags(self) -> List[str]:
        """Names of the flags that are set, in STYLE_FLAGS order."""
        return [flag for flag in STYLE_FLAGS if getattr(self, flag)]


@dataclass(frozen=True)
class Button:
    """A user-selectable effect, optionally limited to some platforms.

    At least one of ``action``, ``next_page`` or ``command`` is set;
    ButtonBuilder.build() enforces this.
    """
    text: str
    platforms: FrozenSet[Platform]
    style: ButtonStyle = field(default_factory=ButtonStyle)
    action: Optional[ButtonAction] = None
    next_page: Optional[str] = None
    command: Optional[str] = None

    def available_on(self, platform: Platform) -> bool:
        return platform in self.platforms


@dataclass(frozen=True)
class Page:
    """A named unit of content plus its ordered buttons and hooks."""
    name: str
    content: str = ""
    buttons: Tuple[Button, ...] = ()
    on_enter: Optional[PageHook] = None
    on_leave: Optional[PageHook] = None

    def buttons_for(self, platform: Platform) -> List[Button]:
        """Buttons visible on ``platform``, in insertion order."""
        return [btn for btn in self.buttons if btn.available_on(platform)]


def _resolve_platforms(
    platforms: Iterable[PlatformLike], default: FrozenSet[Platform]
) -> FrozenSet[Platform]:
    resolved = []
    for value in platforms:
        platform = parse_platform(value)
        if platform is None:
            raise BuilderValidationError(
                f"Unknown platform '{value}'", platform=str(value)
            )
        resolved.append(platform)
    return frozenset(resolved) if resolved else default


class ButtonBuilder:
    """Fluent construction of a Button.

    Args:
        text: Label shown to the user.
        *platforms: Platforms the button appears on; none means all of
            ``default_platforms``.
        default_platforms: Platform set used when none are given.
    """

    def __init__(
        self,
        text: str,
        *platforms: PlatformLike,
        default_platforms: FrozenSet[Platform] = ALL_PLATFORMS,
    ):
        self._text = text
        self._platforms = _resolve_platforms(platforms, default_platforms)
        self._style = ButtonStyle()
        self._action: Optional[ButtonAction] = None
        self._next_page: Optional[str] = None
        self._command: Optional[str] = None

    def action(self, callback: ButtonAction) -> "ButtonBuilder":
        self._action = callback
        return self

    def style(self, style: Optional[ButtonStyle] = None, **flags: Any) -> "ButtonBuilder":
        """Merge a ButtonStyle and/or individual style fields into the current style."""
        changes: Dict[str, Any] = {}
        if style is not None:
            defaults = ButtonStyle()
            for name in ButtonStyle.__dataclass_fields__:
                value = getattr(style, name)
                if value != getattr(defaults, name):
                    changes[name] = value
        changes.update(flags)
        if "platform_styles" in changes:
            changes["platform_styles"] = MappingProxyType(dict(changes["platform_styles"]))
        self._style = replace(self._style, **changes)
        return self

    def primary(self) -> "ButtonBuilder":
        return self.style(primary=True)

    def secondary(self) -> "ButtonBuilder":
        return self.style(secondary=True)

    def danger(self) -> "ButtonBuilder":
        return self.style(danger=True)

    def to(self, page_name: str) -> "ButtonBuilder":
        """Navigate to ``page_name`` when the button is executed."""
        self._next_page = page_name
        return self

    def command(self, name: str) -> "ButtonBuilder":
        """Dispatch command ``name`` when the button is executed."""
        self._command = name
        return self

    def build(self) -> Button:
        if not self._action and not self._next_page and not self._command:
            raise BuilderValidationError(
                "Button must have either an action, nextPage, or command",
                text=self._text,
            )
        return Button(
            text=self._text,
            platforms=self._platforms,
            style=self._style,
            action=self._action,
            next_page=self._next_page,
            command=self._command,
        )


class PageBuilder:
    """Fluent construction of a Page; build() publishes it into the graph."""

    def __init__(self, name: str, graph: "PageGraph"):
        self._name = name
        self._graph = graph
        self._content = ""
        self._buttons: List[Button] = []
        self._on_enter: Optional[PageHook] = None
        self._on_leave: Optional[PageHook] = None

    def content(self, text: str) -> "PageBuilder":
        self._content = text
        return self

    def add_button(self, button: Button) -> "PageBuilder":
        self._buttons.append(button)
        return self

    def on_enter(self, callback: PageHook) -> "PageBuilder":
        self._on_enter = callback
        return self

    def on_leave(self, callback: PageHook) -> "PageBuilder":
        self._on_leave = callback
        return self

    def build(self) -> Page:
        if not self._name:
            raise BuilderValidationError("Page must have a name")
        page = Page(
            name=self._name,
            content=self._content,
            buttons=tuple(self._buttons),
            on_enter=self._on_enter,
            on_leave=self._on_leave,
        )
        self._graph.add(page)
        return page


class PageGraph:
    """Table of pages by name. The last page built with a name wins.

    Args:
        default_platforms: Platforms a button appears on when its
            builder is given none.
    """

    def __init__(self, default_platforms: FrozenSet[Platform] = ALL_PLATFORMS):
        self.default_platforms = frozenset(default_platforms)
        self._pages: Dict[str, Page] = {}

    def build_page(self, name: str) -> PageBuilder:
        return PageBuilder(name, self)

    def build_button(self, text: str, *platforms: PlatformLike) -> ButtonBuilder:
        return ButtonBuilder(text, *platforms, default_platforms=self.default_platforms)

    def add(self, page: Page) -> None:
        if page.name in self._pages:
            logger.debug("page_replaced", page=page.name)
        self._pages[page.name] = page

    def get(self, name: Optional[str]) -> Optional[Page]:
        if name is None:
            return None
        return self._pages.get(name)

    @property
    def page_names(self) -> FrozenSet[str]:
        return frozenset(self._pages.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._pages

    def __len__(self) -> int:
        return len(self._pages)
