"""Shared platform identifiers and handler type aliases."""

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Union


class Platform(str, Enum):
    """Chat backends ifyapi knows how to drive."""
    DISCORD = "discord"
    TELEGRAM = "telegram"

    def __str__(self) -> str:
        return self.value


ALL_PLATFORMS: FrozenSet[Platform] = frozenset(Platform)

PlatformLike = Union[Platform, str]

# Free-form per-invocation data handed to handlers and page hooks
# (conversation id, sender id, raw update, ...).
Context = Dict[str, Any]

# Command handler: (platform, context) -> optional awaitable
CommandHandler = Callable[[Platform, Context], Optional[Awaitable[Any]]]

# Page hook: same shape as a command handler
PageHook = Callable[[Platform, Context], Optional[Awaitable[Any]]]

# Button action: zero-argument effect
ButtonAction = Callable[[], Optional[Awaitable[Any]]]


def parse_platform(value: PlatformLike) -> Optional[Platform]:
    """Return the Platform for a name (case-insensitive), or None."""
    if isinstance(value, Platform):
        return value
    try:
        return Platform(str(value).strip().lower())
    except ValueError:
        return None


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if a handler returned an awaitable, else pass it through."""
    if inspect.isawaitable(value):
        return await value
    return value
