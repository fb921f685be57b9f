"""Command records and the command registry.

A Command is reachable under its lowercased primary name and under
each of its aliases; all keys point at the same record. The registry
is an ordinary object owned by a BotContext, so several independent
bots (or tests) can each hold their own table.

Key classes:
    Command: Immutable command record.
    CommandRegistry: Maps names and aliases to Command records.
    BaseCommandHandler: ABC for groups of related commands.

Key functions:
    to_bool: Truthiness rule used for visibility flags.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Union

import structlog

from ..exceptions import CommandConflictError
from ..types import CommandHandler, Context, Platform, maybe_await

if TYPE_CHECKING:
    from ..context import BotContext

logger = structlog.get_logger("ifyapi.commands")

NO_COMMANDS_TEXT = "No commands available."
HELP_HEADER = "Available commands:"


def to_bool(value: Union[bool, int, str]) -> bool:
    """Visibility flags accept bools, numbers and numeric strings ("0", "1")."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.lower() == "true":
            return True
        try:
            return bool(float(value))
        except ValueError:
            return False
    return bool(value)


@dataclass(frozen=True, eq=False)
class Command:
    """A named, invocable handler.

    Equality is identity: two registrations of the same name are two
    different commands.

    Attributes:
        name: Primary name as registered (lookups are case-insensitive).
        description: One-line description shown in help.
        handler: ``(platform, context)`` callable, sync or async.
        aliases: Secondary names.
        show_in_help: Listed by show_help().
        show_in_list: Returned by get_visible().
        owner_only: Only configured owners may run it from chat.
    """
    name: str
    description: str
    handler: CommandHandler
    aliases: FrozenSet[str] = field(default_factory=frozenset)
    show_in_help: bool = True
    show_in_list: bool = True
    owner_only: bool = False

    @property
    def keys(self) -> List[str]:
        """Lowercased primary name followed by lowercased aliases."""
        keys = [self.name.lower()]
        for alias in sorted(self.aliases):
            if alias.lower() not in keys:
                keys.append(alias.lower())
        return keys

    async def run(self, platform: Platform, context: Context) -> Any:
        """Invoke the handler, awaiting it if it returns an awaitable."""
        return await maybe_await(self.handler(platform, context))


class CommandRegistry:
    """Maps lowercased command names and aliases to Command records.

    Default semantics are last-write-wins per key: registering a name or
    alias that is already bound replaces that key only. Other keys of the
    replaced command keep pointing at it, so a command can stay reachable
    under a stale alias while its primary name belongs to another command.
    Each such overwrite is logged as ``command_key_overwritten``.

    With ``strict=True`` registration is all-or-nothing: if any key is
    bound to a different command, CommandConflictError is raised and the
    table is left untouched.

    Args:
        strict: Refuse conflicting registrations instead of overwriting.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._commands: Dict[str, Command] = {}

    def register(self, command: Command) -> Command:
        """Bind the command under its name and every alias."""
        keys = command.keys
        conflicts = {
            key: self._commands[key] for key in keys
            if key in self._commands and self._commands[key] is not command
        }

        if conflicts and self.strict:
            key, existing = next(iter(conflicts.items()))
            raise CommandConflictError(
                f"Command key '{key}' is already bound to '{existing.name}'",
                key=key,
                existing=existing.name,
                command=command.name,
            )

        for key, existing in conflicts.items():
            logger.warning(
                "command_key_overwritten",
                key=key,
                previous=existing.name,
                command=command.name,
            )

        for key in keys:
            self._commands[key] = command
        logger.debug("command_registered", command=command.name, keys=keys)
        return command

    def command(
        self,
        name: str,
        description: str,
        show_in_help: Union[bool, int, str] = True,
        show_in_list: Union[bool, int, str] = True,
        aliases: Iterable[str] = (),
        owner_only: bool = False,
    ) -> Callable[[CommandHandler], CommandHandler]:
        """Decorator that registers a function as a command.

        Example::

            @registry.command("ping", "Check that the bot is alive", aliases=["p"])
            async def ping(platform, context):
                ...
        """
        def decorator(func: CommandHandler) -> CommandHandler:
            self.register(Command(
                name=name,
                description=description,
                handler=func,
                aliases=frozenset(aliases),
                show_in_help=to_bool(show_in_help),
                show_in_list=to_bool(show_in_list),
                owner_only=owner_only,
            ))
            return func
        return decorator

    def get(self, name: str) -> Optional[Command]:
        """Case-insensitive lookup by name or alias."""
        return self._commands.get(name.strip().lower())

    def get_all(self) -> List[Command]:
        """Distinct command records (identity dedup), registration order."""
        seen: Dict[int, Command] = {}
        for command in self._commands.values():
            seen.setdefault(id(command), command)
        return list(seen.values())

    def get_visible(self) -> List[Command]:
        """Commands with ``show_in_list`` set."""
        return [cmd for cmd in self.get_all() if cmd.show_in_list]

    @property
    def command_names(self) -> FrozenSet[str]:
        """All bound keys (names and aliases)."""
        return frozenset(self._commands.keys())

    def show_help(self, limit: Optional[int] = None, offset: int = 0) -> str:
        """Format visible, help-eligible commands as a bulleted list.

        Commands are deduplicated by name, sliced with ``offset``/``limit``
        and then sorted by name. With ``limit`` a "Page X of Y" footer is
        added; with only an ``offset`` a "Showing commands A to B" footer.

        Returns:
            The help text, or "No commands available." for an empty slice.
        """
        commands: List[Command] = []
        names = set()
        for cmd in self.get_visible():
            if cmd.show_in_help and cmd.name not in names:
                names.add(cmd.name)
                commands.append(cmd)

        if limit is not None and limit <= 0:
            page = []
        elif limit is not None:
            page = commands[offset:offset + limit]
        else:
            page = commands[offset:]

        if not page:
            return NO_COMMANDS_TEXT

        lines = "\n".join(
            f"• {cmd.name}: {cmd.description}"
            for cmd in sorted(page, key=lambda c: c.name)
        )

        footer = ""
        if limit is not None:
            total_pages = math.ceil(len(commands) / limit)
            current_page = offset // limit + 1
            footer = (
                f"\n\nPage {current_page} of {total_pages} "
                f"({len(commands)} total commands)"
            )
        elif offset > 0:
            last = min(offset + len(page), len(commands))
            footer = (
                f"\n\nShowing commands {offset + 1} to {last} "
                f"of {len(commands)} total"
            )

        return f"{HELP_HEADER}\n{lines}{footer}"


class BaseCommandHandler(ABC):
    """Abstract base class for command handler groups.

    Subclasses implement get_commands() to return the Command records
    they provide; register() binds them all into the context's registry.

    Args:
        ctx: Shared BotContext.
    """

    def __init__(self, ctx: "BotContext"):
        self.ctx = ctx

    @abstractmethod
    def get_commands(self) -> List[Command]:
        """Return the commands this group provides."""
        ...

    def register(self) -> None:
        """Register every command of this group with ``ctx.commands``."""
        for command in self.get_commands():
            self.ctx.commands.register(command)
