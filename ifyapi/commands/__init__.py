"""Command framework for ifyapi.

Provides the Command record, the CommandRegistry that maps names and
aliases to commands, and the BaseCommandHandler ABC for command groups.
"""

from .base import BaseCommandHandler, Command, CommandRegistry, to_bool
from .core import CoreCommandHandler

__all__ = [
    "BaseCommandHandler",
    "Command",
    "CommandRegistry",
    "CoreCommandHandler",
    "to_bool",
]
