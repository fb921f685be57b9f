"""Platform bot handles (Discord, Telegram) and their transports."""

from .base import BotInstance
from .discord import DiscordBot, DiscordTransport
from .telegram import TelegramBot, TelegramTransport

__all__ = [
    "BotInstance",
    "DiscordBot",
    "DiscordTransport",
    "TelegramBot",
    "TelegramTransport",
]
