"""Discord bot on discord.py.

A discord.Client owns the gateway session (heartbeat, resume and
reconnect backoff) and hands each message to BotInstance.handle_text().
Outbound messages go through partial messageables, so sending needs only
a channel id.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional

import aiohttp
import discord
import structlog

from ..exceptions import BotLifecycleError, MessageError, TransportError
from ..messaging import DEFAULT_PARSE_MODE, MessageId, OutgoingMessage, Transport
from ..types import Platform
from .base import BotInstance

logger = structlog.get_logger("ifyapi.platforms")

# Config intent name -> discord.Intents flag
INTENT_FLAGS = {
    "Guilds": "guilds",
    "GuildMembers": "members",
    "GuildMessages": "guild_messages",
    "GuildMessageReactions": "guild_reactions",
    "DirectMessages": "dm_messages",
    "DirectMessageReactions": "dm_reactions",
    "MessageContent": "message_content",
}

# Errors a REST call can surface
SEND_ERRORS = (discord.DiscordException, aiohttp.ClientError, asyncio.TimeoutError)


def build_intents(names: Iterable[str]) -> discord.Intents:
    """Turn intent names from config into discord.Intents."""
    intents = discord.Intents.none()
    for name in names:
        flag = INTENT_FLAGS.get(name)
        if flag is None:
            logger.warning("unknown_intent", platform="discord", intent=name)
            continue
        setattr(intents, flag, True)
    return intents


class DiscordTransport(Transport):
    """Send, edit and delete channel messages through a discord.Client."""

    platform = Platform.DISCORD

    def __init__(self, client: discord.Client):
        self.client = client

    def _channel(self, chat_id: Optional[MessageId]) -> discord.PartialMessageable:
        if chat_id is None:
            raise MessageError("chat_id (channel id) is required", platform="discord")
        return self.client.get_partial_messageable(int(chat_id))

    async def send(self, message: OutgoingMessage) -> MessageId:
        extra = dict(message.extra)
        extra.pop("buttons", None)
        user_id = extra.pop("user_id", None)

        try:
            if message.private and user_id is not None:
                user = await self.client.fetch_user(int(user_id))
                channel = await user.create_dm()
            else:
                channel = self._channel(message.chat_id)

            reference = None
            if message.reply_to_message_id is not None:
                reference = discord.MessageReference(
                    message_id=int(message.reply_to_message_id),
                    channel_id=channel.id,
                    fail_if_not_exists=not message.allow_sending_without_reply,
                )
            sent = await channel.send(
                message.text,
                allowed_mentions=discord.AllowedMentions.none(),
                suppress_embeds=message.disable_web_page_preview,
                silent=message.disable_notification,
                reference=reference,
                **extra,
            )
        except SEND_ERRORS as e:
            raise TransportError(
                f"Discord send failed: {e}",
                platform="discord",
                status=getattr(e, "status", None),
            ) from e
        return sent.id

    async def edit(self, message_id, text, *, chat_id=None,
                   parse_mode=DEFAULT_PARSE_MODE, disable_web_page_preview=False) -> None:
        if chat_id is None:
            raise MessageError("chat_id is required to edit a Discord message", platform="discord")
        try:
            existing = await self._channel(chat_id).fetch_message(int(message_id))
            await existing.edit(
                content=text,
                suppress=disable_web_page_preview,
                allowed_mentions=discord.AllowedMentions.none(),
            )
        except SEND_ERRORS as e:
            raise TransportError(
                f"Discord edit failed: {e}",
                platform="discord",
                status=getattr(e, "status", None),
            ) from e

    async def delete(self, message_id, *, chat_id=None) -> None:
        if chat_id is None:
            raise MessageError("chat_id is required to delete a Discord message", platform="discord")
        try:
            await self._channel(chat_id).get_partial_message(int(message_id)).delete()
        except SEND_ERRORS as e:
            raise TransportError(
                f"Discord delete failed: {e}",
                platform="discord",
                status=getattr(e, "status", None),
            ) from e


class DiscordBot(BotInstance):
    """Discord bot with a gateway connection for incoming messages.

    Args:
        ctx: Shared BotContext.
        client: Prebuilt client. Without one, a discord.Client is built
            with the intents from ``platforms.discord.intents``.
    """

    platform = Platform.DISCORD

    def __init__(self, ctx, client: Optional[discord.Client] = None):
        super().__init__(ctx)
        if client is None:
            client = discord.Client(intents=build_intents(ctx.config.platforms.discord.intents))
        self.client = client
        self.client.event(self.on_ready)
        self.client.event(self.on_message)
        self._transport = DiscordTransport(self.client)
        self._connect_task: Optional[asyncio.Task] = None

    @property
    def transport(self) -> DiscordTransport:
        return self._transport

    async def start(self) -> None:
        try:
            token = self.ctx.config.require_token(Platform.DISCORD)
            await self.client.login(token)
            self.running = True
            self._connect_task = asyncio.create_task(self.client.connect(reconnect=True))
            self._connect_task.add_done_callback(self._on_connect_done)
            logger.info("bot_logged_in", platform="discord", username=str(self.client.user))
        except Exception as e:
            logger.error("bot_start_failed", platform="discord", error=str(e))
            self.running = False
            await self._release()
            raise BotLifecycleError(
                str(e), platform="discord", operation="start"
            ) from e

    async def stop(self) -> None:
        self.running = False
        try:
            await self.client.close()
            task, self._connect_task = self._connect_task, None
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            logger.info("bot_stopped", platform="discord")
        except Exception as e:
            logger.error("bot_stop_failed", platform="discord", error=str(e))
            raise BotLifecycleError(
                str(e), platform="discord", operation="stop"
            ) from e

    async def _release(self) -> None:
        """Undo a half-finished start."""
        try:
            await self.client.close()
        except Exception as e:
            logger.warning("client_release_failed", platform="discord", error=str(e))

    def _on_connect_done(self, task: asyncio.Task) -> None:
        # connect() only returns or raises once the client gives up:
        # on close(), or on a fatal gateway close such as a disallowed intent
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.running = False
            logger.error(
                "gateway_closed",
                platform="discord",
                error=str(error),
                error_type=type(error).__name__,
            )

    async def on_ready(self) -> None:
        logger.info("gateway_ready", platform="discord", username=str(self.client.user))

    async def on_message(self, message: discord.Message) -> None:
        """Client event for one incoming message."""
        if message.author.bot:
            return
        invocation: Dict[str, Any] = {
            "chat_id": message.channel.id,
            "sender_id": message.author.id,
            "message_id": message.id,
            "guild_id": message.guild.id if message.guild is not None else None,
            "message": message,
        }
        try:
            response = await self.handle_text(message.content or "", invocation)
            if response:
                await self.transport.send(OutgoingMessage(
                    text=response,
                    chat_id=invocation["chat_id"],
                    reply_to_message_id=message.id,
                    parse_mode="",
                ))
        except Exception as e:
            logger.error(
                "message_handling_error",
                platform="discord",
                error=str(e),
                message_id=message.id,
            )
