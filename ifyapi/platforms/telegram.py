"""Telegram bot on python-telegram-bot.

An Application long-polls for updates and hands every text message to
BotInstance.handle_text(). Rendered page buttons are sent as a one-time
reply keyboard, so tapping a button sends its label back as an ordinary
message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from telegram import Bot, LinkPreviewOptions, ReplyKeyboardMarkup, ReplyParameters, Update
from telegram.error import TelegramError
from telegram.ext import Application, CallbackContext, MessageHandler, filters
from telegram.request import HTTPXRequest

from ..exceptions import BotLifecycleError, MessageError, TransportError
from ..messaging import DEFAULT_PARSE_MODE, MessageId, OutgoingMessage, Transport
from ..types import Platform
from .base import BotInstance

logger = structlog.get_logger("ifyapi.platforms")


class TelegramTransport(Transport):
    """Send, edit and delete through a telegram.Bot.

    ``bot`` is attached by TelegramBot.start() and cleared on stop.
    """

    platform = Platform.TELEGRAM

    def __init__(self, bot: Optional[Bot] = None):
        self.bot = bot

    def _require_bot(self) -> Bot:
        if self.bot is None:
            raise TransportError("Telegram bot is not started", platform="telegram")
        return self.bot

    async def send(self, message: OutgoingMessage) -> MessageId:
        extra = dict(message.extra)
        buttons = extra.pop("buttons", None)
        user_id = extra.pop("user_id", None)

        chat_id = message.chat_id
        if message.private and user_id is not None:
            chat_id = user_id
        if chat_id is None:
            raise MessageError("chat_id is required", platform="telegram")

        reply_parameters = None
        if message.reply_to_message_id is not None:
            reply_parameters = ReplyParameters(
                message_id=int(message.reply_to_message_id),
                allow_sending_without_reply=message.allow_sending_without_reply,
            )
        reply_markup = None
        if buttons:
            reply_markup = ReplyKeyboardMarkup(
                [[label] for label in buttons],
                resize_keyboard=True,
                one_time_keyboard=True,
            )

        bot = self._require_bot()
        try:
            sent = await bot.send_message(
                chat_id=chat_id,
                text=message.text,
                parse_mode=message.parse_mode or None,
                disable_notification=message.disable_notification,
                link_preview_options=LinkPreviewOptions(
                    is_disabled=message.disable_web_page_preview
                ),
                reply_parameters=reply_parameters,
                reply_markup=reply_markup,
                **extra,
            )
        except TelegramError as e:
            raise TransportError(f"Telegram send failed: {e}", platform="telegram") from e
        return sent.message_id

    async def edit(self, message_id, text, *, chat_id=None,
                   parse_mode=DEFAULT_PARSE_MODE, disable_web_page_preview=False) -> None:
        if chat_id is None:
            raise MessageError("chat_id is required to edit a Telegram message", platform="telegram")
        bot = self._require_bot()
        try:
            await bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=int(message_id),
                parse_mode=parse_mode or None,
                link_preview_options=LinkPreviewOptions(is_disabled=disable_web_page_preview),
            )
        except TelegramError as e:
            raise TransportError(f"Telegram edit failed: {e}", platform="telegram") from e

    async def delete(self, message_id, *, chat_id=None) -> None:
        if chat_id is None:
            raise MessageError("chat_id is required to delete a Telegram message", platform="telegram")
        bot = self._require_bot()
        try:
            await bot.delete_message(chat_id=chat_id, message_id=int(message_id))
        except TelegramError as e:
            raise TransportError(f"Telegram delete failed: {e}", platform="telegram") from e


class TelegramBot(BotInstance):
    """Telegram bot using long polling.

    Args:
        ctx: Shared BotContext.
        application: Prebuilt Application. Without one, start() builds
            one from the configured token.
    """

    platform = Platform.TELEGRAM

    def __init__(self, ctx, application: Optional[Application] = None):
        super().__init__(ctx)
        self.application = application
        self._transport = TelegramTransport()
        self.username: Optional[str] = None

    @property
    def transport(self) -> TelegramTransport:
        return self._transport

    @staticmethod
    def build_application(token: str) -> Application:
        request = HTTPXRequest(connect_timeout=10, read_timeout=20)
        return Application.builder().token(token).request(request).build()

    async def start(self) -> None:
        try:
            if self.application is None:
                token = self.ctx.config.require_token(Platform.TELEGRAM)
                self.application = self.build_application(token)
            self.application.add_handler(MessageHandler(filters.TEXT, self.on_message))

            await self.application.initialize()
            await self.application.start()
            await self.application.updater.start_polling(allowed_updates=[Update.MESSAGE])

            self._transport.bot = self.application.bot
            self.username = self.application.bot.username
            self.running = True
            logger.info("bot_logged_in", platform="telegram", username=self.username)
        except Exception as e:
            logger.error("bot_start_failed", platform="telegram", error=str(e))
            await self._release()
            raise BotLifecycleError(
                str(e), platform="telegram", operation="start"
            ) from e

    async def stop(self) -> None:
        self.running = False
        try:
            await self._shutdown_application()
            self._transport.bot = None
            logger.info("bot_stopped", platform="telegram")
        except Exception as e:
            logger.error("bot_stop_failed", platform="telegram", error=str(e))
            raise BotLifecycleError(
                str(e), platform="telegram", operation="stop"
            ) from e

    async def _shutdown_application(self) -> None:
        application = self.application
        if application is None:
            return
        if application.updater is not None and application.updater.running:
            await application.updater.stop()
        if application.running:
            await application.stop()
        await application.shutdown()

    async def _release(self) -> None:
        """Undo a half-finished start."""
        try:
            await self._shutdown_application()
        except Exception as e:
            logger.warning("application_release_failed", platform="telegram", error=str(e))

    async def on_message(self, update: Update, context: CallbackContext) -> None:
        """MessageHandler callback for one text message."""
        message = update.effective_message
        if message is None or not message.text:
            return
        sender = update.effective_user
        chat_id = message.chat_id
        invocation: Dict[str, Any] = {
            "chat_id": chat_id,
            "sender_id": sender.id if sender is not None else None,
            "message_id": message.message_id,
            "parse_mode": self.ctx.config.platforms.telegram.parse_mode,
            "update": update,
        }
        try:
            response = await self.handle_text(message.text, invocation)
            if response:
                await self.transport.send(OutgoingMessage(
                    text=response,
                    chat_id=chat_id,
                    reply_to_message_id=message.message_id,
                    parse_mode="",
                ))
        except Exception as e:
            logger.error(
                "message_handling_error",
                platform="telegram",
                error=str(e),
                update_id=update.update_id,
            )
