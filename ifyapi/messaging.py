"""Cross-platform messaging.

The Messenger fans one request out to several platforms through a
Transport per platform. Transports are pluggable: the platform bots in
``ifyapi.platforms`` provide real ones, and LoggingTransport stands in
wherever no bot is running (it logs the request and invents an id).

Key classes:
    OutgoingMessage: Normalized send request handed to a Transport.
    MessageOptions: Caller-facing send options, including callbacks.
    SentMessage: (platform, message_id) pair returned per delivery.
    Transport: ABC with send/edit/delete.
    LoggingTransport: Placeholder transport.
    Messenger: Multi-platform send, edit, delete and helpers.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Union

import structlog

from .exceptions import MessageError
from .types import Context, Platform, PlatformLike, parse_platform

if TYPE_CHECKING:
    from .executor import RenderedPage

logger = structlog.get_logger("ifyapi.messaging")

MessageId = Union[str, int]
ReplyOption = Union[bool, int, str, None]

DEFAULT_PARSE_MODE = "MarkdownV2"
_LOG_TEXT_LIMIT = 100


@dataclass
class OutgoingMessage:
    """A single-platform send request."""
    text: str
    chat_id: Optional[MessageId] = None
    reply_to_message_id: Optional[MessageId] = None
    parse_mode: str = DEFAULT_PARSE_MODE
    disable_web_page_preview: bool = False
    disable_notification: bool = False
    allow_sending_without_reply: bool = True
    private: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MessageOptions:
    """Options for Messenger.send_message().

    Attributes:
        text: Message text.
        platform: One platform or several.
        chat_id: Target conversation (channel id, chat id).
        reply: ``True``/``1``/``"true"``/``"1"`` replies to
            ``reply_to_message_id``; another str/int is the id to reply
            to; ``False``/``0`` disables replying.
        reply_to_message_id: Deprecated; use ``reply`` with an id.
        private_message: Deliver privately where the platform supports it.
        platform_specific: Extra fields per platform, merged into the
            request for that platform only.
        on_success: Called as ``on_success(message_id, platform)``.
        on_error: Called as ``on_error(error, platform)``; ``platform`` is
            the name as given when it is not a known platform.
    """
    text: str
    platform: Union[PlatformLike, List[PlatformLike]]
    chat_id: Optional[MessageId] = None
    reply: ReplyOption = None
    reply_to_message_id: Optional[MessageId] = None
    parse_mode: str = DEFAULT_PARSE_MODE
    disable_web_page_preview: bool = False
    disable_notification: bool = False
    allow_sending_without_reply: bool = True
    private_message: Union[bool, int] = False
    platform_specific: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    on_success: Optional[Callable[[MessageId, Platform], None]] = None
    on_error: Optional[Callable[[Exception, PlatformLike], None]] = None


@dataclass(frozen=True)
class SentMessage:
    platform: Platform
    message_id: MessageId


def _is_truthy_flag(value: Any) -> bool:
    if value is True or value == 1:
        return True
    if isinstance(value, str):
        return value == "1" or value.lower() == "true"
    return False


def _is_falsy_flag(value: Any) -> bool:
    if value is False or value == 0:
        return True
    if isinstance(value, str):
        return value == "0" or value.lower() == "false"
    return False


def resolve_reply(reply: ReplyOption, legacy_id: Optional[MessageId]) -> Optional[MessageId]:
    """Turn the ``reply`` option into the message id to reply to, if any."""
    if reply is None:
        return legacy_id
    if _is_truthy_flag(reply):
        return legacy_id
    if _is_falsy_flag(reply):
        return None
    return reply


def _as_list(value: Union[PlatformLike, Iterable[PlatformLike]]) -> List[PlatformLike]:
    if isinstance(value, (str, Platform)):
        return [value]
    return list(value)


def _label(item: PlatformLike) -> str:
    return item.value if isinstance(item, Platform) else str(item)


class Transport(ABC):
    """Delivery capability for one chat platform."""

    platform: Platform

    @abstractmethod
    async def send(self, message: OutgoingMessage) -> MessageId:
        """Deliver a message and return the platform's message id."""
        ...

    @abstractmethod
    async def edit(
        self,
        message_id: MessageId,
        text: str,
        *,
        chat_id: Optional[MessageId] = None,
        parse_mode: str = DEFAULT_PARSE_MODE,
        disable_web_page_preview: bool = False,
    ) -> None:
        ...

    @abstractmethod
    async def delete(self, message_id: MessageId, *, chat_id: Optional[MessageId] = None) -> None:
        ...


class LoggingTransport(Transport):
    """Placeholder transport: logs each request and fabricates an id.

    Args:
        platform: Platform the log lines are attributed to.
        delay: Simulated API latency in seconds.
    """

    def __init__(self, platform: Platform, delay: float = 0.1):
        self.platform = Platform(platform)
        self.delay = delay

    async def send(self, message: OutgoingMessage) -> MessageId:
        message_id = uuid.uuid4().hex[:9]
        text = message.text
        if len(text) > _LOG_TEXT_LIMIT:
            text = text[:_LOG_TEXT_LIMIT] + "..."
        logger.info(
            "message_sending",
            platform=self.platform.value,
            delivery="private message" if message.private else "channel message",
            text=text,
            chat_id=message.chat_id,
            reply_to=message.reply_to_message_id,
            parse_mode=message.parse_mode,
        )
        await asyncio.sleep(self.delay)
        return message_id

    async def edit(self, message_id, text, *, chat_id=None,
                   parse_mode=DEFAULT_PARSE_MODE, disable_web_page_preview=False) -> None:
        logger.info("message_editing", platform=self.platform.value, message_id=message_id)
        await asyncio.sleep(self.delay)

    async def delete(self, message_id, *, chat_id=None) -> None:
        logger.info("message_deleting", platform=self.platform.value, message_id=message_id)
        await asyncio.sleep(self.delay)
        logger.info("message_deleted", platform=self.platform.value, message_id=message_id)


class Messenger:
    """Sends, edits and deletes messages across platforms.

    Platforms without a registered transport fall back to a
    LoggingTransport, so the messaging API works before any bot runs.

    Args:
        fallback_delay: Simulated latency of the fallback transports.
    """

    def __init__(self, fallback_delay: float = 0.1):
        self._transports: Dict[Platform, Transport] = {}
        self._fallbacks: Dict[Platform, Transport] = {}
        self._fallback_delay = fallback_delay

    def set_transport(self, platform: Platform, transport: Transport) -> None:
        self._transports[Platform(platform)] = transport

    def remove_transport(self, platform: Platform) -> None:
        self._transports.pop(Platform(platform), None)

    def transport_for(self, platform: Platform) -> Transport:
        platform = Platform(platform)
        transport = self._transports.get(platform)
        if transport is not None:
            return transport
        if platform not in self._fallbacks:
            self._fallbacks[platform] = LoggingTransport(platform, delay=self._fallback_delay)
        return self._fallbacks[platform]

    async def send_message(self, options: MessageOptions) -> List[SentMessage]:
        """Send a message to every platform in ``options.platform``.

        A failure on one platform, including an unknown platform name, is
        logged and reported through ``on_error``; the remaining platforms
        are still attempted.

        Returns:
            One SentMessage per platform that accepted the message.
        """
        reply_to = resolve_reply(options.reply, options.reply_to_message_id)
        private = options.private_message is True or options.private_message == 1
        results: List[SentMessage] = []

        for item in _as_list(options.platform):
            platform = parse_platform(item)
            try:
                if platform is None:
                    raise MessageError(f"Unsupported platform: {item}", platform=str(item))
                outgoing = OutgoingMessage(
                    text=options.text,
                    chat_id=options.chat_id,
                    reply_to_message_id=reply_to,
                    parse_mode=options.parse_mode,
                    disable_web_page_preview=options.disable_web_page_preview,
                    disable_notification=options.disable_notification,
                    allow_sending_without_reply=options.allow_sending_without_reply,
                    private=private,
                    extra=dict(options.platform_specific.get(platform.value, {})),
                )
                message_id = await self.transport_for(platform).send(outgoing)
            except Exception as e:
                target = platform if platform is not None else item
                logger.warning("message_send_failed", platform=_label(target), error=str(e))
                if options.on_error:
                    options.on_error(e, target)
                continue

            results.append(SentMessage(platform=platform, message_id=message_id))
            if options.on_success:
                options.on_success(message_id, platform)

        return results

    async def delete_message(
        self,
        message_id: MessageId,
        platform: PlatformLike,
        log_error: Union[bool, int] = True,
        chat_id: Optional[MessageId] = None,
    ) -> None:
        """Delete a message; failures are logged (if asked) and re-raised."""
        should_log = log_error is True or log_error == 1
        resolved = parse_platform(platform)
        try:
            if resolved is None:
                raise MessageError(f"Unsupported platform: {platform}", platform=str(platform))
            await self.transport_for(resolved).delete(message_id, chat_id=chat_id)
        except Exception as e:
            error_message = f"Failed to delete message {message_id} from {platform}: {e}"
            if should_log:
                logger.error("message_delete_failed", platform=str(platform), error=error_message)
            raise MessageError(error_message, platform=str(platform)) from e

    async def edit_message(
        self,
        message_id: MessageId,
        platform: PlatformLike,
        new_text: str,
        parse_mode: str = DEFAULT_PARSE_MODE,
        disable_web_page_preview: bool = False,
        log_error: Union[bool, int] = True,
        chat_id: Optional[MessageId] = None,
    ) -> None:
        """Replace the text of an existing message."""
        try:
            if not message_id:
                raise MessageError("Message ID is required")
            if not platform:
                raise MessageError("Platform is required")
            if not new_text:
                raise MessageError("New text content is required")
            resolved = parse_platform(platform)
            if resolved is None:
                raise MessageError(f"Unsupported platform: {platform}", platform=str(platform))
            await self.transport_for(resolved).edit(
                message_id,
                new_text,
                chat_id=chat_id,
                parse_mode=parse_mode,
                disable_web_page_preview=disable_web_page_preview,
            )
        except Exception as e:
            if log_error:
                logger.error("message_edit_failed", platform=str(platform), error=str(e))
            raise

    # --- Helpers for common message patterns ---

    async def reply(self, platform, text: str, reply_to_message_id: MessageId,
                    **options: Any) -> List[SentMessage]:
        """Send ``text`` as a reply to ``reply_to_message_id``."""
        return await self.send_message(
            MessageOptions(text=text, platform=platform, reply=reply_to_message_id, **options)
        )

    async def with_link_preview(self, platform, text: str, **options: Any) -> List[SentMessage]:
        """Send ``text`` with link previews enabled."""
        options["disable_web_page_preview"] = False
        return await self.send_message(MessageOptions(text=text, platform=platform, **options))

    async def silent(self, platform, text: str, **options: Any) -> List[SentMessage]:
        """Send ``text`` without a notification."""
        options["disable_notification"] = True
        return await self.send_message(MessageOptions(text=text, platform=platform, **options))

    async def private(self, platform, text: str, **options: Any) -> List[SentMessage]:
        """Send ``text`` privately to the target user where supported."""
        options["private_message"] = True
        return await self.send_message(MessageOptions(text=text, platform=platform, **options))

    async def send_page(
        self, platform: Platform, rendered: "RenderedPage", context: Context
    ) -> List[SentMessage]:
        """Deliver a rendered page to the conversation in ``context``."""
        return await self.send_message(MessageOptions(
            text=rendered.text,
            platform=platform,
            chat_id=context.get("chat_id"),
            # rendered pages contain characters MarkdownV2 reserves
            parse_mode="",
            platform_specific={
                Platform(platform).value: {"buttons": [line.text for line in rendered.buttons]}
            },
        ))
