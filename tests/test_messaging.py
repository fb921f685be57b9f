"""Tests for cross-platform messaging."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ifyapi.exceptions import MessageError
from ifyapi.executor import RenderedButton, RenderedPage
from ifyapi.messaging import (
    LoggingTransport,
    MessageOptions,
    Messenger,
    OutgoingMessage,
    SentMessage,
    Transport,
    resolve_reply,
)
from ifyapi.types import Platform


def _mock_transport(platform, message_id="m1", error=None):
    transport = MagicMock(spec=Transport)
    transport.platform = platform
    transport.send = AsyncMock(return_value=message_id, side_effect=error)
    transport.edit = AsyncMock(side_effect=error)
    transport.delete = AsyncMock(side_effect=error)
    return transport


class TestResolveReply:

    @pytest.mark.parametrize("reply", [True, 1, "true", "1"])
    def test_truthy_flags_use_legacy_id(self, reply):
        assert resolve_reply(reply, 99) == 99

    @pytest.mark.parametrize("reply", [False, 0, "0", "false"])
    def test_falsy_flags_disable_reply(self, reply):
        assert resolve_reply(reply, 99) is None

    def test_explicit_id(self):
        assert resolve_reply("abc", 99) == "abc"
        assert resolve_reply(1234, None) == 1234

    def test_unset_falls_back_to_legacy_id(self):
        assert resolve_reply(None, 7) == 7


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_fans_out_to_each_platform(self):
        messenger = Messenger()
        discord = _mock_transport(Platform.DISCORD, "d1")
        telegram = _mock_transport(Platform.TELEGRAM, "t1")
        messenger.set_transport(Platform.DISCORD, discord)
        messenger.set_transport(Platform.TELEGRAM, telegram)

        results = await messenger.send_message(MessageOptions(
            text="hello", platform=["discord", "telegram"], chat_id=5,
        ))

        assert results == [
            SentMessage(Platform.DISCORD, "d1"),
            SentMessage(Platform.TELEGRAM, "t1"),
        ]
        sent = telegram.send.await_args.args[0]
        assert sent.text == "hello"
        assert sent.chat_id == 5

    @pytest.mark.asyncio
    async def test_failure_on_one_platform_does_not_stop_others(self):
        messenger = Messenger()
        messenger.set_transport(Platform.DISCORD, _mock_transport(Platform.DISCORD, error=RuntimeError("boom")))
        messenger.set_transport(Platform.TELEGRAM, _mock_transport(Platform.TELEGRAM, "t1"))
        on_error = MagicMock()
        on_success = MagicMock()

        results = await messenger.send_message(MessageOptions(
            text="hi", platform=["discord", "telegram"],
            on_error=on_error, on_success=on_success,
        ))

        assert results == [SentMessage(Platform.TELEGRAM, "t1")]
        error, platform = on_error.call_args.args
        assert str(error) == "boom"
        assert platform is Platform.DISCORD
        on_success.assert_called_once_with("t1", Platform.TELEGRAM)

    @pytest.mark.asyncio
    async def test_platform_specific_fields_only_reach_their_platform(self):
        messenger = Messenger()
        discord = _mock_transport(Platform.DISCORD)
        telegram = _mock_transport(Platform.TELEGRAM)
        messenger.set_transport(Platform.DISCORD, discord)
        messenger.set_transport(Platform.TELEGRAM, telegram)

        await messenger.send_message(MessageOptions(
            text="x", platform=["discord", "telegram"],
            platform_specific={"telegram": {"protect_content": True}},
        ))

        assert telegram.send.await_args.args[0].extra == {"protect_content": True}
        assert discord.send.await_args.args[0].extra == {}

    @pytest.mark.asyncio
    async def test_unknown_platform_reported_and_others_still_sent(self):
        messenger = Messenger()
        telegram = _mock_transport(Platform.TELEGRAM, "t1")
        messenger.set_transport(Platform.TELEGRAM, telegram)
        on_error = MagicMock()

        results = await messenger.send_message(MessageOptions(
            text="hi", platform=["irc", "telegram"], chat_id=1, on_error=on_error,
        ))

        assert results == [SentMessage(Platform.TELEGRAM, "t1")]
        telegram.send.assert_awaited_once()
        error, platform = on_error.call_args.args
        assert isinstance(error, MessageError)
        assert str(error) == "Unsupported platform: irc"
        assert platform == "irc"

    @pytest.mark.asyncio
    async def test_logging_fallback_returns_nine_char_id(self):
        messenger = Messenger(fallback_delay=0)
        results = await messenger.send_message(MessageOptions(text="x" * 300, platform="telegram"))
        assert len(results) == 1
        assert len(results[0].message_id) == 9
        assert isinstance(messenger.transport_for(Platform.TELEGRAM), LoggingTransport)


class TestHelpers:

    @pytest.mark.asyncio
    async def test_reply_sets_reply_id(self):
        messenger = Messenger()
        transport = _mock_transport(Platform.TELEGRAM)
        messenger.set_transport(Platform.TELEGRAM, transport)
        await messenger.reply("telegram", "ok", 42)
        assert transport.send.await_args.args[0].reply_to_message_id == 42

    @pytest.mark.asyncio
    async def test_silent_and_private(self):
        messenger = Messenger()
        transport = _mock_transport(Platform.DISCORD)
        messenger.set_transport(Platform.DISCORD, transport)

        await messenger.silent("discord", "quiet")
        assert transport.send.await_args.args[0].disable_notification is True

        await messenger.private("discord", "secret", platform_specific={"discord": {"user_id": 1}})
        message = transport.send.await_args.args[0]
        assert message.private is True
        assert message.extra == {"user_id": 1}

    @pytest.mark.asyncio
    async def test_with_link_preview(self):
        messenger = Messenger()
        transport = _mock_transport(Platform.DISCORD)
        messenger.set_transport(Platform.DISCORD, transport)
        await messenger.with_link_preview("discord", "https://example.com", disable_web_page_preview=True)
        assert transport.send.await_args.args[0].disable_web_page_preview is False

    @pytest.mark.asyncio
    async def test_send_page_passes_button_labels(self):
        messenger = Messenger()
        transport = _mock_transport(Platform.TELEGRAM)
        messenger.set_transport(Platform.TELEGRAM, transport)
        rendered = RenderedPage("main", "Menu", (RenderedButton(1, "Settings"),))

        await messenger.send_page(Platform.TELEGRAM, rendered, {"chat_id": 3})

        message: OutgoingMessage = transport.send.await_args.args[0]
        assert message.text == "Menu\n\n1. Settings"
        assert message.chat_id == 3
        assert message.parse_mode == ""
        assert message.extra == {"buttons": ["Settings"]}


class TestEditAndDelete:

    @pytest.mark.asyncio
    async def test_edit_requires_message_id(self):
        with pytest.raises(MessageError, match="Message ID is required"):
            await Messenger().edit_message("", "telegram", "new")

    @pytest.mark.asyncio
    async def test_edit_requires_text(self):
        with pytest.raises(MessageError, match="New text content is required"):
            await Messenger().edit_message("1", "telegram", "")

    @pytest.mark.asyncio
    async def test_edit_delegates_to_transport(self):
        messenger = Messenger()
        transport = _mock_transport(Platform.TELEGRAM)
        messenger.set_transport(Platform.TELEGRAM, transport)
        await messenger.edit_message("10", "telegram", "updated", chat_id=4)
        transport.edit.assert_awaited_once_with(
            "10", "updated", chat_id=4, parse_mode="MarkdownV2", disable_web_page_preview=False,
        )

    @pytest.mark.asyncio
    async def test_edit_failure_is_reraised(self):
        messenger = Messenger()
        messenger.set_transport(Platform.TELEGRAM, _mock_transport(Platform.TELEGRAM, error=RuntimeError("gone")))
        with pytest.raises(RuntimeError, match="gone"):
            await messenger.edit_message("10", "telegram", "updated")

    @pytest.mark.asyncio
    async def test_delete_failure_is_wrapped(self):
        messenger = Messenger()
        messenger.set_transport(Platform.DISCORD, _mock_transport(Platform.DISCORD, error=RuntimeError("403")))
        with pytest.raises(MessageError, match="Failed to delete message 5 from discord: 403"):
            await messenger.delete_message("5", "discord", log_error=False)

    @pytest.mark.asyncio
    async def test_delete_success(self):
        messenger = Messenger()
        transport = _mock_transport(Platform.DISCORD)
        messenger.set_transport(Platform.DISCORD, transport)
        await messenger.delete_message("5", "discord", chat_id=8)
        transport.delete.assert_awaited_once_with("5", chat_id=8)
