"""Tests for the entry point and context wiring."""

import asyncio
import signal
from unittest.mock import patch

import pytest

from ifyapi.config import Config
from ifyapi.context import create_context
from ifyapi.executor import PlatformExecutor
from ifyapi.lifecycle import BotManager


class TestCreateContext:

    def test_wires_components(self):
        ctx = create_context(Config())
        assert isinstance(ctx.executor, PlatformExecutor)
        assert isinstance(ctx.manager, BotManager)
        assert ctx.executor.commands is ctx.commands
        assert ctx.executor.messenger is ctx.messenger
        assert ctx.commands.get("help") is not None

    def test_contexts_are_independent(self):
        first = create_context(Config())
        second = create_context(Config())
        first.pages.build_page("only-here").build()
        assert "only-here" not in second.pages
        assert first.commands is not second.commands

    def test_strict_commands(self):
        ctx = create_context(Config(), strict_commands=True)
        assert ctx.commands.strict is True


class TestMain:

    @pytest.mark.asyncio
    async def test_shutdown_on_signal(self, tmp_path):
        from ifyapi import main as main_module

        config_path = tmp_path / "config.json"
        config_path.write_text(
            '{"logDir": "%s", "platforms": {"discord": {"enabled": false}, '
            '"telegram": {"enabled": false}}}' % (tmp_path / "logs").as_posix()
        )
        handlers = {}

        def record_handler(sig, callback, *args):
            handlers[sig] = (callback, args)

        async def deliver_sigterm():
            while signal.SIGTERM not in handlers:
                await asyncio.sleep(0.01)
            callback, args = handlers[signal.SIGTERM]
            callback(*args)

        loop = asyncio.get_running_loop()
        with patch.object(main_module, "setup_logging"), \
                patch.object(loop, "add_signal_handler", side_effect=record_handler):
            task = asyncio.create_task(deliver_sigterm())
            code = await asyncio.wait_for(main_module.main(config_path), timeout=5)
            await task

        assert code == 0
        assert set(handlers) == {signal.SIGTERM, signal.SIGINT}
