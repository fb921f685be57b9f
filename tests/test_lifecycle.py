"""Tests for the bot lifecycle manager."""

import asyncio

import pytest

from ifyapi.config import Config
from ifyapi.context import BotContext
from ifyapi.exceptions import BotLifecycleError, UnsupportedPlatformError
from ifyapi.lifecycle import BotManager
from ifyapi.messaging import LoggingTransport, Messenger
from ifyapi.platforms import BotInstance
from ifyapi.types import Platform


class FakeBot(BotInstance):
    """Bot handle whose start/stop outcome is controlled by the test."""

    created = []

    def __init__(self, ctx, platform, fail_start=False, fail_stop=False, start_delay=0):
        super().__init__(ctx)
        self.platform = platform
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.start_delay = start_delay
        self._transport = LoggingTransport(platform, delay=0)
        FakeBot.created.append(self)

    @property
    def transport(self):
        return self._transport

    async def start(self):
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.fail_start:
            raise BotLifecycleError("token rejected", platform=self.platform.value, operation="start")
        self.running = True

    async def stop(self):
        if self.fail_stop:
            raise BotLifecycleError("socket stuck", platform=self.platform.value, operation="stop")
        self.running = False


def _make_manager(enabled=("discord", "telegram"), **bot_kwargs):
    config = Config.model_validate({
        "platforms": {
            "discord": {"enabled": "discord" in enabled},
            "telegram": {"enabled": "telegram" in enabled},
        }
    })
    ctx = BotContext(config=config, messenger=Messenger(fallback_delay=0))
    factories = {
        platform: (lambda c, p=platform: FakeBot(c, p, **bot_kwargs.get(p.value, {})))
        for platform in Platform
    }
    ctx.manager = BotManager(ctx, bot_factories=factories)
    return ctx.manager


@pytest.fixture(autouse=True)
def _reset_created():
    FakeBot.created.clear()
    yield


class TestStart:

    @pytest.mark.asyncio
    async def test_start_success(self):
        manager = _make_manager()
        assert await manager.start("telegram") == ["telegram bot started successfully"]
        assert manager.running_platforms == frozenset({Platform.TELEGRAM})
        assert manager.ctx.messenger.transport_for(Platform.TELEGRAM) is manager.instances[Platform.TELEGRAM].transport

    @pytest.mark.asyncio
    async def test_start_twice_reports_already_running(self):
        manager = _make_manager()
        await manager.start("telegram")
        assert await manager.start("telegram") == ["Bot for telegram is already running"]
        assert manager.running_platforms == frozenset({Platform.TELEGRAM})
        assert len(FakeBot.created) == 1

    @pytest.mark.asyncio
    async def test_disabled_and_unknown_platforms_not_supported(self):
        manager = _make_manager(enabled=("telegram",))
        results = await manager.start("discord", "irc", "telegram")
        assert results == [
            "Platform 'discord' is not supported",
            "Platform 'irc' is not supported",
            "telegram bot started successfully",
        ]

    @pytest.mark.asyncio
    async def test_start_failure_is_reported_per_platform(self):
        manager = _make_manager(discord={"fail_start": True})
        results = await manager.start("discord", "telegram")
        assert results == [
            "Failed to start discord bot: token rejected",
            "telegram bot started successfully",
        ]
        assert manager.running_platforms == frozenset({Platform.TELEGRAM})

    @pytest.mark.asyncio
    async def test_concurrent_starts_build_one_handle(self):
        manager = _make_manager(telegram={"start_delay": 0.01})
        results = await asyncio.gather(manager.start("telegram"), manager.start("telegram"))
        assert sorted(r[0] for r in results) == [
            "Bot for telegram is already running",
            "telegram bot started successfully",
        ]
        assert len(FakeBot.created) == 1

    @pytest.mark.asyncio
    async def test_accepts_platform_enum(self):
        manager = _make_manager()
        assert await manager.start(Platform.DISCORD) == ["discord bot started successfully"]


class TestStop:

    @pytest.mark.asyncio
    async def test_stop_not_running(self):
        manager = _make_manager()
        await manager.start("telegram")
        assert await manager.stop("discord") == ["No running bot found for discord"]
        assert manager.running_platforms == frozenset({Platform.TELEGRAM})

    @pytest.mark.asyncio
    async def test_stop_success_removes_transport(self):
        manager = _make_manager()
        await manager.start("discord")
        assert await manager.stop("discord") == ["discord bot stopped successfully"]
        assert manager.running_platforms == frozenset()
        assert Platform.DISCORD not in manager.instances
        assert isinstance(manager.ctx.messenger.transport_for(Platform.DISCORD), LoggingTransport)

    @pytest.mark.asyncio
    async def test_stop_failure(self):
        manager = _make_manager(discord={"fail_stop": True})
        await manager.start("discord")
        assert await manager.stop("discord") == ["Failed to stop discord bot: socket stuck"]
        assert manager.is_running("discord")

    @pytest.mark.asyncio
    async def test_missing_instance(self):
        manager = _make_manager()
        await manager.start("discord")
        del manager.instances[Platform.DISCORD]
        assert await manager.stop("discord") == ["Bot instance not found for discord"]
        assert not manager.is_running("discord")


class TestRestartAndShutdown:

    @pytest.mark.asyncio
    async def test_restart_success(self):
        manager = _make_manager()
        await manager.start("telegram")
        assert await manager.restart("telegram") == ["telegram bot started successfully"]
        assert len(FakeBot.created) == 2

    @pytest.mark.asyncio
    async def test_restart_stops_whole_batch_before_starting(self):
        manager = _make_manager()
        await manager.start("telegram", "discord")
        old = {bot.platform: bot for bot in FakeBot.created}
        running_when_created = []
        factories = dict(manager.bot_factories)

        def recording_factory(c, p):
            running_when_created.append([o.running for o in old.values()])
            return factories[p](c)

        for platform in Platform:
            manager.bot_factories[platform] = lambda c, p=platform: recording_factory(c, p)

        results = await manager.restart("telegram", "discord")

        assert results == [
            "telegram bot started successfully",
            "discord bot started successfully",
        ]
        assert running_when_created == [[False, False], [False, False]]
        assert manager.running_platforms == frozenset({Platform.TELEGRAM, Platform.DISCORD})

    @pytest.mark.asyncio
    async def test_restart_is_not_transactional(self):
        manager = _make_manager()
        await manager.start("telegram")
        manager.bot_factories[Platform.TELEGRAM] = lambda c: FakeBot(c, Platform.TELEGRAM, fail_start=True)
        results = await manager.restart("telegram")
        assert results == ["Failed to start telegram bot: token rejected"]
        assert not manager.is_running("telegram")

    @pytest.mark.asyncio
    async def test_start_all_and_stop_all(self):
        manager = _make_manager()
        assert await manager.start_all() == [
            "discord bot started successfully",
            "telegram bot started successfully",
        ]
        assert await manager.stop_all() == [
            "discord bot stopped successfully",
            "telegram bot stopped successfully",
        ]

    @pytest.mark.asyncio
    async def test_shutdown_with_nothing_running(self):
        manager = _make_manager()
        assert await manager.shutdown() == ["No running bots to shut down"]

    @pytest.mark.asyncio
    async def test_shutdown_stops_everything(self):
        manager = _make_manager()
        await manager.start_all()
        await manager.shutdown()
        assert manager.running_platforms == frozenset()


class TestCreateBotInstance:

    def test_unsupported_platform_raises(self):
        manager = _make_manager(enabled=("discord",))
        with pytest.raises(UnsupportedPlatformError, match="Platform 'telegram' is not supported"):
            manager.create_bot_instance("telegram")

    def test_builds_without_starting(self):
        manager = _make_manager()
        bot = manager.create_bot_instance("discord")
        assert bot.running is False
        assert manager.running_platforms == frozenset()
