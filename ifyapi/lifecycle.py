"""Per-platform bot lifecycle.

BotManager starts, stops and restarts platform bots and tracks which
platforms are running. Batch operations take several platforms, handle
them one after another in the order given, and return one result string
per platform; a failure on one platform never aborts the rest.

Each platform has its own asyncio.Lock, so two overlapping start() calls
for the same platform cannot both construct a handle.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable, Dict, FrozenSet, List, Mapping, Optional, Set

import structlog

from .exceptions import UnsupportedPlatformError
from .platforms import BotInstance, DiscordBot, TelegramBot
from .types import Platform, PlatformLike, parse_platform

if TYPE_CHECKING:
    from .context import BotContext

logger = structlog.get_logger("ifyapi.lifecycle")

BotFactory = Callable[["BotContext"], BotInstance]

DEFAULT_BOT_FACTORIES: Mapping[Platform, BotFactory] = {
    Platform.DISCORD: DiscordBot,
    Platform.TELEGRAM: TelegramBot,
}

NO_RUNNING_BOTS_TEXT = "No running bots to shut down"


def _label(platform: PlatformLike) -> str:
    return platform.value if isinstance(platform, Platform) else str(platform)


class BotManager:
    """Owns the live bot handles and the running set.

    Args:
        ctx: Shared BotContext; ``ctx.config`` decides which platforms
            are enabled and ``ctx.messenger`` receives each running
            bot's transport.
        bot_factories: Platform -> callable building a BotInstance from
            the context. Defaults to the Discord and Telegram bots.
    """

    def __init__(
        self,
        ctx: "BotContext",
        bot_factories: Optional[Mapping[Platform, BotFactory]] = None,
    ):
        self.ctx = ctx
        self.bot_factories: Dict[Platform, BotFactory] = dict(
            bot_factories if bot_factories is not None else DEFAULT_BOT_FACTORIES
        )
        self.instances: Dict[Platform, BotInstance] = {}
        self._running: Set[Platform] = set()
        self._locks: Dict[Platform, asyncio.Lock] = {}

    @property
    def running_platforms(self) -> FrozenSet[Platform]:
        return frozenset(self._running)

    def is_running(self, platform: PlatformLike) -> bool:
        return parse_platform(platform) in self._running

    def _lock_for(self, platform: Platform) -> asyncio.Lock:
        lock = self._locks.get(platform)
        if lock is None:
            lock = self._locks[platform] = asyncio.Lock()
        return lock

    def _supported(self, platform: PlatformLike) -> Optional[Platform]:
        """The Platform if it is enabled in config and has a factory."""
        resolved = parse_platform(platform)
        if resolved is None:
            return None
        if resolved not in self.ctx.config.enabled_platforms:
            return None
        if resolved not in self.bot_factories:
            return None
        return resolved

    def create_bot_instance(self, platform: PlatformLike) -> BotInstance:
        """Build (but do not start) a bot handle.

        Raises:
            UnsupportedPlatformError: unknown, disabled or without a factory.
        """
        resolved = self._supported(platform)
        if resolved is None:
            raise UnsupportedPlatformError(
                f"Platform '{_label(platform)}' is not supported",
                platform=_label(platform),
            )
        return self.bot_factories[resolved](self.ctx)

    async def start(self, *platforms: PlatformLike) -> List[str]:
        """Start each platform; returns one result string per platform."""
        results = []
        for platform in platforms:
            results.append(await self._start_one(platform))
        return results

    async def _start_one(self, platform: PlatformLike) -> str:
        resolved = self._supported(platform)
        if resolved is None:
            logger.warning("platform_not_supported", platform=_label(platform))
            return f"Platform '{_label(platform)}' is not supported"

        name = resolved.value
        async with self._lock_for(resolved):
            if resolved in self._running:
                return f"Bot for {name} is already running"

            try:
                bot = self.create_bot_instance(resolved)
                await bot.start()
            except Exception as e:
                logger.error("bot_start_failed", platform=name, error=str(e))
                return f"Failed to start {name} bot: {e}"

            self.instances[resolved] = bot
            self._running.add(resolved)
            self.ctx.messenger.set_transport(resolved, bot.transport)
            logger.info("bot_started", platform=name)
            return f"{name} bot started successfully"

    async def stop(self, *platforms: PlatformLike) -> List[str]:
        """Stop each platform; returns one result string per platform."""
        results = []
        for platform in platforms:
            results.append(await self._stop_one(platform))
        return results

    async def _stop_one(self, platform: PlatformLike) -> str:
        resolved = parse_platform(platform)
        if resolved is None or resolved not in self._running:
            return f"No running bot found for {_label(platform)}"

        name = resolved.value
        async with self._lock_for(resolved):
            if resolved not in self._running:
                return f"No running bot found for {name}"

            bot = self.instances.get(resolved)
            if bot is None:
                self._running.discard(resolved)
                logger.warning("bot_instance_missing", platform=name)
                return f"Bot instance not found for {name}"

            try:
                await bot.stop()
            except Exception as e:
                logger.error("bot_stop_failed", platform=name, error=str(e))
                return f"Failed to stop {name} bot: {e}"

            del self.instances[resolved]
            self._running.discard(resolved)
            self.ctx.messenger.remove_transport(resolved)
            logger.info("bot_stopped", platform=name)
            return f"{name} bot stopped successfully"

    async def restart(self, *platforms: PlatformLike) -> List[str]:
        """Stop the whole batch, then start it again.

        Returns the start results only; stop results are logged. Not
        transactional: when a start fails after a successful stop, that
        platform stays stopped.
        """
        for result in await self.stop(*platforms):
            logger.info("restart_stop_result", result=result)
        return await self.start(*platforms)

    async def start_all(self) -> List[str]:
        """Start every enabled platform."""
        enabled = [p for p in Platform if p in self.ctx.config.enabled_platforms]
        return await self.start(*enabled)

    async def stop_all(self) -> List[str]:
        """Stop every running platform."""
        running = [p for p in Platform if p in self._running]
        return await self.stop(*running)

    async def shutdown(self) -> List[str]:
        """Stop everything that is running."""
        if not self._running:
            logger.info("shutdown_nothing_running")
            return [NO_RUNNING_BOTS_TEXT]
        logger.info("shutdown_started", platforms=sorted(p.value for p in self._running))
        results = await self.stop_all()
        logger.info("shutdown_complete")
        return results
