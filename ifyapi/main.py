"""Main entry point for ifyapi.

Initializes logging in two phases (defaults then config-driven), builds
the BotContext, starts every enabled platform bot and waits for
SIGTERM/SIGINT, then shuts the bots down and exits with status 0.
Supports both Unix signal handlers and a Windows SIGINT fallback.

Key functions:
    main: Async entry point.
    run: Synchronous wrapper that calls asyncio.run(main()).
"""

import asyncio
import signal
import sys

import structlog

from . import __version__
from .logging_config import setup_logging


async def main(config_path=None) -> int:
    """Main async entry point."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("ifyapi")

    logger.info("ifyapi_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .config import ConfigManager
    from .context import create_context
    from .updater import auto_update

    config = ConfigManager(config_path).load()
    config.validate_settings()

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    await auto_update(config)

    ctx = create_context(config)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported.
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: loop.call_soon_threadsafe(handle_shutdown, signal.SIGINT),
                )

    try:
        for line in await ctx.manager.start_all():
            logger.info("startup_result", result=line)
        await shutdown_event.wait()
    except Exception as e:
        logger.error("bot_error", error=str(e))
        raise
    finally:
        for line in await ctx.manager.shutdown():
            logger.info("shutdown_result", result=line)
        logger.info("ifyapi_stopped")
    return 0


def run():
    """Synchronous entry point for the ``ifyapi`` console script."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
