"""Package self-update for ifyapi.

When ``autoUpdate`` is on, startup runs ``pip install --upgrade ifyapi``
in the current interpreter. Failures are logged and never stop the bot.
"""

import asyncio
import subprocess
import sys
from typing import List, Optional

import structlog

logger = structlog.get_logger("ifyapi.updater")

PACKAGE_NAME = "ifyapi"
PIP_TIMEOUT = 120  # seconds


class PackageUpdater:
    """Upgrades the installed ifyapi distribution with pip."""

    def __init__(self, package: str = PACKAGE_NAME, python: Optional[str] = None):
        self.package = package
        self.python = python or sys.executable
        self._lock = asyncio.Lock()

    def _pip_command(self) -> List[str]:
        return [self.python, "-m", "pip", "install", "--upgrade", self.package, "--quiet"]

    async def update(self) -> bool:
        """Run the upgrade. Returns True when pip succeeded."""
        async with self._lock:
            cmd = self._pip_command()
            logger.info("update_check_started", package=self.package)
            try:
                result = await asyncio.to_thread(
                    subprocess.run, cmd, capture_output=True, text=True, timeout=PIP_TIMEOUT
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.error("update_failed", package=self.package, error=str(e))
                return False

            if result.returncode != 0:
                logger.error(
                    "update_failed",
                    package=self.package,
                    returncode=result.returncode,
                    error=(result.stderr or "")[:500],
                )
                return False

            logger.info("update_applied", package=self.package)
            return True


async def auto_update(config) -> bool:
    """Upgrade the package if ``config.auto_update`` is set."""
    if not config.auto_update:
        return False
    return await PackageUpdater().update()
