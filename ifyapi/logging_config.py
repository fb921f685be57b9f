"""Logging configuration for ifyapi.

structlog + stdlib integration with per-platform routing:

    root  → StreamHandler (console)   "[PLATFORM] [LEVEL] event key=value"
          → PlatformFileHandler       <log_dir>/<platform>/<YYYY-MM-DD>.log
                                      (WARNING and above, append-only)

Callers bind the platform as a key: ``logger.warning("send_failed",
platform="telegram")``. Events without one are attributed to "system".
"""

import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import structlog

DEFAULT_PLATFORM = "system"

# Keys rendered in the prefix or dropped from the console line
_RESERVED_KEYS = ("event", "level", "platform", "timestamp", "logger", "exception", "stack")

# ---------------------------------------------------------------------------
# Secret sanitization
# ---------------------------------------------------------------------------

# Bot tokens as they show up in URLs, errors and headers
_TOKEN_RE = re.compile(
    r"(?<!\d)\d{6,12}:[A-Za-z0-9_-]{30,}"                                   # Telegram
    r"|\b[A-Za-z0-9_-]{23,28}\.[A-Za-z0-9_-]{6,7}\.[A-Za-z0-9_-]{27,}\b"    # Discord
    r"|Bot\s+[A-Za-z0-9_.-]{20,}"                                           # Authorization
)

REDACTED = "***REDACTED***"


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _TOKEN_RE.sub(REDACTED, value)
    if type(value) in (list, tuple):
        return type(value)(_scrub(item) for item in value)
    if isinstance(value, dict):
        return {key: _scrub(item) for key, item in value.items()}
    return value


def sanitize_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor: redact bot tokens anywhere in the event."""
    return {key: _scrub(value) for key, value in event_dict.items()}


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_platform_line(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> str:
    """Final processor: ``[PLATFORM] [LEVEL] event key=value ...``."""
    platform = str(event_dict.get("platform") or DEFAULT_PLATFORM)
    level = str(event_dict.get("level") or method_name)
    if level == "warning":
        level = "warn"
    line = f"[{platform.upper()}] [{level.upper()}] {event_dict.get('event', '')}"

    extras = " ".join(
        f"{key}={value}" for key, value in event_dict.items()
        if key not in _RESERVED_KEYS and not key.startswith("_")
    )
    if extras:
        line = f"{line} {extras}"
    for key in ("stack", "exception"):
        if event_dict.get(key):
            line = f"{line}\n{event_dict[key]}"
    return line


class PlatformFileHandler(logging.Handler):
    """Appends records to ``<log_dir>/<platform>/<date>.log``.

    Works with records produced through ``ProcessorFormatter.wrap_for_formatter``,
    where ``record.msg`` is the structlog event dict. Write failures are
    reported on stderr and swallowed; the bot must not crash on logging.
    """

    def __init__(self, log_dir: Path, level: int = logging.WARNING):
        super().__init__(level)
        self.log_dir = Path(log_dir)

    def _platform_for(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            return str(record.msg.get("platform") or DEFAULT_PLATFORM).lower()
        return str(getattr(record, "platform", DEFAULT_PLATFORM)).lower()

    def emit(self, record: logging.LogRecord) -> None:
        platform = self._platform_for(record)
        try:
            line = self.format(record)
            platform_dir = self.log_dir / platform
            platform_dir.mkdir(parents=True, exist_ok=True)
            now = datetime.now(timezone.utc)
            log_file = platform_dir / f"{now.strftime('%Y-%m-%d')}.log"
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(f"[{now.isoformat()}] {line}\n")
        except Exception as exc:
            print(
                f"Failed to write to log file for {platform}: {exc}",
                file=sys.stderr,
            )


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(config=None) -> None:
    """Configure structlog and the console/file handlers.

    Args:
        config: Optional Config instance. The first call (before config
                loads) uses INFO and ``./IA/logs`` with logger caching
                off; the second call applies the loaded settings.
    """
    if config is not None:
        log_dir = config.log_path
        level_name = config.logging_level
        cache_loggers = True
    else:
        log_dir = Path.cwd() / "IA" / "logs"
        level_name = "INFO"
        cache_loggers = False

    level = getattr(logging, level_name, logging.INFO)

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            render_platform_line,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = PlatformFileHandler(log_dir, level=max(level, logging.WARNING))
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache_loggers,
    )
