"""Configuration management for ifyapi.

Loads a JSON settings file (``//`` and ``/* */`` comments allowed) and
environment variables (.env) into a typed Config model. Every field has
an explicit default, so a missing, unreadable or partially invalid file
degrades to defaults instead of stopping the bot.

Key classes:
    Config: Typed settings schema (pydantic).
    ConfigManager: Loads, repairs, updates and saves the settings file.

Key functions:
    strip_json_comments: Remove comments outside of JSON strings.
"""

import copy
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Literal, Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .types import Platform

logger = structlog.get_logger("ifyapi.config")

DEFAULT_CONFIG_DIR = Path.cwd() / "IA"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.json"

DEFAULT_DISCORD_INTENTS = ("Guilds", "GuildMessages", "MessageContent")
DEFAULT_CORS_METHODS = ("GET", "POST")

TOKEN_ENV_VARS = {
    Platform.DISCORD: "DISCORD_TOKEN",
    Platform.TELEGRAM: "TELEGRAM_TOKEN",
}

# logLevel values -> stdlib level names
_LEVEL_NAMES = {
    "error": "ERROR",
    "warn": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
}

# Repairs stop after this many validate/drop rounds
_MAX_REPAIR_PASSES = 10

_COMMENT_RE = re.compile(r'("(?:\\.|[^"\\])*")|/\*[\s\S]*?\*/|//[^\n]*')


def strip_json_comments(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments that are not inside strings."""
    return _COMMENT_RE.sub(lambda m: m.group(1) or "", text)


def _union(defaults, values) -> List[Any]:
    """Defaults first, then new values, without duplicates."""
    merged = list(defaults)
    for item in values:
        if item not in merged:
            merged.append(item)
    return merged


class _Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DiscordSettings(_Section):
    enabled: bool = True
    token: str = ""
    intents: List[str] = Field(default_factory=lambda: list(DEFAULT_DISCORD_INTENTS))

    @field_validator("intents")
    @classmethod
    def _merge_intents(cls, value: List[str]) -> List[str]:
        return _union(DEFAULT_DISCORD_INTENTS, value)


class TelegramSettings(_Section):
    enabled: bool = True
    token: str = ""
    parse_mode: Literal["HTML", "MarkdownV2", "Markdown"] = Field(
        default="HTML", alias="parseMode"
    )


class PlatformsSettings(_Section):
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)


class BotSettings(_Section):
    owners: List[str] = Field(default_factory=list)
    default_language: str = Field(default="en", alias="defaultLanguage")

    @field_validator("owners", mode="before")
    @classmethod
    def _owners_as_strings(cls, value: Any) -> Any:
        # Discord snowflakes and Telegram ids are often written as numbers
        if isinstance(value, list):
            return [str(v) for v in value]
        return value


class DatabaseSettings(_Section):
    type: Literal["sqlite", "postgres", "mongodb"] = "sqlite"
    database: str = "database.sqlite"
    host: str = "localhost"
    port: int = 5432
    username: str = ""
    password: str = ""
    synchronize: bool = True
    logging: bool = False


class CorsSettings(_Section):
    origin: str = "*"
    methods: List[str] = Field(default_factory=lambda: list(DEFAULT_CORS_METHODS))

    @field_validator("methods")
    @classmethod
    def _merge_methods(cls, value: List[str]) -> List[str]:
        return _union(DEFAULT_CORS_METHODS, value)


class ApiSettings(_Section):
    enabled: bool = True
    port: int = 3000
    cors: CorsSettings = Field(default_factory=CorsSettings)


class Config(_Section):
    """Typed settings for one ifyapi process.

    Field names are snake_case; the JSON file uses the camelCase aliases
    (``logLevel``, ``autoUpdate``, ``defaultLanguage``, ``parseMode``,
    ``logDir``). Either spelling is accepted when loading.
    """

    debug: bool = False
    log_level: Literal["error", "warn", "info", "debug"] = Field(
        default="info", alias="logLevel"
    )
    auto_update: bool = Field(default=False, alias="autoUpdate")
    log_dir: str = Field(default="IA/logs", alias="logDir")
    bot: BotSettings = Field(default_factory=BotSettings)
    platforms: PlatformsSettings = Field(default_factory=PlatformsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    @property
    def logging_level(self) -> str:
        """stdlib level name; ``debug: true`` forces DEBUG."""
        if self.debug:
            return "DEBUG"
        return _LEVEL_NAMES[self.log_level]

    @property
    def log_path(self) -> Path:
        """Log directory as a Path."""
        return Path(self.log_dir).expanduser()

    @property
    def enabled_platforms(self) -> FrozenSet[Platform]:
        """Platforms switched on in ``platforms.<name>.enabled``."""
        return frozenset(
            platform for platform in Platform
            if getattr(self.platforms, platform.value).enabled
        )

    def platform_settings(self, platform: Platform):
        """Return the settings section for a platform."""
        return getattr(self.platforms, Platform(platform).value)

    def token_for(self, platform: Platform) -> str:
        """Bot token for a platform. Env var (DISCORD_TOKEN, ...) takes precedence."""
        platform = Platform(platform)
        return os.environ.get(TOKEN_ENV_VARS[platform]) or self.platform_settings(platform).token

    def require_token(self, platform: Platform) -> str:
        """Like token_for() but raises ConfigurationError when empty."""
        token = self.token_for(platform)
        if not token:
            raise ConfigurationError(
                f"No token configured for {Platform(platform).value}",
                setting_name=f"platforms.{Platform(platform).value}.token",
                env_var=TOKEN_ENV_VARS[Platform(platform)],
            )
        return token

    def is_owner(self, user_id: Any) -> bool:
        """Whether a platform user id is listed in ``bot.owners``."""
        return user_id is not None and str(user_id) in self.bot.owners

    def validate_settings(self) -> None:
        """Log warnings for settings that will limit the bot at runtime.

        Does not raise -- the bot starts in degraded mode.
        """
        if not self.enabled_platforms:
            logger.warning("no_platforms_enabled")
        for platform in sorted(self.enabled_platforms):
            if not self.token_for(platform):
                logger.warning(
                    "platform_token_missing",
                    platform=platform.value,
                    env_var=TOKEN_ENV_VARS[platform],
                )
        if not self.bot.owners:
            logger.warning("no_owners_configured", msg="Owner-only commands are disabled")


def _drop_path(data: Dict[str, Any], loc) -> bool:
    """Delete the deepest dict key along a pydantic error location."""
    parent, key = None, None
    node: Any = data
    for part in loc:
        if isinstance(node, dict) and part in node:
            parent, key = node, part
            node = node[part]
        else:
            break
    if parent is None:
        return False
    del parent[key]
    return True


def reconcile(data: Any) -> Config:
    """Validate raw settings, dropping invalid values until defaults fill in.

    Unknown keys are ignored by the schema; each invalid value is removed
    and reported so the corresponding default takes its place.
    """
    if not isinstance(data, dict):
        logger.warning("config_not_an_object", type=type(data).__name__)
        return Config()

    data = copy.deepcopy(data)
    for _ in range(_MAX_REPAIR_PASSES):
        try:
            return Config.model_validate(data)
        except ValidationError as exc:
            errors = exc.errors()
            logger.warning(
                "config_invalid_values",
                fields=[".".join(str(p) for p in e["loc"]) for e in errors],
            )
            dropped = [_drop_path(data, e["loc"]) for e in errors]
            if not any(dropped):
                break
    logger.error("config_repair_failed")
    return Config()


def _deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``source`` into a copy of ``target``; lists are unioned."""
    output = dict(target)
    for key, value in source.items():
        current = output.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            output[key] = _deep_merge(current, value)
        elif isinstance(value, list) and isinstance(current, list):
            output[key] = _union(current, value)
        elif value is not None:
            output[key] = value
    return output


CONFIG_TEMPLATE = """{
  // Enable verbose debug output (true | false)
  "debug": false,
  // Upgrade the ifyapi package from the package index on startup (true | false)
  "autoUpdate": false,
  // Global log level: "error" | "warn" | "info" | "debug"
  "logLevel": "info",
  // Directory for per-platform warning/error log files
  "logDir": "IA/logs",
  // General bot options
  "bot": {
    // List of owner IDs
    "owners": [],
    // Default language code
    "defaultLanguage": "en"
  },
  "platforms": {
    "discord": {
      // Turn Discord bot on/off
      "enabled": true,
      // Discord bot token (DISCORD_TOKEN env var overrides)
      "token": "",
      // Gateway intents to request
      "intents": ["Guilds", "GuildMessages", "MessageContent"]
    },
    "telegram": {
      // Turn Telegram bot on/off
      "enabled": true,
      // Telegram bot token (TELEGRAM_TOKEN env var overrides)
      "token": "",
      // Parse mode for messages (MarkdownV2 | HTML)
      "parseMode": "HTML"
    }
  },
  "database": {
    // Type: "sqlite" | "postgres" | "mongodb"
    "type": "sqlite",
    "database": "database.sqlite",
    "host": "localhost",
    "port": 5432,
    "username": "",
    "password": "",
    // Auto-create tables?
    "synchronize": true,
    "logging": false
  },
  "api": {
    "enabled": true,
    "port": 3000,
    "cors": {
      "origin": "*",
      "methods": ["GET", "POST"]
    }
  }
}
"""


class ConfigManager:
    """Loads and persists the ifyapi settings file.

    Loading never raises: a missing file is replaced by a commented
    template, an unreadable file falls back to defaults, and invalid
    values are repaired field by field (see reconcile()).

    Args:
        config_path: Path to config.json. Defaults to the IFYAPI_CONFIG
            env var, then ``./IA/config.json``.
    """

    def __init__(self, config_path: Optional[Path] = None):
        if config_path is None:
            env_path = os.environ.get("IFYAPI_CONFIG")
            config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        self.config_path = Path(config_path)
        self.config = Config()

        # Load environment variables
        env_file = self.config_path.parent / ".env"
        if env_file.exists():
            load_dotenv(env_file)
        else:
            load_dotenv()

    def load(self) -> Config:
        """Read the settings file into a Config and return it."""
        if not self.config_path.exists():
            self._write_template()
            self.config = Config()
            return self.config

        try:
            raw = self.config_path.read_text(encoding="utf-8")
            data = json.loads(strip_json_comments(raw))
        except (OSError, ValueError) as e:
            logger.error(
                "config_load_error", path=str(self.config_path), error=str(e)
            )
            self.config = Config()
            return self.config

        self.config = reconcile(data)
        logger.info(
            "config_loaded",
            path=str(self.config_path),
            platforms=sorted(p.value for p in self.config.enabled_platforms),
        )
        return self.config

    def _write_template(self) -> None:
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
            logger.info("config_template_created", path=str(self.config_path))
        except OSError as e:
            logger.error(
                "config_template_error", path=str(self.config_path), error=str(e)
            )

    def save(self) -> None:
        """Write the current config as plain JSON. Best-effort."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(
                json.dumps(self.config.model_dump(by_alias=True), indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("config_save_error", path=str(self.config_path), error=str(e))

    def update(self, updates: Dict[str, Any]) -> Config:
        """Deep-merge ``updates`` into the current config, then save it."""
        merged = _deep_merge(self.config.model_dump(by_alias=True), updates)
        self.config = reconcile(merged)
        self.save()
        return self.config
