"""Startup configuration: JSON file validated with pydantic, env overrides.

The file keeps the original camelCase layout::

    {
      "botToken": "123:ABC",
      "chatId": -100123,
      "tokens": ["secret-1"],
      "durationTimeout": [{"type": "disk-full", "timeoutSecond": 60}]
    }

Optional keys: ``deliveryTimeoutSecond``, ``dryRun``, ``databasePath``.
Everything is loaded once and is read-only afterwards.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field, ValidationError

from tgnotify.defaults import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DB_PATH,
    DELIVERY_TIMEOUT_SECONDS,
    ENV_CONFIG_PATH,
    ENV_DB_PATH,
    ENV_DRY_RUN,
)
from tgnotify.models import CooldownRule
from tgnotify.throttle import DuplicateRuleError, build_rule_table

log = logging.getLogger("tgnotify.config")


class StartupError(Exception):
    """The process cannot start: bad configuration, store or credential."""


class ConfigError(StartupError):
    """Configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# File schema
# ---------------------------------------------------------------------------

class DurationTimeoutBody(BaseModel):
    type: str = Field(..., min_length=1)
    timeout_second: float = Field(..., alias="timeoutSecond", ge=0)

    model_config = {"populate_by_name": True}


class ConfigFileBody(BaseModel):
    bot_token: str = Field(default="", alias="botToken")
    chat_id: int | None = Field(default=None, alias="chatId")
    tokens: list[str] = Field(default_factory=list)
    duration_timeout: list[DurationTimeoutBody] = Field(default_factory=list, alias="durationTimeout")
    delivery_timeout_second: float = Field(
        default=DELIVERY_TIMEOUT_SECONDS, alias="deliveryTimeoutSecond", gt=0,
    )
    dry_run: bool = Field(default=False, alias="dryRun")
    database_path: str | None = Field(default=None, alias="databasePath")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    bot_token: str
    chat_id: int | None
    tokens: frozenset[str]
    rules: tuple[CooldownRule, ...]
    db_path: str = DEFAULT_DB_PATH
    delivery_timeout: float = DELIVERY_TIMEOUT_SECONDS
    dry_run: bool = False
    source: str = ""

    def redacted(self) -> dict:
        """Summary safe to print: no bot credential, no caller tokens."""
        return {
            "source": self.source,
            "chat_id": self.chat_id,
            "tokens": len(self.tokens),
            "rules": {r.type: r.cooldown for r in self.rules},
            "db_path": self.db_path,
            "delivery_timeout": self.delivery_timeout,
            "dry_run": self.dry_run,
        }


def resolve_config_path(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    return Path(path or env.get(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH)


def settings_from_dict(
    data: dict,
    *,
    source: str = "<dict>",
    env: Mapping[str, str] | None = None,
) -> Settings:
    env = os.environ if env is None else env
    try:
        body = ConfigFileBody.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration in {source}: {e}") from e

    rules = [CooldownRule(type=r.type, cooldown=r.timeout_second) for r in body.duration_timeout]
    try:
        build_rule_table(rules)
    except DuplicateRuleError as e:
        raise ConfigError(f"invalid configuration in {source}: {e}") from e

    dry_run = body.dry_run or env.get(ENV_DRY_RUN, "0") == "1"
    if not dry_run:
        if not body.bot_token:
            raise ConfigError(f"invalid configuration in {source}: botToken is required")
        if body.chat_id is None:
            raise ConfigError(f"invalid configuration in {source}: chatId is required")

    tokens = frozenset(t for t in body.tokens if t)
    if not tokens:
        log.warning("No caller tokens configured in %s; every notify request will be rejected", source)

    return Settings(
        bot_token=body.bot_token,
        chat_id=body.chat_id,
        tokens=tokens,
        rules=tuple(rules),
        db_path=env.get(ENV_DB_PATH) or body.database_path or DEFAULT_DB_PATH,
        delivery_timeout=body.delivery_timeout_second,
        dry_run=dry_run,
        source=source,
    )


def load_settings(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Read and validate the configuration file. Raises ``ConfigError``."""
    config_path = resolve_config_path(path, env)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read configuration file {config_path}: {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"configuration file {config_path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"configuration file {config_path} must contain a JSON object")
    return settings_from_dict(data, source=str(config_path), env=env)
