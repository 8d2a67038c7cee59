from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)
from pydantic.types import StrictInt
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .config import ConfigError, resolve_config_path

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class TelegramBotSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: Literal["telegram"]
    token: NonEmptyStr
    master: list[StrictInt] = Field(default_factory=list)


class QQBotSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: Literal["qq"]
    api_endpoint: NonEmptyStr
    websocket_endpoint: NonEmptyStr
    access_token: str = ""
    master: list[StrictInt] = Field(default_factory=list)


BotSettings = Annotated[
    TelegramBotSettings | QQBotSettings, Field(discriminator="type")
]


class CommandSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    prefix: list[NonEmptyStr] = Field(default_factory=lambda: ["/"], min_length=1)


class LogSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True


class RedisSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    address: NonEmptyStr = "127.0.0.1"
    password: str = ""
    database: StrictInt = 0


class PullSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: StrictInt = Field(default=100, gt=0)
    timeout: StrictInt = Field(default=60, gt=0)
    retry_waiting_time: float = Field(default=3.0, ge=0)


class BotMaidSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        env_prefix="BOTMAID__",
        env_nested_delimiter="__",
        str_strip_whitespace=True,
    )

    command: CommandSettings = Field(default_factory=CommandSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    redis: RedisSettings | None = None
    pull: PullSettings = Field(default_factory=PullSettings)
    words: dict[str, str] = Field(default_factory=dict)
    bots: dict[str, BotSettings] = Field(default_factory=dict)

    @field_validator("bots", mode="before")
    @classmethod
    def _normalize_bot_types(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        normalized: dict[str, Any] = {}
        for name, entry in value.items():
            if isinstance(entry, dict) and isinstance(entry.get("type"), str):
                entry = {**entry, "type": entry["type"].strip().lower()}
            normalized[name] = entry
        return normalized

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def validate_settings_data(
    data: dict[str, Any], *, config_path: Path
) -> BotMaidSettings:
    try:
        return BotMaidSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {config_path}: {exc}") from exc


def load_settings(path: str | Path | None = None) -> tuple[BotMaidSettings, Path]:
    cfg_path = resolve_config_path(path)
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    return _load_settings_from_path(cfg_path), cfg_path


def _load_settings_from_path(cfg_path: Path) -> BotMaidSettings:
    cfg = dict(BotMaidSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "BotMaidSettingsBound",
        (BotMaidSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        settings = Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to load config {cfg_path}: {exc}") from exc
    if not settings.bots:
        raise ConfigError(f"No bots configured in {cfg_path}; add a [bots.<name>] table.")
    return settings
