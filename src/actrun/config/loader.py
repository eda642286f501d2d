"""Resolve actrun configuration from YAML files, environment and overrides.

Sources, highest precedence first:
1. Keyword overrides passed to load_config()
2. Environment variables ACTRUN__<SECTION>__<KEY>
3. <workdir>/.actrun/config.yaml
4. ~/.config/actrun/config.yaml
5. Model defaults
"""

from functools import reduce
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from actrun.config.models import ActrunConfig, LoggingConfig, WatchConfig
from actrun.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/actrun/config.yaml").expanduser()
REPO_CONFIG_NAME = Path(".actrun") / "config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse one config file. A missing file is an empty layer."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError.parse_error(str(path), str(e)) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _overlay(lower: dict[str, Any], upper: dict[str, Any]) -> dict[str, Any]:
    """Merge ``upper`` onto ``lower``; nested sections merge key by key."""
    merged = dict(lower)
    for key, value in upper.items():
        below = merged.get(key)
        merged[key] = (
            _overlay(below, value) if isinstance(below, dict) and isinstance(value, dict) else value
        )
    return merged


def _settings_class(file_values: dict[str, Any]) -> type[BaseSettings]:
    """Build a settings class whose lowest-priority source is ``file_values``.

    A fresh class per call keeps concurrent loads for different working
    directories apart.
    """

    class ActrunSettings(BaseSettings):
        model_config = SettingsConfigDict(
            env_prefix="ACTRUN__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        watch: WatchConfig = WatchConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            files = InitSettingsSource(settings_cls, init_kwargs=file_values)
            return (init_settings, env_settings, files)

    return ActrunSettings


def load_config(workdir: Path | None = None, **overrides: Any) -> ActrunConfig:
    """Load the effective configuration for ``workdir`` (default: cwd).

    Raises:
        ConfigError: A config file is unreadable or not a YAML mapping, or a
            value fails validation.
    """
    root = workdir or Path.cwd()
    layers = [_read_yaml(GLOBAL_CONFIG_PATH), _read_yaml(root / REPO_CONFIG_NAME)]
    file_values = reduce(_overlay, layers, {})

    try:
        settings = _settings_class(file_values)(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return ActrunConfig.model_validate(settings.model_dump())
