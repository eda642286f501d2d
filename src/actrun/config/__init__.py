"""Config module exports."""

from actrun.config.loader import load_config
from actrun.config.models import (
    ActrunConfig,
    LoggingConfig,
    LogOutputConfig,
    WatchConfig,
)

__all__ = [
    "load_config",
    "ActrunConfig",
    "LoggingConfig",
    "LogOutputConfig",
    "WatchConfig",
]
