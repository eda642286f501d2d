"""Core module exports."""

from actrun.core.errors import (
    ActrunError,
    ConfigError,
    ErrorCode,
    ExecutionError,
    PlanError,
    WatchError,
)
from actrun.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "ActrunError",
    "ConfigError",
    "ErrorCode",
    "ExecutionError",
    "PlanError",
    "WatchError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
