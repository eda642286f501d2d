"""Configuration models.

Every field can be set from YAML (``.actrun/config.yaml`` in the working
directory, or ``~/.config/actrun/config.yaml``) or from the environment as
``ACTRUN__<SECTION>__<KEY>``, for example::

    ACTRUN__LOGGING__LEVEL=DEBUG
    ACTRUN__WATCH__POLL_INTERVAL_SEC=0.5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
_CONSOLE_STREAMS = ("stderr", "stdout")


class LogOutputConfig(BaseModel):
    """Where one log stream goes and how it is rendered."""

    format: Literal["json", "console"] = "console"
    destination: str = Field(
        default="stderr",
        description="'stderr', 'stdout' or an absolute file path.",
    )
    level: LogLevel | None = Field(
        default=None,
        description="Minimum level for this output; the root level when unset.",
    )

    @field_validator("destination")
    @classmethod
    def check_destination(cls, value: str) -> str:
        if value in _CONSOLE_STREAMS:
            return value
        expanded = Path(value).expanduser()
        if not expanded.is_absolute():
            raise ValueError(f"Log file must be an absolute path, got {value!r}")
        return str(expanded)


class LoggingConfig(BaseModel):
    """Root level plus the list of outputs (stderr console by default)."""

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. -v on the command line forces DEBUG.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class WatchConfig(BaseModel):
    """Watch mode configuration.

    Env vars:
        ACTRUN__WATCH__POLL_INTERVAL_SEC: Seconds between filesystem polls
        ACTRUN__WATCH__RECURSIVE: Watch subdirectories
        ACTRUN__WATCH__IGNORE_FILE: Ignore file name at the watch root
    """

    poll_interval_sec: float = Field(
        default=2.0,
        description="Seconds between filesystem polls. Lower values react faster "
        "but rescan the tree more often.",
    )
    recursive: bool = Field(
        default=True,
        description="Watch the whole tree, not just the top-level directory.",
    )
    ignore_file: str = Field(
        default=".gitignore",
        description="Ignore file (gitignore syntax) read from the watch root.",
    )

    @field_validator("poll_interval_sec")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Poll interval must be positive, got {v}")
        return v

    @field_validator("ignore_file")
    @classmethod
    def validate_ignore_file(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"Ignore file must be a plain file name: {v!r}")
        return v


class ActrunConfig(BaseModel):
    """Root configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
