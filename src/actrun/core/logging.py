"""structlog setup for actrun.

Every event goes through stdlib logging so that each configured output can
carry its own level and renderer. Events emitted during an executor
invocation carry that invocation's ``run_id``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from actrun.config.models import LoggingConfig, LogOutputConfig

_current_run: ContextVar[str | None] = ContextVar("actrun_run_id", default=None)


def set_run_id(run_id: str | None = None) -> str:
    """Mark subsequent events in this context with ``run_id`` (generated if omitted)."""
    value = run_id or uuid4().hex[:12]
    _current_run.set(value)
    return value


def get_run_id() -> str | None:
    return _current_run.get()


def clear_run_id() -> None:
    _current_run.set(None)


def _inject_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    run_id = _current_run.get()
    if run_id is not None:
        event_dict.setdefault("run_id", run_id)
    return event_dict


def _level_number(name: str, fallback: int = logging.INFO) -> int:
    number = logging.getLevelName(name.upper())
    return number if isinstance(number, int) else fallback


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        _inject_run_id,  # type: ignore[list-item]
    ]


def _open_stream(destination: str) -> logging.Handler:
    if destination in ("stderr", "stdout"):
        return logging.StreamHandler(getattr(sys, destination))
    log_path = Path(destination)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, encoding="utf-8")


def _output_handler(
    output: LogOutputConfig,
    pre_chain: list[structlog.types.Processor],
    level: int,
) -> logging.Handler:
    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        stream = getattr(sys, output.destination, None)
        tty = stream is not None and stream.isatty()
        renderer = structlog.dev.ConsoleRenderer(colors=tty, pad_event_to=0, pad_level=False)

    handler = _open_stream(output.destination)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    return handler


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Route structlog through stdlib handlers, one per configured output.

    ``config`` wins when given. Otherwise a single stderr output is set up
    from ``json_format`` and ``level``. Safe to call again: previous
    handlers are closed and replaced.
    """
    from actrun.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        output = LogOutputConfig(format="json" if json_format else "console")
        config = LoggingConfig(level=level, outputs=[output])  # type: ignore[arg-type]

    root_level = _level_number(config.level)
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Level changes must apply to loggers created before reconfiguration
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(root_level)
    # Subprocess plumbing is noisy at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    for output in config.outputs:
        output_level = _level_number(output.level, root_level) if output.level else root_level
        root.addHandler(_output_handler(output, pre_chain, output_level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a logger, tagged with ``logger=name`` when a name is given."""
    log = structlog.get_logger()
    return log.bind(logger=name) if name else log  # type: ignore[no-any-return]
