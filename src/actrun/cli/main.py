"""actrun CLI - run GitHub Actions workflows locally."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

import click
import structlog

from actrun import __version__
from actrun.cli.graph import draw_graph
from actrun.config.loader import load_config
from actrun.config.models import WatchConfig
from actrun.core.errors import ActrunError
from actrun.core.logging import configure_logging, get_logger
from actrun.model.planner import WorkflowPlanner
from actrun.orchestration.orchestrator import Executor, run_once, watch_and_run
from actrun.runner.runner import Runner, RunnerConfig

logger = structlog.get_logger()


def _resolve(workdir: Path, path: str) -> Path:
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else workdir / candidate


async def _execute(
    executor: Executor,
    *,
    watch: bool,
    workdir: Path,
    watch_config: WatchConfig,
) -> None:
    """Run the executor with SIGINT/SIGTERM wired to the cancel signal."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        cancel.set()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not supported by every event loop (e.g. Windows)
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, signal_handler)
            installed.append(sig)

    log = get_logger("orchestrator")
    try:
        if watch:
            await watch_and_run(executor, cancel, workdir, config=watch_config, logger=log)
        else:
            await run_once(executor, cancel, logger=log)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="actrun")
@click.argument("event_name", required=False)
@click.option(
    "-w",
    "--watch",
    is_flag=True,
    help="Watch the contents of the local repo and run when files change",
)
@click.option("-l", "--list", "list_", is_flag=True, help="List workflows")
@click.option("-j", "--job", default="", help="Run job")
@click.option("-r", "--reuse", is_flag=True, help="Reuse action containers to maintain state")
@click.option("-p", "--pull", is_flag=True, help="Pull docker image(s) if already present")
@click.option("-e", "--event", "event_path", default="", help="Path to event JSON file")
@click.option(
    "-W",
    "--workflows",
    default="./.github/workflows/",
    show_default=True,
    help="Path to workflow files",
)
@click.option("-C", "--directory", default=".", show_default=True, help="Working directory")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("-o", "--output", is_flag=True, help="Log output from steps")
@click.option("-n", "--dryrun", is_flag=True, help="Dryrun mode")
def cli(
    event_name: str | None,
    watch: bool,
    list_: bool,
    job: str,
    reuse: bool,
    pull: bool,
    event_path: str,
    workflows: str,
    directory: str,
    verbose: bool,
    output: bool,
    dryrun: bool,
) -> None:
    """Run GitHub Actions locally by specifying the event name (e.g. `push`)
    or an action name directly.
    """
    workdir = Path(directory).expanduser().resolve()
    config = load_config(workdir)
    if verbose:
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)

    planner = WorkflowPlanner.load(_resolve(workdir, workflows))

    # Default to the first detected event so users need not name one
    if not event_name:
        events = planner.events()
        if events:
            event_name = events[0]
            logger.debug("using_detected_event", event=event_name)
    event_name = event_name or ""

    if job:
        logger.debug("planning_job", job=job)
        plan = planner.plan_job(job)
    else:
        logger.debug("planning_event", event=event_name)
        plan = planner.plan_event(event_name)

    if list_:
        draw_graph(plan)
        return

    runner = Runner(
        RunnerConfig(
            event_name=event_name,
            workdir=workdir,
            event_path=_resolve(workdir, event_path) if event_path else None,
            force_pull=pull,
            reuse_containers=reuse,
            log_output=output,
            dryrun=dryrun,
        )
    )
    asyncio.run(
        _execute(
            runner.new_plan_executor(plan),
            watch=watch,
            workdir=workdir,
            watch_config=config.watch,
        )
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Invoke the CLI and map any error to exit code 1."""
    try:
        args = list(argv) if argv is not None else None
        cli.main(args=args, prog_name="actrun", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return 1
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except ActrunError as e:
        click.echo(f"Error: {e}", err=True)
        return 1
    except Exception as e:
        logger.debug("unhandled_error", error_type=type(e).__name__, exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
