"""Host runner: executes plan steps with the local shell.

Stages run in order and the jobs of a stage run concurrently. ``run:``
steps execute in the working directory with the GitHub environment
variables a workflow expects. ``uses:`` steps need an action container and
are reported and skipped.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

import structlog

from actrun.core.errors import ExecutionError
from actrun.model.workflow import Plan, Run, Step

_logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """Options shared by every run of a plan."""

    event_name: str
    workdir: Path
    event_path: Path | None = None
    force_pull: bool = False
    reuse_containers: bool = False
    log_output: bool = False
    dryrun: bool = False


def _shell_argv(shell: str | None, script: str) -> list[str]:
    program = shell or ("bash" if shutil.which("bash") else "sh")
    flag = "-Command" if program in ("pwsh", "powershell") else "-c"
    return [program, flag, script]


class PlanExecutor:
    """Executor for one plan. Safe to invoke repeatedly."""

    def __init__(
        self,
        plan: Plan,
        config: RunnerConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._plan = plan
        self._config = config
        self._log = logger or _logger

    @property
    def plan(self) -> Plan:
        return self._plan

    async def __call__(self, cancel: asyncio.Event) -> None:
        if self._plan.is_empty:
            self._log.warning("plan_empty", event=self._config.event_name)
            return

        for number, stage in enumerate(self._plan.stages, start=1):
            if cancel.is_set():
                self._log.info("plan_cancelled", stage=number)
                return
            self._log.debug("stage_started", stage=number, jobs=[str(r) for r in stage.runs])
            results = await asyncio.gather(
                *(self._run_job(run, cancel) for run in stage.runs),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result

    def _job_env(self, run: Run) -> dict[str, str]:
        config = self._config
        env = dict(os.environ)
        env.update(
            {
                "CI": "true",
                "ACTRUN": "true",
                "GITHUB_ACTIONS": "true",
                "GITHUB_WORKFLOW": run.workflow.name,
                "GITHUB_JOB": run.job_id,
                "GITHUB_EVENT_NAME": config.event_name,
                "GITHUB_WORKSPACE": str(config.workdir),
            }
        )
        if config.event_path is not None:
            env["GITHUB_EVENT_PATH"] = str(config.event_path)
        env.update(run.workflow.env)
        env.update(run.job.env)
        return env

    async def _run_job(self, run: Run, cancel: asyncio.Event) -> None:
        log = self._log.bind(job=str(run))
        log.info("job_started", runs_on=list(run.job.runs_on))
        env = self._job_env(run)

        for step in run.job.steps:
            if cancel.is_set():
                log.info("job_cancelled", step=step.label)
                return
            if step.uses:
                log.info(
                    "step_skipped", step=step.label, reason="actions are not run on the host"
                )
                continue
            if not (step.run and step.run.strip()):
                continue
            if self._config.dryrun:
                log.info("step_dryrun", step=step.label)
                continue

            exit_code = await self._run_step(step, {**env, **step.env}, cancel, log)
            if exit_code is None:
                log.info("job_cancelled", step=step.label)
                return
            if exit_code != 0:
                raise ExecutionError.step_failed(run.job_id, step.label, exit_code)

        log.info("job_succeeded")

    async def _run_step(
        self,
        step: Step,
        env: dict[str, str],
        cancel: asyncio.Event,
        log: structlog.stdlib.BoundLogger,
    ) -> int | None:
        """Run a shell step. Returns its exit code, or None if cancelled."""
        assert step.run is not None
        cwd = self._config.workdir
        if step.working_directory:
            cwd = cwd / step.working_directory

        log.info("step_started", step=step.label)
        proc = await asyncio.create_subprocess_exec(
            *_shell_argv(step.shell, step.run),
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        reader = asyncio.create_task(self._pump(proc, step, log))
        cancelled = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait({reader, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await proc.wait()
            raise
        finally:
            cancelled.cancel()

        if reader.done():
            return reader.result()

        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        await reader
        return None

    async def _pump(
        self,
        proc: asyncio.subprocess.Process,
        step: Step,
        log: structlog.stdlib.BoundLogger,
    ) -> int:
        assert proc.stdout is not None
        async for raw in proc.stdout:
            if self._config.log_output:
                line = raw.decode(errors="replace").rstrip()
                log.info("step_output", step=step.label, line=line)
        return await proc.wait()


class Runner:
    """Creates executors for plans under one configuration."""

    def __init__(
        self,
        config: RunnerConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        """Validate the configuration.

        Raises:
            ExecutionError: If the event file is missing or not JSON.
        """
        if config.event_path is not None:
            try:
                json.loads(config.event_path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValueError) as e:
                raise ExecutionError.event_file(str(config.event_path), str(e)) from e

        self._config = config
        self._log = logger or _logger
        if config.reuse_containers or config.force_pull:
            self._log.debug(
                "container_options_ignored",
                reuse_containers=config.reuse_containers,
                force_pull=config.force_pull,
            )

    @property
    def config(self) -> RunnerConfig:
        return self._config

    def new_plan_executor(self, plan: Plan) -> PlanExecutor:
        return PlanExecutor(plan, self._config, logger=self._log)
