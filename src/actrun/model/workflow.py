"""Workflow file model.

Only the parts of the GitHub Actions schema the planner and host runner
use are modelled: triggers, jobs, ``needs``, environment and steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from actrun.core.errors import PlanError


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(str(v) for v in value)
    raise TypeError(f"expected string or list, got {type(value).__name__}")


def _as_env(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"env must be a mapping, got {type(value).__name__}")
    return {str(k): str(v) for k, v in value.items()}


@dataclass(frozen=True, slots=True)
class Step:
    """A single job step."""

    index: int
    name: str | None = None
    run: str | None = None
    uses: str | None = None
    shell: str | None = None
    working_directory: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        script = (self.run or "").strip()
        if script:
            return script.splitlines()[0]
        if self.uses:
            return self.uses
        return f"step {self.index + 1}"

    @classmethod
    def from_dict(cls, index: int, raw: dict[str, Any]) -> Step:
        return cls(
            index=index,
            name=raw.get("name"),
            run=raw.get("run"),
            uses=raw.get("uses"),
            shell=raw.get("shell"),
            working_directory=raw.get("working-directory"),
            env=_as_env(raw.get("env")),
        )


@dataclass(frozen=True, slots=True)
class Job:
    """A job within a workflow."""

    job_id: str
    name: str | None = None
    needs: tuple[str, ...] = ()
    runs_on: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    steps: tuple[Step, ...] = ()

    @property
    def display_name(self) -> str:
        return self.name or self.job_id

    @classmethod
    def from_dict(cls, job_id: str, raw: dict[str, Any]) -> Job:
        steps = raw.get("steps") or []
        if not isinstance(steps, list):
            raise TypeError(f"steps of job '{job_id}' must be a list")
        return cls(
            job_id=job_id,
            name=raw.get("name"),
            needs=_as_tuple(raw.get("needs")),
            runs_on=_as_tuple(raw.get("runs-on")),
            env=_as_env(raw.get("env")),
            steps=tuple(Step.from_dict(i, s) for i, s in enumerate(steps)),
        )


@dataclass(frozen=True, slots=True)
class Workflow:
    """A parsed workflow file."""

    name: str
    path: Path
    events: tuple[str, ...] = ()
    jobs: dict[str, Job] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> Workflow:
        """Parse a workflow file.

        Raises:
            PlanError: If the file cannot be read or is not a valid workflow.
        """
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            raise PlanError.parse_error(str(path), str(e)) from e
        if not isinstance(raw, dict):
            raise PlanError.parse_error(str(path), "top level must be a mapping")

        try:
            return cls._from_dict(path, raw)
        except (TypeError, AttributeError) as e:
            raise PlanError.parse_error(str(path), str(e)) from e

    @classmethod
    def _from_dict(cls, path: Path, raw: dict[Any, Any]) -> Workflow:
        # YAML 1.1 reads a bare `on` key as boolean True
        triggers = raw.get("on", raw.get(True))
        if isinstance(triggers, dict):
            events = tuple(str(k) for k in triggers)
        else:
            events = _as_tuple(triggers)

        jobs_raw = raw.get("jobs") or {}
        if not isinstance(jobs_raw, dict):
            raise TypeError("jobs must be a mapping")
        jobs = {
            str(job_id): Job.from_dict(str(job_id), job_raw or {})
            for job_id, job_raw in jobs_raw.items()
        }

        return cls(
            name=str(raw.get("name") or path.stem),
            path=path,
            events=events,
            jobs=jobs,
            env=_as_env(raw.get("env")),
        )


@dataclass(frozen=True, slots=True)
class Run:
    """One job of one workflow, scheduled within a stage."""

    workflow: Workflow
    job_id: str

    @property
    def job(self) -> Job:
        return self.workflow.jobs[self.job_id]

    def __str__(self) -> str:
        return f"{self.workflow.name}/{self.job_id}"


@dataclass(frozen=True, slots=True)
class Stage:
    """Runs that may execute concurrently."""

    runs: tuple[Run, ...]


@dataclass(frozen=True, slots=True)
class Plan:
    """Ordered stages; each stage depends on the ones before it."""

    stages: tuple[Stage, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not any(stage.runs for stage in self.stages)

    @property
    def runs(self) -> list[Run]:
        return [run for stage in self.stages for run in stage.runs]
