"""Build execution plans from the workflows directory."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import structlog

from actrun.core.errors import PlanError
from actrun.model.workflow import Plan, Run, Stage, Workflow

logger = structlog.get_logger()

WORKFLOW_SUFFIXES = (".yml", ".yaml")


def _stages_for(workflow: Workflow, job_ids: Iterable[str]) -> list[list[Run]]:
    """Layer the given jobs and everything they need into dependency stages."""
    selected: set[str] = set()
    pending = list(job_ids)
    while pending:
        job_id = pending.pop()
        if job_id in selected:
            continue
        job = workflow.jobs.get(job_id)
        if job is None:
            raise PlanError.unknown_job(job_id)
        selected.add(job_id)
        pending.extend(job.needs)

    stages: list[list[Run]] = []
    done: set[str] = set()
    remaining = [job_id for job_id in workflow.jobs if job_id in selected]
    while remaining:
        ready = [j for j in remaining if all(n in done for n in workflow.jobs[j].needs)]
        if not ready:
            raise PlanError.dependency_cycle(remaining)
        stages.append([Run(workflow, j) for j in ready])
        done.update(ready)
        remaining = [j for j in remaining if j not in done]
    return stages


def _merge(stage_lists: Iterable[list[list[Run]]]) -> Plan:
    """Merge per-workflow stages so stage N of every workflow runs together."""
    merged: list[list[Run]] = []
    for stages in stage_lists:
        for i, runs in enumerate(stages):
            if i == len(merged):
                merged.append([])
            merged[i].extend(runs)
    return Plan(tuple(Stage(tuple(runs)) for runs in merged))


class WorkflowPlanner:
    """Loads workflow files and plans runs by event or by job."""

    def __init__(self, workflows: Iterable[Workflow]) -> None:
        self._workflows = list(workflows)

    @classmethod
    def load(cls, path: Path) -> WorkflowPlanner:
        """Load one workflow file, or every workflow file in a directory.

        Raises:
            PlanError: If the path does not exist or a file fails to parse.
        """
        if path.is_file():
            files = [path]
        elif path.is_dir():
            files = sorted(
                p for p in path.iterdir() if p.suffix in WORKFLOW_SUFFIXES and p.is_file()
            )
        else:
            raise PlanError.workflows_not_found(str(path))

        workflows = [Workflow.load(f) for f in files]
        logger.debug("workflows_loaded", path=str(path), count=len(workflows))
        return cls(workflows)

    @property
    def workflows(self) -> list[Workflow]:
        return list(self._workflows)

    def events(self) -> list[str]:
        """Trigger names in discovery order, without duplicates."""
        seen: dict[str, None] = {}
        for workflow in self._workflows:
            for event in workflow.events:
                seen.setdefault(event, None)
        return list(seen)

    def plan_event(self, event_name: str) -> Plan:
        """Plan every job of every workflow triggered by ``event_name``."""
        return _merge(
            _stages_for(w, w.jobs) for w in self._workflows if event_name in w.events
        )

    def plan_job(self, job_id: str) -> Plan:
        """Plan ``job_id`` and the jobs it needs, in every workflow defining it.

        Raises:
            PlanError: If no workflow defines the job.
        """
        matching = [w for w in self._workflows if job_id in w.jobs]
        if not matching:
            raise PlanError.unknown_job(job_id)
        return _merge(_stages_for(w, [job_id]) for w in matching)
