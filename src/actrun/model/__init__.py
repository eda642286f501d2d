"""Workflow model and planning."""

from actrun.model.planner import WorkflowPlanner
from actrun.model.workflow import Job, Plan, Run, Stage, Step, Workflow

__all__ = [
    "Job",
    "Plan",
    "Run",
    "Stage",
    "Step",
    "Workflow",
    "WorkflowPlanner",
]
