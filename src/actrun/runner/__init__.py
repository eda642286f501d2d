"""Plan execution on the host."""

from actrun.runner.runner import PlanExecutor, Runner, RunnerConfig

__all__ = ["PlanExecutor", "Runner", "RunnerConfig"]
