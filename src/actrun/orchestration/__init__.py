"""Single-shot and watch-mode execution."""

from actrun.orchestration.orchestrator import (
    ExecutionOrchestrator,
    ExecutionOutcome,
    Executor,
    OrchestratorState,
    run_once,
    watch_and_run,
)

__all__ = [
    "ExecutionOrchestrator",
    "ExecutionOutcome",
    "Executor",
    "OrchestratorState",
    "run_once",
    "watch_and_run",
]
