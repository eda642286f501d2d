"""Run an executor once, or again after every change in watch mode.

State machine::

    IDLE -> RUNNING -> WAITING -> RUNNING -> ... -> STOPPED
                   \\-> FAILED (executor raised)

Watch mode:
- The watch session starts before the first invocation, so changes made
  while it runs are buffered rather than missed
- A background task performs every invocation and then waits for the next
  change batch; invocations therefore never overlap
- The calling task waits for the cancel signal or for the background task
  to finish (executor failure), whichever comes first
- Cancellation stops the watcher and joins the background task: an
  in-flight invocation completes (it only sees the cancel signal) and
  buffered batches are dropped
- Each invocation's outcome is written only by the task that ran it and
  read by the caller after the join
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from actrun.core.logging import clear_run_id, set_run_id
from actrun.watch.watcher import ChangeWatcher

if TYPE_CHECKING:
    from actrun.config.models import WatchConfig

_logger = structlog.get_logger()


class Executor(Protocol):
    """A unit of work that may be invoked repeatedly.

    Returns on success and raises on failure. ``cancel`` is set when the
    caller wants the work to wind down; honouring it is up to the executor.
    """

    async def __call__(self, cancel: asyncio.Event) -> None: ...


class OrchestratorState(Enum):
    """Orchestrator lifecycle state."""

    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of one executor invocation."""

    invocation: int
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ExecutionOrchestrator:
    """Drive an executor in single-shot or watch mode.

    Pass ``watcher_factory`` to enable watch mode. The orchestrator creates
    exactly one watch session from it, owns it for the whole run, and stops
    it on every exit path.

    An orchestrator runs once; create a new one for another run.
    """

    def __init__(
        self,
        executor: Executor,
        cancel: asyncio.Event,
        *,
        watcher_factory: Callable[[], ChangeWatcher] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._executor = executor
        self._cancel = cancel
        self._watcher_factory = watcher_factory
        self._log = logger or _logger

        self._state = OrchestratorState.IDLE
        self._watcher: ChangeWatcher | None = None
        self._invocations = 0
        self._last_outcome: ExecutionOutcome | None = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def watch_mode(self) -> bool:
        return self._watcher_factory is not None

    @property
    def watcher(self) -> ChangeWatcher | None:
        """The watch session, once created. None in single-shot mode."""
        return self._watcher

    @property
    def invocations(self) -> int:
        return self._invocations

    @property
    def last_outcome(self) -> ExecutionOutcome | None:
        return self._last_outcome

    async def run(self) -> None:
        """Run to completion.

        Returns normally when the last outcome is a success (single-shot
        completion or cancellation). Raises the executor's exception, the
        very same object, when an invocation failed.
        """
        if self._state is not OrchestratorState.IDLE:
            raise RuntimeError("ExecutionOrchestrator.run() may only be called once")

        if self._watcher_factory is None:
            outcome = await self._invoke()
        else:
            outcome = await self._run_watching(self._watcher_factory)
        self._finish(outcome)

    async def _run_watching(self, watcher_factory: Callable[[], ChangeWatcher]) -> ExecutionOutcome:
        watcher = watcher_factory()
        self._watcher = watcher
        try:
            await watcher.start()
        except BaseException:
            self._state = OrchestratorState.FAILED
            watcher.stop()
            raise

        worker = asyncio.create_task(self._drive(watcher), name="actrun:watch-worker")
        cancelled = asyncio.create_task(self._cancel.wait(), name="actrun:cancel")
        try:
            await asyncio.wait({worker, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if cancelled.done():
                self._log.info("watch_cancelled", watch_root=str(watcher.root))
            watcher.stop()
            # Join: the worker exits once the stream closes
            outcome = await worker
        finally:
            watcher.stop()
            cancelled.cancel()
            if not worker.done():
                worker.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await worker
            await watcher.wait_stopped()
        return outcome

    async def _drive(self, watcher: ChangeWatcher) -> ExecutionOutcome:
        """Background task: first invocation, then one per change batch."""
        outcome = await self._invoke()
        if not outcome.ok:
            return outcome

        self._state = OrchestratorState.WAITING
        self._log.info("watching_for_changes", watch_root=str(watcher.root))

        async with contextlib.aclosing(watcher.change_batches()) as batches:
            async for batch in batches:
                # Cancellation wins over batches that have not started a run
                if self._cancel.is_set():
                    break
                self._log.info("changes_detected", changes=batch.summary())
                outcome = await self._invoke()
                if not outcome.ok:
                    break
                self._state = OrchestratorState.WAITING
                self._log.info("watching_for_changes", watch_root=str(watcher.root))
        return outcome

    async def _invoke(self) -> ExecutionOutcome:
        self._invocations += 1
        number = self._invocations
        self._state = OrchestratorState.RUNNING
        set_run_id()
        log = self._log.bind(invocation=number)
        log.debug("executor_invoked")
        try:
            await self._executor(self._cancel)
        except Exception as e:
            log.debug("executor_failed", error=str(e), error_type=type(e).__name__)
            outcome = ExecutionOutcome(number, e)
        else:
            log.debug("executor_succeeded")
            outcome = ExecutionOutcome(number)
        finally:
            clear_run_id()
        self._last_outcome = outcome
        return outcome

    def _finish(self, outcome: ExecutionOutcome) -> None:
        if outcome.error is not None:
            self._state = OrchestratorState.FAILED
            raise outcome.error
        self._state = OrchestratorState.STOPPED


async def run_once(
    executor: Executor,
    cancel: asyncio.Event | None = None,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> None:
    """Invoke ``executor`` exactly once; raises what it raises."""
    orchestrator = ExecutionOrchestrator(executor, cancel or asyncio.Event(), logger=logger)
    await orchestrator.run()


async def watch_and_run(
    executor: Executor,
    cancel: asyncio.Event,
    root: Path,
    *,
    config: WatchConfig | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> None:
    """Invoke ``executor`` now and after every change under ``root`` until cancelled."""
    if config is None:

        def factory() -> ChangeWatcher:
            return ChangeWatcher(root, logger=logger)

    else:

        def factory() -> ChangeWatcher:
            return ChangeWatcher.from_config(root, config, logger=logger)

    orchestrator = ExecutionOrchestrator(executor, cancel, watcher_factory=factory, logger=logger)
    await orchestrator.run()
