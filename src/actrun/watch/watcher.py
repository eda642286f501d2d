"""Polling file watcher that feeds change batches to watch mode.

Design:
- start() takes the baseline snapshot in a worker thread and returns once
  it exists, so changes made by the first run are measured against it
- A background task rescans every poll interval and diffs snapshots
- Ignored paths (IgnoreMatcher) and VCS directories are never reported
- Non-empty batches are buffered on an unbounded queue until consumed
- stop() wakes the poll task at once; the stream closes when it exits
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from collections import Counter
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from actrun.core.errors import WatchError
from actrun.core.excludes import is_hardcoded_dir
from actrun.watch.ignore import IgnoreMatcher

if TYPE_CHECKING:
    from actrun.config.models import WatchConfig

_logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL_SEC = 2.0

# Number of paths shown before a batch summary is truncated
_SUMMARY_PATHS = 5

# path -> (mtime_ns, size)
_Snapshot = dict[Path, tuple[int, int]]


class ChangeKind(Enum):
    """Kind of file change detected."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A single change, with its path relative to the watch root."""

    path: Path
    kind: ChangeKind
    timestamp: float


@dataclass(frozen=True, slots=True)
class ChangeBatch:
    """Non-empty, path-ordered group of changes seen in one poll."""

    events: tuple[ChangeEvent, ...]

    def __post_init__(self) -> None:
        if not self.events:
            raise ValueError("ChangeBatch requires at least one event")

    def __iter__(self) -> Iterator[ChangeEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def paths(self) -> list[Path]:
        return [event.path for event in self.events]

    def summary(self) -> str:
        """Human-readable summary, e.g. ``1 created, 2 modified: a.go, b.go, c.go``."""
        counts = Counter(event.kind for event in self.events)
        kinds = ", ".join(f"{counts[kind]} {kind.value}" for kind in ChangeKind if counts[kind])
        shown = ", ".join(p.as_posix() for p in self.paths[:_SUMMARY_PATHS])
        remaining = len(self.events) - _SUMMARY_PATHS
        if remaining > 0:
            shown += f" (+{remaining} more)"
        return f"{kinds}: {shown}"

    def __str__(self) -> str:
        return self.summary()


class WatchState(Enum):
    """Watch session lifecycle. Transitions only move forward."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class ChangeWatcher:
    """One watch session over a directory tree.

    A session runs once: NOT_STARTED -> RUNNING -> STOPPED. Create a new
    watcher to watch again.

    Usage::

        watcher = ChangeWatcher(Path("/repo"))
        await watcher.start()
        async for batch in watcher.change_batches():
            print(batch.summary())
            if done:
                watcher.stop()
        await watcher.wait_stopped()
    """

    def __init__(
        self,
        root: Path,
        *,
        matcher: IgnoreMatcher | None = None,
        recursive: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self._root = Path(root).absolute()
        self._log = (logger or _logger).bind(watch_root=str(self._root))
        self._matcher = matcher if matcher is not None else IgnoreMatcher.load(self._root)
        self._recursive = recursive
        self._poll_interval = poll_interval

        self._state = WatchState.NOT_STARTED
        self._snapshot: _Snapshot = {}
        self._stop_event = asyncio.Event()
        self._batches: asyncio.Queue[ChangeBatch | None] = asyncio.Queue()
        self._stream_closed = False
        self._poll_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        root: Path,
        config: WatchConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> ChangeWatcher:
        """Build a watcher from the ``watch`` config section."""
        matcher = IgnoreMatcher.load(root, config.ignore_file, logger=logger)
        return cls(
            root,
            matcher=matcher,
            recursive=config.recursive,
            poll_interval=config.poll_interval_sec,
            logger=logger,
        )

    @property
    def root(self) -> Path:
        return self._root

    @property
    def matcher(self) -> IgnoreMatcher:
        return self._matcher

    @property
    def recursive(self) -> bool:
        return self._recursive

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is WatchState.RUNNING

    async def start(self) -> None:
        """Snapshot the tree and begin polling on the running event loop.

        The baseline scan runs in a worker thread. A stop() issued while it
        runs leaves the session stopped without a poll task.

        Raises:
            WatchError: If the session was started before or the root is
                not a directory.
        """
        if self._state is not WatchState.NOT_STARTED:
            raise WatchError.session_reused(str(self._root))
        if not self._root.is_dir():
            raise WatchError.root_not_found(str(self._root))

        loop = asyncio.get_running_loop()
        snapshot = await asyncio.to_thread(self._scan)
        if self._state is not WatchState.NOT_STARTED:
            return
        self._snapshot = snapshot
        self._state = WatchState.RUNNING
        self._poll_task = loop.create_task(self._poll_loop(), name=f"watch:{self._root}")
        self._log.debug(
            "watch_started",
            files=len(self._snapshot),
            recursive=self._recursive,
            poll_interval_sec=self._poll_interval,
        )

    def stop(self) -> None:
        """Signal termination. Safe to call repeatedly or before start()."""
        if self._state is WatchState.STOPPED:
            return
        never_started = self._state is WatchState.NOT_STARTED
        self._state = WatchState.STOPPED
        self._stop_event.set()
        if never_started:
            # No poll task exists to close the stream
            self._batches.put_nowait(None)
        self._log.debug("watch_stop_requested")

    async def wait_stopped(self) -> None:
        """Wait until the poll task has exited and released its resources."""
        if self._poll_task is not None:
            await self._poll_task

    async def change_batches(self) -> AsyncIterator[ChangeBatch]:
        """Yield change batches until the session stops.

        Batches detected while the consumer is busy are queued, not lost.
        Once the stream has ended, iterating again yields nothing.
        """
        while not self._stream_closed:
            batch = await self._batches.get()
            if batch is None:
                self._stream_closed = True
                return
            yield batch

    async def _poll_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
                if self._stop_event.is_set():
                    break

                current = await asyncio.to_thread(self._scan)
                if self._stop_event.is_set():
                    break

                batch = self._diff(current)
                if batch is not None:
                    self._log.debug("change_batch_detected", changes=len(batch))
                    self._batches.put_nowait(batch)
        finally:
            self._batches.put_nowait(None)
            self._log.debug("watch_stopped")

    def _diff(self, current: _Snapshot) -> ChangeBatch | None:
        previous = self._snapshot
        self._snapshot = current
        now = time.time()

        events: list[ChangeEvent] = []
        for path, stat in current.items():
            old = previous.get(path)
            if old is None:
                events.append(ChangeEvent(path, ChangeKind.CREATED, now))
            elif old != stat:
                events.append(ChangeEvent(path, ChangeKind.MODIFIED, now))
        for path in previous.keys() - current.keys():
            events.append(ChangeEvent(path, ChangeKind.DELETED, now))

        if not events:
            return None
        events.sort(key=lambda e: e.path.as_posix())
        return ChangeBatch(tuple(events))

    def _scan(self) -> _Snapshot:
        """Collect (mtime, size) for every watched file, keyed by relative path."""
        snapshot: _Snapshot = {}
        root = self._root

        # os.walk skips directories it cannot list
        for dirpath, dirnames, filenames in os.walk(root):
            dir_path = Path(dirpath)
            rel_dir = dir_path.relative_to(root)

            if self._recursive:
                # Prune in-place to prevent descent
                dirnames[:] = [
                    d
                    for d in dirnames
                    if not is_hardcoded_dir(d)
                    and not self._matcher.matches(f"{(rel_dir / d).as_posix()}/")
                ]
            else:
                dirnames[:] = []

            for filename in filenames:
                rel_path = rel_dir / filename
                if self._matcher.matches(rel_path):
                    continue
                try:
                    st = (dir_path / filename).stat()
                except OSError:
                    # Deleted between listing and stat, or unreadable
                    continue
                snapshot[rel_path] = (st.st_mtime_ns, st.st_size)

        return snapshot
