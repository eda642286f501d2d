"""Filesystem watching for watch mode."""

from actrun.watch.ignore import DEFAULT_IGNORE_FILE, IgnoreMatcher, IgnoreRule
from actrun.watch.watcher import (
    DEFAULT_POLL_INTERVAL_SEC,
    ChangeBatch,
    ChangeEvent,
    ChangeKind,
    ChangeWatcher,
    WatchState,
)

__all__ = [
    "DEFAULT_IGNORE_FILE",
    "DEFAULT_POLL_INTERVAL_SEC",
    "ChangeBatch",
    "ChangeEvent",
    "ChangeKind",
    "ChangeWatcher",
    "IgnoreMatcher",
    "IgnoreRule",
    "WatchState",
]
