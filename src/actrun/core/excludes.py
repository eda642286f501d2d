"""Directories the watcher never descends into.

These are VCS internals and actrun's own data directory. They are excluded
regardless of the ignore file: a commit or checkout must not look like a
working-tree change.
"""

from __future__ import annotations

HARDCODED_DIRS: frozenset[str] = frozenset(
    (
        # VCS internals
        ".git",
        ".svn",
        ".hg",
        ".bzr",
        # actrun data
        ".actrun",
    )
)


def is_hardcoded_dir(dirname: str) -> bool:
    """Check if directory is hardcoded (never traversed, not overridable)."""
    return dirname in HARDCODED_DIRS
