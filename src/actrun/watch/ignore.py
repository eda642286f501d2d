"""Path exclusion rules loaded from the watch root's ignore file.

Pattern syntax (gitignore subset):
- Blank lines and lines starting with # are skipped
- ! negates a pattern (re-includes what an earlier rule excluded)
- A trailing / restricts the pattern to directories
- A leading or inner / anchors the pattern to the root; otherwise it
  matches a file or directory name at any depth
- Globs via fnmatch (*, ?, [...]) within one path component; ** spans
  any number of directories, including none

A path is ignored when any of its ancestor directories is ignored, or when
the last rule matching the path itself is not a negation.

Loading is fail-open: a missing or unreadable ignore file yields a matcher
that matches nothing.
"""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePath

import structlog

__all__ = ["DEFAULT_IGNORE_FILE", "IgnoreMatcher", "IgnoreRule"]

DEFAULT_IGNORE_FILE = ".gitignore"

_logger = structlog.get_logger()


def _glob_match(parts: Sequence[str], segments: Sequence[str]) -> bool:
    """Match path components against pattern segments; ``**`` spans any depth."""
    if not segments:
        return not parts
    head, rest = segments[0], segments[1:]
    if head == "**":
        # A trailing ** matches everything inside, not the directory itself
        start = 1 if not rest else 0
        return any(_glob_match(parts[i:], rest) for i in range(start, len(parts) + 1))
    return bool(parts) and fnmatch.fnmatchcase(parts[0], head) and _glob_match(parts[1:], rest)


@dataclass(frozen=True, slots=True)
class IgnoreRule:
    """One compiled line of an ignore file."""

    pattern: str
    negated: bool = False
    dir_only: bool = False
    anchored: bool = False

    @classmethod
    def parse(cls, line: str) -> IgnoreRule | None:
        """Compile a single ignore-file line. Returns None for blanks and comments."""
        line = line.rstrip()
        if not line or line.startswith("#"):
            return None

        negated = line.startswith("!")
        if negated:
            line = line[1:]
        elif line.startswith("\\"):
            # \# and \! escape a literal first character
            line = line[1:]

        dir_only = line.endswith("/")
        line = line.rstrip("/")

        if line.startswith("**/") and "/" not in line[3:]:
            line = line[3:]

        anchored = "/" in line
        line = line.lstrip("/")
        if not line:
            return None

        return cls(pattern=line, negated=negated, dir_only=dir_only, anchored=anchored)

    def matches(self, rel_path: str, *, is_dir: bool) -> bool:
        """Check a root-relative POSIX path against this rule alone."""
        if self.dir_only and not is_dir:
            return False
        if self.anchored:
            return _glob_match(rel_path.split("/"), self.pattern.split("/"))
        return fnmatch.fnmatchcase(rel_path.rsplit("/", 1)[-1], self.pattern)


class IgnoreMatcher:
    """Immutable predicate deciding whether a path under the root is ignored.

    Usage::

        matcher = IgnoreMatcher.load(Path("/repo"))
        matcher.matches("build/output.tmp")   # root-relative
        matcher.matches(Path("/repo/vendor/pkg/file.go"))  # absolute
        matcher.matches("vendor/")            # trailing / marks a directory
    """

    __slots__ = ("_root", "_rules")

    def __init__(self, root: Path, rules: Iterable[IgnoreRule] = ()) -> None:
        self._root = Path(root).absolute()
        self._rules: tuple[IgnoreRule, ...] = tuple(rules)

    @classmethod
    def from_lines(cls, root: Path, lines: Iterable[str]) -> IgnoreMatcher:
        """Build a matcher from ignore-file lines."""
        rules = (IgnoreRule.parse(line) for line in lines)
        return cls(root, [rule for rule in rules if rule is not None])

    @classmethod
    def load(
        cls,
        root: Path,
        ignore_file: str = DEFAULT_IGNORE_FILE,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> IgnoreMatcher:
        """Load rules from ``root / ignore_file``.

        A missing, unreadable or undecodable file degrades to an empty
        matcher. This is never an error.
        """
        log = logger or _logger
        path = Path(root) / ignore_file
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.debug("ignore_file_absent", path=str(path))
            return cls(root)
        except (OSError, UnicodeDecodeError) as e:
            log.debug("ignore_file_unreadable", path=str(path), error=str(e))
            return cls(root)

        matcher = cls.from_lines(root, content.splitlines())
        log.debug("ignore_file_loaded", path=str(path), rules=len(matcher.rules))
        return matcher

    @property
    def root(self) -> Path:
        return self._root

    @property
    def rules(self) -> tuple[IgnoreRule, ...]:
        return self._rules

    def matches(self, path: str | os.PathLike[str]) -> bool:
        """Return True if ``path`` is excluded by the rules.

        Absolute paths must lie under the root; anything else (including the
        root itself) never matches.
        """
        if not self._rules:
            return False

        raw = os.fspath(path)
        is_dir = raw.endswith(("/", os.sep))
        rel = PurePath(raw)
        if rel.is_absolute():
            try:
                rel = rel.relative_to(self._root)
            except ValueError:
                return False

        parts = [p for p in rel.parts if p != "."]
        if not parts or ".." in parts:
            return False

        # An ignored directory hides everything beneath it
        for depth in range(1, len(parts)):
            if self._verdict("/".join(parts[:depth]), is_dir=True):
                return True
        return self._verdict("/".join(parts), is_dir=is_dir)

    def _verdict(self, rel_path: str, *, is_dir: bool) -> bool:
        ignored = False
        for rule in self._rules:
            if rule.matches(rel_path, is_dir=is_dir):
                ignored = not rule.negated
        return ignored

    def __repr__(self) -> str:
        return f"IgnoreMatcher(root={str(self._root)!r}, rules={len(self._rules)})"
