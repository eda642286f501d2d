"""Tests for core/excludes.py module."""

from __future__ import annotations

import pytest

from actrun.core.excludes import HARDCODED_DIRS, is_hardcoded_dir


class TestHardcodedDirs:
    """Tests for HARDCODED_DIRS constant."""

    def test_is_frozenset(self) -> None:
        """HARDCODED_DIRS must be immutable."""
        assert isinstance(HARDCODED_DIRS, frozenset)

    def test_contains_vcs_dirs(self) -> None:
        assert {".git", ".svn", ".hg", ".bzr"} <= HARDCODED_DIRS

    def test_contains_actrun_dir(self) -> None:
        assert ".actrun" in HARDCODED_DIRS


class TestIsHardcodedDir:
    @pytest.mark.parametrize("name", [".git", ".actrun"])
    def test_hardcoded(self, name: str) -> None:
        assert is_hardcoded_dir(name)

    @pytest.mark.parametrize("name", ["src", "vendor", ".github", "git"])
    def test_not_hardcoded(self, name: str) -> None:
        assert not is_hardcoded_dir(name)
