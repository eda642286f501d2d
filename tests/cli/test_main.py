"""Tests for the actrun command."""

from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from actrun import __version__
from actrun.cli.graph import build_tree
from actrun.cli.main import _execute, cli, main
from actrun.config import loader
from actrun.config.models import WatchConfig
from actrun.model.workflow import Plan

runner = CliRunner()

WORKFLOW = """\
name: CI
on: pull_request
jobs:
  lint:
    steps:
      - run: touch lint.txt
  build:
    name: Build binaries
    needs: lint
    steps:
      - run: touch build.txt
"""


@pytest.fixture(autouse=True)
def isolated_global_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(loader, "GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A working directory with one workflow."""
    repo_path = tmp_path / "repo"
    workflows = repo_path / ".github" / "workflows"
    workflows.mkdir(parents=True)
    (workflows / "ci.yml").write_text(WORKFLOW)
    return repo_path


class TestCliOptions:
    """Help, version and listing."""

    def test_help(self) -> None:
        result = runner.invoke(cli, ["-h"])

        assert result.exit_code == 0
        assert "--watch" in result.output
        assert "--workflows" in result.output

    def test_version(self) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_list_draws_stages(self, repo: Path) -> None:
        result = runner.invoke(cli, ["--list", "-C", str(repo)])

        assert result.exit_code == 0, result.output
        assert "Stage 1" in result.output
        assert "Stage 2" in result.output
        assert "CI / build (Build binaries) needs: lint" in result.output
        assert not (repo / "lint.txt").exists()

    def test_empty_plan_tree(self) -> None:
        tree = build_tree(Plan())

        assert [str(child.label) for child in tree.children] == ["[dim](no jobs)[/dim]"]


class TestMain:
    """Exit codes and end-to-end runs through main()."""

    def test_runs_detected_event(self, repo: Path) -> None:
        """Without an event name, the first detected event is run."""
        assert main(["-C", str(repo)]) == 0

        assert (repo / "lint.txt").exists()
        assert (repo / "build.txt").exists()

    def test_runs_single_job(self, repo: Path) -> None:
        assert main(["-C", str(repo), "-j", "lint"]) == 0

        assert (repo / "lint.txt").exists()
        assert not (repo / "build.txt").exists()

    def test_unmatched_event_runs_nothing(self, repo: Path) -> None:
        assert main(["push", "-C", str(repo)]) == 0

        assert not (repo / "lint.txt").exists()

    def test_watch_flag_watches_workdir(self, repo: Path) -> None:
        """-w hands the executor to watch mode, rooted at the -C directory."""
        with patch("actrun.cli.main.watch_and_run", new_callable=AsyncMock) as mock_watch:
            assert main(["-C", str(repo), "-w"]) == 0

        mock_watch.assert_awaited_once()
        args, kwargs = mock_watch.await_args
        assert args[2] == repo.resolve()
        assert kwargs["config"].poll_interval_sec == 2.0
        assert not (repo / "lint.txt").exists()

    def test_dryrun(self, repo: Path) -> None:
        assert main(["-C", str(repo), "--dryrun"]) == 0

        assert not (repo / "lint.txt").exists()

    def test_missing_workflows_dir(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["-C", str(tmp_path)]) == 1

        assert "No workflow files found" in capsys.readouterr().err

    def test_unknown_job(self, repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["-C", str(repo), "-j", "deploy"]) == 1

        assert "Unknown job: deploy" in capsys.readouterr().err

    def test_usage_error(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--no-such-flag"]) == 1

        assert "No such option" in capsys.readouterr().err

    def test_step_failure(self, repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (repo / ".github" / "workflows" / "ci.yml").write_text(
            "on: push\njobs:\n  fail:\n    steps:\n      - run: exit 3\n"
        )

        assert main(["-C", str(repo)]) == 1

        assert "exited with code 3" in capsys.readouterr().err

    def test_bad_event_file(self, repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (repo / "event.json").write_text("{not json")

        assert main(["-C", str(repo), "-e", "event.json"]) == 1

        assert "Cannot use event file" in capsys.readouterr().err

    def test_invalid_repo_config(self, repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (repo / ".actrun").mkdir()
        (repo / ".actrun" / "config.yaml").write_text("watch:\n  poll_interval_sec: -1\n")

        assert main(["-C", str(repo)]) == 1

        assert "poll_interval_sec" in capsys.readouterr().err


class TestExecute:
    """Signal wiring around the orchestrator."""

    @pytest.mark.asyncio
    async def test_sigint_cancels_watch_mode(self, tmp_path: Path) -> None:
        calls: list[int] = []

        async def executor(cancel: asyncio.Event) -> None:
            calls.append(1)

        loop = asyncio.get_running_loop()
        loop.call_later(0.3, os.kill, os.getpid(), signal.SIGINT)

        await asyncio.wait_for(
            _execute(
                executor,
                watch=True,
                workdir=tmp_path,
                watch_config=WatchConfig(poll_interval_sec=0.05),
            ),
            timeout=5.0,
        )

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_single_shot_propagates_error(self, tmp_path: Path) -> None:
        boom = RuntimeError("boom")

        async def executor(cancel: asyncio.Event) -> None:
            raise boom

        with pytest.raises(RuntimeError) as exc_info:
            await _execute(executor, watch=False, workdir=tmp_path, watch_config=WatchConfig())

        assert exc_info.value is boom
