"""Tests for workflow parsing and planning."""

from __future__ import annotations

from pathlib import Path

import pytest

from actrun.core.errors import ErrorCode, PlanError
from actrun.model.planner import WorkflowPlanner
from actrun.model.workflow import Plan, Step, Workflow

CI_WORKFLOW = """\
name: CI
on: [push, pull_request]
env:
  GOFLAGS: -mod=vendor
jobs:
  lint:
    runs-on: ubuntu-latest
    steps:
      - run: echo lint
  test:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - name: Unit tests
        run: go test ./...
  build:
    needs: [lint, test]
    steps:
      - run: |
          go build ./...
          echo done
        working-directory: cmd
"""

RELEASE_WORKFLOW = """\
on:
  release:
    types: [published]
  push:
    tags: ["v*"]
jobs:
  publish:
    steps:
      - run: echo publish
"""


def _write(directory: Path, name: str, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(content)
    return path


@pytest.fixture
def workflows_dir(tmp_path: Path) -> Path:
    directory = tmp_path / ".github" / "workflows"
    _write(directory, "ci.yml", CI_WORKFLOW)
    _write(directory, "release.yaml", RELEASE_WORKFLOW)
    _write(directory, "README.md", "not a workflow")
    return directory


class TestWorkflowLoad:
    """Tests for parsing a single workflow file."""

    def test_parses_jobs_and_steps(self, workflows_dir: Path) -> None:
        workflow = Workflow.load(workflows_dir / "ci.yml")

        assert workflow.name == "CI"
        assert workflow.events == ("push", "pull_request")
        assert list(workflow.jobs) == ["lint", "test", "build"]
        assert workflow.env == {"GOFLAGS": "-mod=vendor"}
        build = workflow.jobs["build"]
        assert build.needs == ("lint", "test")
        assert build.steps[0].working_directory == "cmd"
        assert workflow.jobs["test"].runs_on == ("ubuntu-latest",)

    def test_mapping_triggers_and_default_name(self, workflows_dir: Path) -> None:
        workflow = Workflow.load(workflows_dir / "release.yaml")

        assert workflow.name == "release"
        assert workflow.events == ("release", "push")

    def test_invalid_yaml_is_parse_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "bad.yml", "jobs: [unclosed\n")

        with pytest.raises(PlanError) as exc_info:
            Workflow.load(path)

        assert exc_info.value.code == ErrorCode.PLAN_PARSE_ERROR
        assert exc_info.value.details["path"] == str(path)

    @pytest.mark.parametrize(
        "content",
        [
            "- just\n- a list\n",
            "on: push\njobs: [a, b]\n",
            "on: push\njobs:\n  a:\n    steps: not-a-list\n",
            "on: push\njobs:\n  a:\n    env: [x]\n",
        ],
    )
    def test_malformed_structure_is_parse_error(self, tmp_path: Path, content: str) -> None:
        path = _write(tmp_path, "bad.yml", content)

        with pytest.raises(PlanError) as exc_info:
            Workflow.load(path)

        assert exc_info.value.code == ErrorCode.PLAN_PARSE_ERROR


class TestStepLabel:
    @pytest.mark.parametrize(
        ("step", "label"),
        [
            (Step(0, name="Unit tests", run="go test"), "Unit tests"),
            (Step(0, run="go build ./...\necho done"), "go build ./..."),
            (Step(0, uses="actions/checkout@v4"), "actions/checkout@v4"),
            (Step(2), "step 3"),
            (Step(1, run="   \n"), "step 2"),
        ],
    )
    def test_label_fallbacks(self, step: Step, label: str) -> None:
        assert step.label == label


class TestWorkflowPlanner:
    """Tests for event and job planning."""

    def test_load_directory_skips_non_workflows(self, workflows_dir: Path) -> None:
        planner = WorkflowPlanner.load(workflows_dir)

        assert [w.path.name for w in planner.workflows] == ["ci.yml", "release.yaml"]

    def test_load_single_file(self, workflows_dir: Path) -> None:
        planner = WorkflowPlanner.load(workflows_dir / "release.yaml")

        assert len(planner.workflows) == 1

    def test_load_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(PlanError) as exc_info:
            WorkflowPlanner.load(tmp_path / "nope")

        assert exc_info.value.code == ErrorCode.PLAN_WORKFLOWS_NOT_FOUND

    def test_load_empty_directory(self, tmp_path: Path) -> None:
        planner = WorkflowPlanner.load(tmp_path)

        assert planner.workflows == []
        assert planner.events() == []

    def test_events_deduplicated_in_order(self, workflows_dir: Path) -> None:
        planner = WorkflowPlanner.load(workflows_dir)

        assert planner.events() == ["push", "pull_request", "release"]

    def test_plan_event_layers_needs(self, workflows_dir: Path) -> None:
        planner = WorkflowPlanner.load(workflows_dir)

        plan = planner.plan_event("pull_request")

        assert [[str(r) for r in stage.runs] for stage in plan.stages] == [
            ["CI/lint", "CI/test"],
            ["CI/build"],
        ]

    def test_plan_event_merges_workflows_by_stage(self, workflows_dir: Path) -> None:
        planner = WorkflowPlanner.load(workflows_dir)

        plan = planner.plan_event("push")

        assert [str(r) for r in plan.stages[0].runs] == ["CI/lint", "CI/test", "release/publish"]
        assert [str(r) for r in plan.stages[1].runs] == ["CI/build"]

    def test_plan_unknown_event_is_empty(self, workflows_dir: Path) -> None:
        plan = WorkflowPlanner.load(workflows_dir).plan_event("schedule")

        assert plan.is_empty
        assert plan == Plan()

    def test_plan_job_includes_needs(self, workflows_dir: Path) -> None:
        plan = WorkflowPlanner.load(workflows_dir).plan_job("build")

        assert len(plan.stages) == 2
        assert {r.job_id for r in plan.runs} == {"lint", "test", "build"}

    def test_plan_job_without_needs(self, workflows_dir: Path) -> None:
        plan = WorkflowPlanner.load(workflows_dir).plan_job("lint")

        assert [r.job_id for r in plan.runs] == ["lint"]
        assert plan.runs[0].job.steps[0].run == "echo lint"

    def test_plan_unknown_job(self, workflows_dir: Path) -> None:
        with pytest.raises(PlanError) as exc_info:
            WorkflowPlanner.load(workflows_dir).plan_job("deploy")

        assert exc_info.value.code == ErrorCode.PLAN_UNKNOWN_JOB

    def test_needs_cycle_detected(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "loop.yml",
            "on: push\njobs:\n  a:\n    needs: b\n  b:\n    needs: a\n  c: {}\n",
        )
        planner = WorkflowPlanner.load(tmp_path)

        with pytest.raises(PlanError) as exc_info:
            planner.plan_event("push")

        assert exc_info.value.code == ErrorCode.PLAN_DEPENDENCY_CYCLE
        assert exc_info.value.details["jobs"] == ["a", "b"]

    def test_needs_on_missing_job(self, tmp_path: Path) -> None:
        _write(tmp_path, "ci.yml", "on: push\njobs:\n  a:\n    needs: ghost\n")

        with pytest.raises(PlanError) as exc_info:
            WorkflowPlanner.load(tmp_path).plan_event("push")

        assert exc_info.value.code == ErrorCode.PLAN_UNKNOWN_JOB
