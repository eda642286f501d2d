"""Render a plan as a stage tree for ``actrun --list``."""

from __future__ import annotations

from rich.console import Console
from rich.tree import Tree

from actrun.model.workflow import Plan


def build_tree(plan: Plan) -> Tree:
    tree = Tree("[bold]Plan[/bold]", guide_style="dim")
    if plan.is_empty:
        tree.add("[dim](no jobs)[/dim]")
        return tree

    for number, stage in enumerate(plan.stages, start=1):
        branch = tree.add(f"[cyan]Stage {number}[/cyan]")
        for run in stage.runs:
            job = run.job
            label = f"{run.workflow.name} / [bold]{run.job_id}[/bold]"
            if job.name and job.name != run.job_id:
                label += f" [dim]({job.name})[/dim]"
            if job.needs:
                label += f" [dim]needs: {', '.join(job.needs)}[/dim]"
            branch.add(label)
    return tree


def draw_graph(plan: Plan, console: Console | None = None) -> None:
    (console or Console()).print(build_tree(plan), highlight=False)
