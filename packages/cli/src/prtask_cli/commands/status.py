"""status command: current task, next recommendation and progress counts."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prtask_core.recommend import recommend
from prtask_store.models import Priority, Task, TaskStatus
from prtask_store.tasks import TaskStore

console = Console()

_PRIORITY_STYLE = {"critical": "red", "high": "yellow", "medium": "blue", "low": "dim"}


def _describe(task: Task) -> str:
    style = _PRIORITY_STYLE[task.priority.value]
    location = f"  [dim]{task.file}:{task.line}[/dim]" if task.file else ""
    return f"[{style}]{task.priority.value}[/{style}] {task.description}{location}\n    [dim]id {task.id}[/dim]"


@click.command("status")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def status_cmd(ctx, pr_number: int):
    """Show the task in progress, the next one to pick up and overall counts."""
    rec = recommend(TaskStore(ctx.obj["store"]), str(pr_number))
    if rec.stats.total == 0:
        console.print(f"[yellow]No tasks for PR #{pr_number}. Run `prtask analyze` first.[/yellow]")
        return

    console.print(f"\n[bold]PR #{pr_number}[/bold]  {rec.stats.total} task(s)")
    if rec.current is not None:
        console.print(f"  [bold]Doing:[/bold] {_describe(rec.current)}")
    if rec.next is not None:
        console.print(f"  [bold]Next:[/bold]  {_describe(rec.next)}")
    elif rec.stats.all_complete:
        console.print("  [green]All tasks are done or cancelled.[/green]")

    status_table = Table(title="By status", show_header=True)
    status_table.add_column("Status", style="bold")
    status_table.add_column("Count", justify="right")
    for status in TaskStatus:
        status_table.add_row(status.value, str(rec.stats.by_status.get(status.value, 0)))
    console.print(status_table)

    priority_table = Table(title="By priority", show_header=True)
    priority_table.add_column("Priority", style="bold")
    priority_table.add_column("Count", justify="right")
    for priority in Priority:
        style = _PRIORITY_STYLE[priority.value]
        priority_table.add_row(
            f"[{style}]{priority.value}[/{style}]", str(rec.stats.by_priority.get(priority.value, 0))
        )
    console.print(priority_table)
