"""update command: move a task through the status workflow."""

from __future__ import annotations

import click
from rich.console import Console

from prtask_core.threads import thread_status_for_task
from prtask_store.models import InvalidTransitionError, TaskStatus
from prtask_store.tasks import TaskNotFoundError, TaskStore

console = Console()


@click.command("update")
@click.argument("task_id")
@click.argument("status", type=click.Choice([s.value for s in TaskStatus]))
@click.option("--reopen", is_flag=True, help="Move a done or cancelled task back to doing.")
@click.pass_context
def update_cmd(ctx, task_id: str, status: str, reopen: bool):
    """Set TASK_ID to STATUS.

    \b
    Allowed moves:
      todo    → doing
      doing   → done | pending | cancel
      pending → doing | cancel

    Done and cancelled tasks only move again with --reopen.
    """
    store = TaskStore(ctx.obj["store"])
    try:
        if reopen:
            if status != TaskStatus.DOING.value:
                raise click.UsageError("--reopen only moves a task back to doing.")
            task = store.reopen(task_id)
        else:
            task = store.update_status(task_id, status)
    except (InvalidTransitionError, TaskNotFoundError) as e:
        raise click.ClickException(str(e))

    console.print(f"[green]Task {task.id} is now {task.status.value}.[/green]")

    if task.status.is_terminal:
        thread = thread_status_for_task(store, task)
        if thread.resolved_eligible:
            console.print(
                f"[cyan]All {thread.total} task(s) from comment {thread.comment_id} are closed; "
                "the thread can be resolved.[/cyan]"
            )
        else:
            console.print(f"[dim]{thread.remaining} task(s) left on comment {thread.comment_id}.[/dim]")
