"""thread command: report whether a comment thread's tasks are all closed."""

from __future__ import annotations

import click
from rich.console import Console

from prtask_core.threads import thread_status
from prtask_store.tasks import TaskStore

console = Console()


@click.command("thread")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--review", "review_id", type=int, required=True, help="Review id the comment belongs to.")
@click.option("--comment", "comment_id", type=int, required=True, help="Root comment id of the thread.")
@click.pass_context
def thread_cmd(ctx, pr_number: int, review_id: int, comment_id: int):
    """Show completion of the tasks extracted from one comment thread.

    Exits with status 1 when the thread still has open tasks, so scripts
    can gate resolving the thread on it.
    """
    status = thread_status(TaskStore(ctx.obj["store"]), str(pr_number), review_id, comment_id)
    if status.total == 0:
        console.print(f"[yellow]No tasks recorded for comment {comment_id} in review {review_id}.[/yellow]")
        ctx.exit(1)

    console.print(f"Comment {comment_id}: {status.completed}/{status.total} task(s) closed.")
    if status.resolved_eligible:
        console.print("[green]Ready to resolve.[/green]")
    else:
        console.print(f"[yellow]{status.remaining} task(s) still open.[/yellow]")
        ctx.exit(1)
