"""Thread completion: has every task derived from a comment thread been closed?

This module only answers the question. Resolving the thread on the review
platform is the caller's job, and only when resolved_eligible is True.
"""

from __future__ import annotations

from dataclasses import dataclass

from prtask_store.models import Task
from prtask_store.tasks import TaskStore


@dataclass
class ThreadStatus:
    review_id: int
    comment_id: int
    completed: int
    total: int

    @property
    def remaining(self) -> int:
        return self.total - self.completed

    @property
    def resolved_eligible(self) -> bool:
        # A thread with no tasks at all was never ours to resolve.
        return self.total > 0 and self.completed == self.total


def thread_tasks(tasks: list[Task], review_id: int, comment_id: int) -> list[Task]:
    return [t for t in tasks if t.source_review_id == review_id and t.source_comment_id == comment_id]


def thread_status(store: TaskStore, target: str, review_id: int, comment_id: int) -> ThreadStatus:
    tasks = thread_tasks(store.load(target), review_id, comment_id)
    completed = sum(1 for t in tasks if t.status.is_terminal)
    return ThreadStatus(review_id=review_id, comment_id=comment_id, completed=completed, total=len(tasks))


def thread_status_for_task(store: TaskStore, task: Task) -> ThreadStatus:
    return thread_status(store, task.target, task.source_review_id, task.source_comment_id)
