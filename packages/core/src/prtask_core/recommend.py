"""Current / next task recommendation: a read-only view of the task store."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from prtask_store.models import Priority, Task, TaskStatus
from prtask_store.tasks import TaskStore


@dataclass
class TaskStats:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)

    @property
    def all_complete(self) -> bool:
        return self.total > 0 and all(
            count == 0 for status, count in self.by_status.items() if not TaskStatus(status).is_terminal
        )


@dataclass
class Recommendation:
    current: Task | None
    next: Task | None
    stats: TaskStats


def current_task(tasks: list[Task]) -> Task | None:
    """First doing task in store order.

    One doing task at a time is a convention, not a rule; if there are
    several, the earliest wins.
    """
    return next((t for t in tasks if t.status == TaskStatus.DOING), None)


def next_task(tasks: list[Task]) -> Task | None:
    """Highest-priority todo task; ties keep store order."""
    todo = [t for t in tasks if t.status == TaskStatus.TODO]
    if not todo:
        return None
    # sorted() is stable, so equal priorities stay in store order.
    return sorted(todo, key=lambda t: t.priority.rank)[0]


def collect_stats(tasks: list[Task]) -> TaskStats:
    status_counts = Counter(t.status.value for t in tasks)
    priority_counts = Counter(t.priority.value for t in tasks)
    return TaskStats(
        total=len(tasks),
        by_status={s.value: status_counts.get(s.value, 0) for s in TaskStatus},
        by_priority={p.value: priority_counts.get(p.value, 0) for p in Priority},
    )


def recommend(store: TaskStore, target: str) -> Recommendation:
    tasks = store.load(target)
    return Recommendation(current=current_task(tasks), next=next_task(tasks), stats=collect_stats(tasks))
