"""Durable task collection with reconciliation.

The task list for a target is a single ordered document. Store order is
meaningful: recommendation ties are broken by it, so merge() never
reorders existing tasks and appends new ones in draft order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from prtask_store.base import TASKS, BaseStore
from prtask_store.models import (
    ImplementationStatus,
    InvalidTransitionError,
    ProvenanceKey,
    Task,
    TaskDraft,
    TaskStatus,
    VerificationResult,
    VerificationStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


class TaskNotFoundError(KeyError):
    def __init__(self, task_id: str):
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"


@dataclass
class MergeResult:
    tasks: list[Task]
    created: int = 0
    updated: int = 0
    orphaned: list[Task] = field(default_factory=list)


class TaskStore:
    def __init__(self, backend: BaseStore):
        self._backend = backend

    # ------------------------------------------------------------------ #
    # Collection access                                                    #
    # ------------------------------------------------------------------ #

    def load(self, target: str) -> list[Task]:
        data = self._backend.get(target, TASKS) or {}
        return [Task.from_dict(t) for t in data.get("tasks", [])]

    def save(self, target: str, tasks: list[Task]) -> None:
        self._backend.put(target, TASKS, {"generated_at": utc_now(), "tasks": [t.to_dict() for t in tasks]})

    def targets(self) -> list[str]:
        return self._backend.list_targets()

    def find(self, task_id: str) -> tuple[str, list[Task], int]:
        """Locate a task across all targets.

        Returns (target, that target's task list, index in the list) so the
        caller can mutate and save the list in one go.
        """
        for target in self.targets():
            tasks = self.load(target)
            for i, task in enumerate(tasks):
                if task.id == task_id:
                    return target, tasks, i
        raise TaskNotFoundError(task_id)

    def get(self, task_id: str) -> Task:
        _, tasks, i = self.find(task_id)
        return tasks[i]

    # ------------------------------------------------------------------ #
    # Reconciliation                                                       #
    # ------------------------------------------------------------------ #

    def merge(self, target: str, drafts: list[TaskDraft]) -> MergeResult:
        """Fold freshly extracted drafts into the persisted task list.

        Matching provenance keys get their content-owned fields refreshed;
        status, implementation and verification state are never touched.
        Unseen keys become new todo tasks. Tasks with no matching draft are
        kept as they are and reported back as orphaned.
        """
        existing = self.load(target)
        index: dict[ProvenanceKey, Task] = {t.provenance_key: t for t in existing}

        # Later drafts for the same key win.
        incoming: dict[ProvenanceKey, TaskDraft] = {}
        for draft in drafts:
            if draft.target != target:
                raise ValueError(f"Draft for target {draft.target!r} passed to merge for {target!r}")
            incoming[draft.provenance_key] = draft

        now = utc_now()
        merged = list(existing)
        created = updated = 0
        for key, draft in incoming.items():
            task = index.get(key)
            if task is not None:
                if task.refresh_content(draft, now):
                    updated += 1
                continue
            task = Task.from_draft(draft, now)
            merged.append(task)
            index[key] = task
            created += 1

        orphaned = [t for t in existing if t.provenance_key not in incoming]
        self.save(target, merged)

        if orphaned:
            logger.info(
                "%d task(s) for %s have no matching comment in this pass; left unchanged",
                len(orphaned),
                target,
            )
        logger.debug("Merged %s: %d created, %d updated, %d total", target, created, updated, len(merged))
        return MergeResult(tasks=merged, created=created, updated=updated, orphaned=orphaned)

    # ------------------------------------------------------------------ #
    # Operator-owned fields                                                #
    # ------------------------------------------------------------------ #

    def update_status(self, task_id: str, status: TaskStatus | str) -> Task:
        """Move a task to a new status, enforcing the transition table."""
        new_status = TaskStatus(status)
        target, tasks, i = self.find(task_id)
        task = tasks[i]
        if task.status == new_status:
            return task
        if not task.status.can_transition_to(new_status):
            raise InvalidTransitionError(task_id, task.status, new_status)
        task.status = new_status
        task.updated_at = utc_now()
        self.save(target, tasks)
        return task

    def reopen(self, task_id: str) -> Task:
        """Move a done or cancelled task back to doing.

        The only way out of a terminal status; update_status never allows it.
        """
        target, tasks, i = self.find(task_id)
        task = tasks[i]
        if not task.status.is_terminal:
            raise InvalidTransitionError(task_id, task.status, TaskStatus.DOING)
        task.status = TaskStatus.DOING
        task.updated_at = utc_now()
        self.save(target, tasks)
        logger.info("Reopened task %s", task_id)
        return task

    def set_implementation_status(self, task_id: str, status: ImplementationStatus | str) -> Task:
        target, tasks, i = self.find(task_id)
        task = tasks[i]
        task.implementation_status = ImplementationStatus(status)
        task.updated_at = utc_now()
        self.save(target, tasks)
        return task

    def record_verification(self, task_id: str, result: VerificationResult) -> Task:
        target, tasks, i = self.find(task_id)
        task = tasks[i]
        task.verification_history.append(result)
        task.verification_status = VerificationStatus.VERIFIED if result.success else VerificationStatus.FAILED
        task.last_verification_at = result.timestamp
        task.updated_at = utc_now()
        self.save(target, tasks)
        return task
