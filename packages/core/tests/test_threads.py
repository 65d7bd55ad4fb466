"""Tests for comment-thread completion."""

from __future__ import annotations

from prtask_core.threads import thread_status, thread_status_for_task
from prtask_store.memory import MemoryStore
from prtask_store.models import Priority, TaskDraft, TaskStatus
from prtask_store.tasks import TaskStore


def _make_draft(comment_id, task_index, review_id=1):
    return TaskDraft(
        target="42",
        review_id=review_id,
        comment_id=comment_id,
        task_index=task_index,
        description=f"Task {comment_id}.{task_index}",
        priority=Priority.MEDIUM,
    )


def _close(store, task_id, final=TaskStatus.DONE):
    store.update_status(task_id, TaskStatus.DOING)
    store.update_status(task_id, final)


def _make_store():
    store = TaskStore(MemoryStore())
    tasks = store.merge(
        "42",
        [_make_draft(10, 0), _make_draft(10, 1), _make_draft(10, 2), _make_draft(11, 0)],
    ).tasks
    return store, tasks


class TestThreadStatus:
    def test_counts_only_the_threads_tasks(self):
        store, tasks = _make_store()
        _close(store, tasks[3].id)

        status = thread_status(store, "42", 1, 10)

        assert (status.completed, status.total, status.remaining) == (0, 3, 3)
        assert not status.resolved_eligible

    def test_eligible_once_every_task_is_closed(self):
        store, tasks = _make_store()
        _close(store, tasks[0].id)
        _close(store, tasks[1].id, TaskStatus.CANCEL)
        assert not thread_status(store, "42", 1, 10).resolved_eligible

        _close(store, tasks[2].id)
        status = thread_status(store, "42", 1, 10)
        assert (status.completed, status.total) == (3, 3)
        assert status.resolved_eligible

    def test_pending_is_not_closed(self):
        store, tasks = _make_store()
        store.update_status(tasks[3].id, TaskStatus.DOING)
        store.update_status(tasks[3].id, TaskStatus.PENDING)
        assert not thread_status(store, "42", 1, 11).resolved_eligible

    def test_thread_without_tasks_is_never_eligible(self):
        store, _ = _make_store()
        status = thread_status(store, "42", 1, 999)
        assert status.total == 0
        assert not status.resolved_eligible

    def test_review_id_is_part_of_the_thread(self):
        store, tasks = _make_store()
        _close(store, tasks[3].id)
        assert thread_status(store, "42", 2, 11).total == 0

    def test_for_task(self):
        store, tasks = _make_store()
        _close(store, tasks[3].id)
        status = thread_status_for_task(store, store.get(tasks[3].id))
        assert (status.comment_id, status.resolved_eligible) == (11, True)

    def test_reopening_a_task_makes_thread_ineligible_again(self):
        store, tasks = _make_store()
        for task in tasks[:3]:
            _close(store, task.id)
        assert thread_status(store, "42", 1, 10).resolved_eligible

        store.reopen(tasks[1].id)

        status = thread_status(store, "42", 1, 10)
        assert (status.completed, status.total) == (2, 3)
        assert not status.resolved_eligible
