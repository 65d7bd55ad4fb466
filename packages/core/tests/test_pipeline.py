"""End-to-end tests for extract_and_merge against an in-memory store."""

from __future__ import annotations

import pytest

from prtask_core.comments import ReviewComment
from prtask_core.errors import MalformedExtractionResult, StorageIOError, TransientCollaboratorError
from prtask_core.pipeline import Pipeline, get_analyzer
from prtask_core.providers.base import BaseAnalyzer, BatchAnalysis, DraftSpec
from prtask_core.recommend import recommend
from prtask_store.memory import MemoryStore
from prtask_store.models import Priority, TaskStatus

_CONFIG = {"batch_size": 2, "large_review_threshold": 0, "batch_delay_seconds": 0}

# comment id → tasks the analysis service returns for it
_TASKS = {
    101: [("Validate the token before use", Priority.CRITICAL), ("Add a regression test", Priority.MEDIUM)],
    102: [("Rename tmp to buffer", Priority.LOW)],
    103: [("Cache the parsed config", Priority.HIGH)],
}


def _make_comment(comment_id, body=None):
    return ReviewComment(
        id=comment_id,
        review_id=7,
        author="reviewer",
        body=body or f"Comment {comment_id}",
        file="src/auth.py",
        line=comment_id,
    )


class _ScriptedAnalyzer(BaseAnalyzer):
    def __init__(self, fail_on_call=None, tasks=None, malformed=()):
        self.tasks = tasks or _TASKS
        self.malformed = set(malformed)
        self.calls = 0
        self.seen = []
        self.fail_on_call = fail_on_call

    def _call_api(self, system_prompt, user_prompt):
        raise AssertionError("analyze is overridden")

    def analyze(self, batch):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise TransientCollaboratorError("rate limited")
        self.seen.extend(c.id for c in batch)
        good = [c for c in batch if c.id not in self.malformed]
        bad = [c for c in batch if c.id in self.malformed]
        return BatchAnalysis(
            drafts={c.key: [DraftSpec(d, p) for d, p in self.tasks.get(c.id, [])] for c in good},
            malformed={c.key: MalformedExtractionResult(c.id, "tasks missing") for c in bad},
        )


def _make_pipeline(analyzer=None, store=None):
    store = store or MemoryStore()
    return Pipeline.from_config(store, _CONFIG, analyzer=analyzer or _ScriptedAnalyzer()), store


class TestExtractAndMerge:
    def test_two_comments_three_tasks(self):
        pipeline, _ = _make_pipeline()
        result = pipeline.extract_and_merge("42", [_make_comment(101), _make_comment(102)])

        assert result.error is None
        assert result.created == 3
        assert [t.description for t in result.tasks] == [
            "Validate the token before use",
            "Add a regression test",
            "Rename tmp to buffer",
        ]
        assert all(t.status == TaskStatus.TODO for t in result.tasks)
        assert [t.task_index for t in result.tasks] == [0, 1, 0]

    def test_rerun_keeps_statuses_and_skips_analysis(self):
        analyzer = _ScriptedAnalyzer()
        pipeline, _ = _make_pipeline(analyzer)
        comments = [_make_comment(101), _make_comment(102)]
        first = pipeline.extract_and_merge("42", comments)
        pipeline.tasks.update_status(first.tasks[0].id, TaskStatus.DOING)

        second = pipeline.extract_and_merge("42", comments)

        assert analyzer.seen == [101, 102]
        assert second.created == 0
        assert second.tasks[0].status == TaskStatus.DOING
        assert [t.id for t in second.tasks] == [t.id for t in first.tasks]

    def test_refresh_reanalyzes_but_keeps_statuses(self):
        analyzer = _ScriptedAnalyzer()
        pipeline, _ = _make_pipeline(analyzer)
        comments = [_make_comment(101), _make_comment(102)]
        first = pipeline.extract_and_merge("42", comments)
        pipeline.tasks.update_status(first.tasks[2].id, TaskStatus.DOING)
        pipeline.tasks.update_status(first.tasks[2].id, TaskStatus.DONE)

        result = pipeline.extract_and_merge("42", comments, force_refresh=True)

        assert analyzer.seen == [101, 102, 101, 102]
        assert result.created == 0
        assert result.tasks[2].status == TaskStatus.DONE

    def test_new_comment_appends_tasks(self):
        pipeline, _ = _make_pipeline()
        pipeline.extract_and_merge("42", [_make_comment(101)])
        result = pipeline.extract_and_merge("42", [_make_comment(101), _make_comment(103)])
        assert result.created == 1
        assert result.tasks[-1].description == "Cache the parsed config"

    def test_vanished_comment_is_reported_orphaned(self):
        pipeline, _ = _make_pipeline()
        pipeline.extract_and_merge("42", [_make_comment(101), _make_comment(102)])
        result = pipeline.extract_and_merge("42", [_make_comment(101)])
        assert result.orphaned == 1
        assert len(result.tasks) == 3

    def test_no_comments(self):
        pipeline, _ = _make_pipeline()
        result = pipeline.extract_and_merge("42", [])
        assert result.tasks == []
        assert result.error is None


class TestPartialFailure:
    def test_transient_failure_merges_completed_batches(self):
        pipeline, store = _make_pipeline(_ScriptedAnalyzer(fail_on_call=2))
        comments = [_make_comment(101), _make_comment(102), _make_comment(103)]

        result = pipeline.extract_and_merge("42", comments)

        assert isinstance(result.error, TransientCollaboratorError)
        assert not result.complete
        assert (result.processed, result.total) == (2, 3)
        assert [t.source_comment_id for t in result.tasks] == [101, 101, 102]

        retry = Pipeline.from_config(store, _CONFIG, analyzer=_ScriptedAnalyzer())
        resumed = retry.extract_and_merge("42", comments)
        assert resumed.error is None
        assert resumed.created == 1
        assert retry.extractor.analyzer.seen == [103]

    def test_malformed_result_leaves_run_incomplete(self):
        pipeline, store = _make_pipeline(_ScriptedAnalyzer(malformed={102}))
        comments = [_make_comment(101), _make_comment(102)]

        result = pipeline.extract_and_merge("42", comments)

        assert result.error is None
        assert not result.complete
        assert not result.batch_limited
        assert result.failed == {(7, 102): "tasks missing"}
        assert (result.processed, result.total) == (1, 2)
        assert [t.source_comment_id for t in result.tasks] == [101, 101]

        retry = Pipeline.from_config(store, _CONFIG, analyzer=_ScriptedAnalyzer())
        resumed = retry.extract_and_merge("42", comments)
        assert resumed.complete
        assert retry.extractor.analyzer.seen == [102]

    def test_storage_errors_propagate(self, mocker):
        pipeline, store = _make_pipeline()
        mocker.patch.object(store, "put", side_effect=StorageIOError("disk full"))
        with pytest.raises(StorageIOError):
            pipeline.extract_and_merge("42", [_make_comment(101)])


class TestGetAnalyzer:
    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError):
            get_analyzer({"model": "llama"})

    def test_configures_analyzer(self, mocker):
        client = mocker.patch("prtask_core.providers.openai._OpenAI")
        analyzer = get_analyzer({"model": "openai", "openai_api_key": "k", "max_retries": 5})
        client.assert_called_once_with(api_key="k", timeout=120.0)
        assert analyzer.MAX_RETRIES == 5


class TestTwoCommentScenario:
    def test_next_task_is_critical_from_second_comment(self):
        tasks = {
            1: [("Guard against empty input", Priority.HIGH)],
            2: [("Escape user input in the query", Priority.CRITICAL), ("Fix the typo in the log", Priority.LOW)],
        }
        pipeline, _ = _make_pipeline(_ScriptedAnalyzer(tasks=tasks))

        result = pipeline.extract_and_merge("42", [_make_comment(1), _make_comment(2)])
        rec = recommend(pipeline.tasks, "42")

        assert len(result.tasks) == 3
        assert all(t.status == TaskStatus.TODO for t in result.tasks)
        assert rec.current is None
        assert rec.next.priority == Priority.CRITICAL
        assert (rec.next.source_comment_id, rec.next.task_index) == (2, 0)
