"""Incremental, resumable extraction of task drafts.

Resume works without any per-comment bookkeeping in the checkpoint: the
cache already records which comments have been analysed, so a re-run
recomputes the cached/uncached split with plan_extraction() and only
sends the remainder to the analysis service. The checkpoint carries the
progress counters between runs and marks an extraction as in flight.

Ordering matters. Batches are cut from the uncached comments in the
order the review source supplied them, and each batch is made durable
(cache entries first, then the advanced checkpoint) before the next one
starts.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from prtask_core.comments import ReviewComment, fingerprint
from prtask_core.errors import ExtractionTimeoutError, TransientCollaboratorError
from prtask_core.providers.base import BaseAnalyzer
from prtask_store.cache import CacheStore
from prtask_store.checkpoints import CheckpointStore
from prtask_store.models import Checkpoint, TaskDraft

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
CommentKey = tuple[int, int]


@dataclass
class ExtractionPlan:
    cached: dict[CommentKey, list[TaskDraft]]
    uncached: list[ReviewComment]
    processed: int
    total: int


@dataclass
class ExtractionResult:
    drafts: list[TaskDraft]
    processed: int
    total: int
    failed: dict[CommentKey, str] = field(default_factory=dict)
    complete: bool = True
    analyzed: int = 0
    batch_limited: bool = False


def plan_extraction(
    comments: list[ReviewComment],
    lookup: Callable[[str], Optional[list[TaskDraft]]],
    checkpoint: Checkpoint | None = None,
) -> ExtractionPlan:
    """Split comments into already-extracted and still-to-do. No I/O of its own.

    lookup maps a fingerprint to cached drafts (None on a miss). The
    checkpoint is only used to spot a comment set that changed under a
    run in progress; the cache is the source of truth for what is done.
    """
    cached: dict[CommentKey, list[TaskDraft]] = {}
    uncached: list[ReviewComment] = []
    for comment in comments:
        hit = lookup(fingerprint(comment))
        if hit is None:
            uncached.append(comment)
        else:
            cached[comment.key] = hit

    if checkpoint is not None and checkpoint.total != len(comments):
        logger.warning(
            "Comment set changed since the interrupted run (%d → %d comments); progress recounted from cache",
            checkpoint.total,
            len(comments),
        )
    return ExtractionPlan(cached=cached, uncached=uncached, processed=len(cached), total=len(comments))


def choose_batch_size(n: int, batch_size: int, large_threshold: int, large_batch_size: int) -> int:
    """Few comments go in one call; many go in small calls so one failure costs little."""
    batch_size = max(batch_size, 1)
    if n <= batch_size:
        return max(n, 1)
    if large_threshold > 0 and n >= large_threshold:
        return max(min(large_batch_size, batch_size), 1)
    return batch_size


def drafts_for(target: str, comment: ReviewComment, suggestions) -> list[TaskDraft]:
    return [
        TaskDraft(
            target=target,
            review_id=comment.review_id,
            comment_id=comment.id,
            task_index=i,
            description=suggestion.description,
            priority=suggestion.priority,
            origin_text=comment.body,
            file=comment.file,
            line=comment.line,
        )
        for i, suggestion in enumerate(suggestions)
    ]


class BatchExtractor:
    def __init__(
        self,
        analyzer: BaseAnalyzer,
        cache: CacheStore,
        checkpoints: CheckpointStore,
        batch_size: int = 5,
        large_review_threshold: int = 30,
        large_review_batch_size: int = 3,
        max_batches: int = 0,
        timeout_seconds: float = 600,
        batch_delay_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.analyzer = analyzer
        self.cache = cache
        self.checkpoints = checkpoints
        self.batch_size = batch_size
        self.large_review_threshold = large_review_threshold
        self.large_review_batch_size = large_review_batch_size
        self.max_batches = max_batches
        self.timeout_seconds = timeout_seconds
        self.batch_delay_seconds = batch_delay_seconds
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(cls, analyzer: BaseAnalyzer, cache: CacheStore, checkpoints: CheckpointStore, config: dict):
        return cls(
            analyzer,
            cache,
            checkpoints,
            batch_size=int(config.get("batch_size", 5)),
            large_review_threshold=int(config.get("large_review_threshold", 30)),
            large_review_batch_size=int(config.get("large_review_batch_size", 3)),
            max_batches=int(config.get("max_batches", 0)),
            timeout_seconds=float(config.get("timeout_minutes", 10)) * 60,
            batch_delay_seconds=float(config.get("batch_delay_seconds", 0.0)),
        )

    def extract(
        self,
        target: str,
        comments: list[ReviewComment],
        on_progress: ProgressCallback | None = None,
    ) -> ExtractionResult:
        """Produce drafts for every comment, calling the analyzer only for cache misses.

        Only comments whose drafts reached the cache count as processed. A
        comment whose result came back malformed is reported in failed,
        left uncached and the checkpoint kept, so the next run retries it.

        Raises TransientCollaboratorError or ExtractionTimeoutError with the
        progress counters filled in; everything finished before the error
        is already in the cache and the checkpoint.
        """
        deadline = self._clock() + self.timeout_seconds
        checkpoint = self.checkpoints.load(target)
        if checkpoint is not None:
            logger.info("Resuming %s from checkpoint (%d/%d)", target, checkpoint.processed, checkpoint.total)

        plan = plan_extraction(comments, self.cache.reader(target), checkpoint)
        produced: dict[CommentKey, list[TaskDraft]] = dict(plan.cached)
        failed: dict[CommentKey, str] = {}
        processed = plan.processed
        total = plan.total

        if not plan.uncached:
            self.checkpoints.clear(target)
            return ExtractionResult(self._ordered(comments, produced), processed, total, failed)

        if checkpoint is None:
            checkpoint = Checkpoint(target=target, processed=processed, total=total)
        checkpoint.processed = processed
        checkpoint.total = total

        size = choose_batch_size(
            len(plan.uncached), self.batch_size, self.large_review_threshold, self.large_review_batch_size
        )
        batches = [plan.uncached[i : i + size] for i in range(0, len(plan.uncached), size)]
        logger.info(
            "%s: %d cached, %d to analyze in %d batch(es) of up to %d",
            target,
            len(plan.cached),
            len(plan.uncached),
            len(batches),
            size,
        )

        analyzed = 0
        for idx, batch in enumerate(batches):
            if self.max_batches and idx >= self.max_batches:
                logger.info("Batch limit (%d) reached for %s at %d/%d", self.max_batches, target, processed, total)
                result = ExtractionResult(self._ordered(comments, produced), processed, total, failed, False)
                result.analyzed = analyzed
                result.batch_limited = True
                return result

            if self._clock() >= deadline:
                raise ExtractionTimeoutError(
                    f"Extraction for {target} timed out after {self.timeout_seconds:.0f}s",
                    processed=processed,
                    total=total,
                )

            try:
                analysis = self.analyzer.analyze(batch)
            except TransientCollaboratorError as e:
                e.processed, e.total = processed, total
                raise

            entries = []
            for comment in batch:
                if comment.key in analysis.drafts:
                    drafts = drafts_for(target, comment, analysis.drafts[comment.key])
                    produced[comment.key] = drafts
                    entries.append((fingerprint(comment), comment.id, drafts))
                else:
                    problem = analysis.malformed.get(comment.key)
                    reason = problem.reason if problem is not None else "no result returned"
                    failed[comment.key] = reason
                    logger.warning("Dropped result for comment %d on %s: %s", comment.id, target, reason)

            # Cache first, then checkpoint: a crash in between only means the
            # next run's recount from cache is ahead of the stored counter.
            self.cache.store_many(target, entries)
            processed += len(entries)
            analyzed += len(entries)
            checkpoint.processed = processed
            self.checkpoints.save(checkpoint)

            if on_progress is not None:
                on_progress(processed, total)

            if self.batch_delay_seconds and idx < len(batches) - 1:
                self._sleep(self.batch_delay_seconds)

        if failed:
            logger.warning("%d comment(s) on %s left for the next run", len(failed), target)
        else:
            self.checkpoints.clear(target)
        result = ExtractionResult(self._ordered(comments, produced), processed, total, failed, not failed)
        result.analyzed = analyzed
        return result

    @staticmethod
    def _ordered(comments: list[ReviewComment], produced: dict[CommentKey, list[TaskDraft]]) -> list[TaskDraft]:
        drafts: list[TaskDraft] = []
        for comment in comments:
            drafts.extend(produced.get(comment.key, []))
        return drafts
