"""Extract-and-merge orchestration for one target per invocation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from prtask_core.comments import ReviewComment
from prtask_core.errors import PipelineError
from prtask_core.extractor import BatchExtractor, CommentKey, ExtractionResult, ProgressCallback, plan_extraction
from prtask_core.providers.anthropic import AnthropicAnalyzer
from prtask_core.providers.base import BaseAnalyzer
from prtask_core.providers.openai import OpenAIAnalyzer
from prtask_store.base import BaseStore
from prtask_store.cache import CacheStore
from prtask_store.checkpoints import CheckpointStore
from prtask_store.models import Task
from prtask_store.tasks import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of extract_and_merge.

    error is set for resumable failures (collaborator gave up, deadline hit);
    tasks then reflects the partial merge and a re-run picks up the rest.
    """

    target: str
    tasks: list[Task]
    created: int
    error: PipelineError | None = None
    failed: dict[CommentKey, str] = field(default_factory=dict)
    processed: int = 0
    total: int = 0
    complete: bool = True
    analyzed: int = 0
    orphaned: int = 0
    batch_limited: bool = False


def get_analyzer(config: dict) -> BaseAnalyzer:
    model = config["model"]
    if model == "anthropic":
        analyzer: BaseAnalyzer = AnthropicAnalyzer(
            api_key=config["anthropic_api_key"],
            model=config.get("anthropic_model"),
            timeout=float(config.get("request_timeout_seconds", 120)),
        )
    elif model == "openai":
        analyzer = OpenAIAnalyzer(
            api_key=config["openai_api_key"],
            model=config.get("openai_model"),
            timeout=float(config.get("request_timeout_seconds", 120)),
        )
    else:
        raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")
    return analyzer.configure(config)


class Pipeline:
    """Composes the cache, checkpoint and task stores with a BatchExtractor.

    Runs against the same target must be serialised by the caller; nothing
    here takes a lock.
    """

    def __init__(self, store: BaseStore, extractor: BatchExtractor):
        self.store = store
        self.tasks = TaskStore(store)
        self.extractor = extractor

    @classmethod
    def from_config(cls, store: BaseStore, config: dict, analyzer: BaseAnalyzer | None = None) -> Pipeline:
        analyzer = analyzer if analyzer is not None else get_analyzer(config)
        extractor = BatchExtractor.from_config(analyzer, CacheStore(store), CheckpointStore(store), config)
        return cls(store, extractor)

    def extract_and_merge(
        self,
        target: str,
        comments: list[ReviewComment],
        force_refresh: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """Extract drafts for target's comments and reconcile them into the task store.

        force_refresh drops every cached extraction and any checkpoint first,
        so every comment is analysed again. Task statuses are untouched
        either way. StorageIOError propagates; it is fatal for the run.
        """
        if force_refresh:
            logger.info("Refresh requested for %s: clearing cache and checkpoint", target)
            self.extractor.cache.clear(target)
            self.extractor.checkpoints.clear(target)

        error: PipelineError | None = None
        try:
            extraction = self.extractor.extract(target, comments, on_progress=on_progress)
        except PipelineError as e:
            logger.warning("Extraction for %s stopped early: %s", target, e)
            error = e
            # Whatever reached the cache before the failure still gets merged.
            extraction = self._cached_only(target, comments)
            extraction.processed, extraction.total = e.processed, e.total
            extraction.complete = False

        merge = self.tasks.merge(target, extraction.drafts)
        return PipelineResult(
            target=target,
            tasks=merge.tasks,
            created=merge.created,
            error=error,
            failed=extraction.failed,
            processed=extraction.processed,
            total=extraction.total,
            complete=extraction.complete and error is None,
            analyzed=extraction.analyzed,
            orphaned=len(merge.orphaned),
            batch_limited=extraction.batch_limited,
        )

    def _cached_only(self, target: str, comments: list[ReviewComment]) -> ExtractionResult:
        plan = plan_extraction(comments, self.extractor.cache.reader(target))
        drafts = [d for c in comments for d in plan.cached.get(c.key, [])]
        return ExtractionResult(drafts=drafts, processed=plan.processed, total=plan.total)
