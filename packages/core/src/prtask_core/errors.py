"""Pipeline error taxonomy.

Resumable errors carry the processed/total counts at the moment they were
raised so the CLI can tell the user exactly how far the run got and how
to continue it.
"""

from __future__ import annotations

from prtask_store.base import StorageIOError

__all__ = [
    "ExtractionTimeoutError",
    "MalformedExtractionResult",
    "PipelineError",
    "StorageIOError",
    "TransientCollaboratorError",
]


class PipelineError(Exception):
    def __init__(self, message: str, processed: int = 0, total: int = 0):
        super().__init__(message)
        self.processed = processed
        self.total = total

    def resume_hint(self) -> str:
        remaining = max(self.total - self.processed, 0)
        return (
            f"Processed {self.processed}/{self.total} comments; {remaining} remaining. "
            "Run the same command again to resume - completed work is cached."
        )


class TransientCollaboratorError(PipelineError):
    """The analysis service kept failing after the retry budget was spent."""


class MalformedExtractionResult(PipelineError):
    """The analysis service returned something unusable for one comment."""

    def __init__(self, comment_id: int, reason: str):
        super().__init__(f"comment {comment_id}: {reason}")
        self.comment_id = comment_id
        self.reason = reason


class ExtractionTimeoutError(PipelineError):
    """The run-level deadline expired between batches."""
