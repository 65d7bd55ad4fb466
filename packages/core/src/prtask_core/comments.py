"""Review comment model, fingerprinting and pre-extraction filtering."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

# Phrases bots and humans leave when a thread has been dealt with.
_RESOLVED_MARKERS = (
    "addressed in commit",
    "fixed in commit",
    "resolved in commit",
)


@dataclass(frozen=True)
class Reply:
    author: str
    body: str
    created_at: str = ""


@dataclass(frozen=True)
class ReviewComment:
    """One comment as supplied by the review source. Read-only to prtask.

    A review's own summary body is represented as a comment whose id is the
    review id, with no file and line 0.
    """

    id: int
    review_id: int
    author: str
    body: str
    file: str = ""
    line: int = 0
    thread_resolved: bool = False
    created_at: str = ""
    updated_at: str = ""
    replies: tuple[Reply, ...] = field(default_factory=tuple)

    @property
    def key(self) -> tuple[int, int]:
        """Identity within a target. A summary's id can equal an inline comment's id."""
        return (self.review_id, self.id)


def fingerprint(comment: ReviewComment) -> str:
    """Stable SHA-256 over a comment's identity, content and thread context.

    Any edit to the body, a move to another line, or a new reply produces a
    new fingerprint and therefore a cache miss.
    """
    h = hashlib.sha256()
    parts = [
        str(comment.review_id),
        str(comment.id),
        comment.author,
        comment.file,
        str(comment.line),
        comment.body,
    ]
    for reply in comment.replies:
        parts.extend((reply.author, reply.body, reply.created_at))
    for part in parts:
        encoded = part.encode("utf-8")
        # Length-prefix each part so ("ab", "c") and ("a", "bc") differ.
        h.update(len(encoded).to_bytes(8, "big"))
        h.update(encoded)
    return h.hexdigest()


def is_resolved(comment: ReviewComment) -> bool:
    if comment.thread_resolved:
        return True
    texts = [comment.body] + [r.body for r in comment.replies]
    for text in texts:
        lowered = (text or "").lower()
        if any(marker in lowered for marker in _RESOLVED_MARKERS):
            return True
    return False


def select_actionable(comments: list[ReviewComment]) -> list[ReviewComment]:
    """Drop resolved threads and empty bodies, keeping the source order."""
    return [c for c in comments if (c.body or "").strip() and not is_resolved(c)]


def is_low_priority(body: str, patterns: list[str]) -> bool:
    """True if the comment starts, or has a line starting, with a nitpick marker."""
    lowered = (body or "").lower().lstrip()
    for pattern in patterns:
        p = pattern.lower()
        if lowered.startswith(p) or ("\n" + p) in lowered:
            return True
    return False
