"""Task data models.

Decoupled from prtask_core so the store layer can be used (and tested)
without any knowledge of review sources or AI providers. Everything here
round-trips through plain dicts because every backend persists JSON
documents.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

# Fixed namespace so the same provenance key yields the same task id on
# every machine and every run.
_TASK_NAMESPACE = uuid.UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Lower rank sorts first."""
        return _PRIORITY_RANK[self]

    @classmethod
    def coerce(cls, value, default: Priority | None = None) -> Priority:
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default if default is not None else cls.MEDIUM


_PRIORITY_RANK = {Priority.CRITICAL: 0, Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


class TaskStatus(str, Enum):
    TODO = "todo"
    DOING = "doing"
    PENDING = "pending"
    DONE = "done"
    CANCEL = "cancel"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.CANCEL)

    def can_transition_to(self, other: TaskStatus) -> bool:
        return other in _TRANSITIONS[self]


_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.DOING}),
    TaskStatus.DOING: frozenset({TaskStatus.DONE, TaskStatus.PENDING, TaskStatus.CANCEL}),
    TaskStatus.PENDING: frozenset({TaskStatus.DOING, TaskStatus.CANCEL}),
    TaskStatus.DONE: frozenset(),
    TaskStatus.CANCEL: frozenset(),
}


class ImplementationStatus(str, Enum):
    UNKNOWN = "unknown"
    IMPLEMENTED = "implemented"
    NOT_IMPLEMENTED = "not_implemented"


class VerificationStatus(str, Enum):
    UNKNOWN = "unknown"
    NOT_VERIFIED = "not_verified"
    VERIFIED = "verified"
    FAILED = "failed"


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed by the transition table."""

    def __init__(self, task_id: str, current: TaskStatus, requested: TaskStatus):
        allowed = ", ".join(sorted(s.value for s in _TRANSITIONS[current])) or "none (terminal)"
        super().__init__(
            f"Task {task_id}: cannot move from {current.value!r} to {requested.value!r}. Allowed: {allowed}."
        )
        self.task_id = task_id
        self.current = current
        self.requested = requested


ProvenanceKey = tuple[str, int, int, int]


def task_id_for(key: ProvenanceKey) -> str:
    target, review_id, comment_id, task_index = key
    return str(uuid.uuid5(_TASK_NAMESPACE, f"{target}/{review_id}/{comment_id}/{task_index}"))


@dataclass
class TaskDraft:
    """One work item extracted from one comment, before reconciliation."""

    target: str
    review_id: int
    comment_id: int
    task_index: int
    description: str
    priority: Priority
    origin_text: str = ""
    file: str = ""
    line: int = 0

    @property
    def provenance_key(self) -> ProvenanceKey:
        return (self.target, self.review_id, self.comment_id, self.task_index)

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "review_id": self.review_id,
            "comment_id": self.comment_id,
            "task_index": self.task_index,
            "description": self.description,
            "priority": self.priority.value,
            "origin_text": self.origin_text,
            "file": self.file,
            "line": self.line,
        }

    @classmethod
    def from_dict(cls, d: dict) -> TaskDraft:
        return cls(
            target=str(d["target"]),
            review_id=int(d["review_id"]),
            comment_id=int(d["comment_id"]),
            task_index=int(d.get("task_index", 0)),
            description=d.get("description", ""),
            priority=Priority.coerce(d.get("priority")),
            origin_text=d.get("origin_text", ""),
            file=d.get("file", "") or "",
            line=int(d.get("line", 0) or 0),
        )


@dataclass
class VerificationResult:
    timestamp: str
    success: bool
    checks_run: list[str] = field(default_factory=list)
    failure_reason: str = ""

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "success": self.success,
            "checks_run": list(self.checks_run),
            "failure_reason": self.failure_reason,
        }

    @classmethod
    def from_dict(cls, d: dict) -> VerificationResult:
        return cls(
            timestamp=d.get("timestamp", ""),
            success=bool(d.get("success", False)),
            checks_run=list(d.get("checks_run", [])),
            failure_reason=d.get("failure_reason", ""),
        )


@dataclass
class Task:
    """A persisted, reconciled work item.

    Operator-owned fields (status, implementation_status,
    verification_status, verification_history) are only ever changed by
    explicit TaskStore calls. Content-owned fields (description, priority,
    origin_text, file, line) follow the latest extraction.
    """

    id: str
    target: str
    source_review_id: int
    source_comment_id: int
    task_index: int
    description: str
    priority: Priority
    origin_text: str = ""
    file: str = ""
    line: int = 0
    status: TaskStatus = TaskStatus.TODO
    implementation_status: ImplementationStatus = ImplementationStatus.UNKNOWN
    verification_status: VerificationStatus = VerificationStatus.UNKNOWN
    created_at: str = ""
    updated_at: str = ""
    last_verification_at: str = ""
    verification_history: list[VerificationResult] = field(default_factory=list)

    @property
    def provenance_key(self) -> ProvenanceKey:
        return (self.target, self.source_review_id, self.source_comment_id, self.task_index)

    @classmethod
    def from_draft(cls, draft: TaskDraft, now: str) -> Task:
        return cls(
            id=task_id_for(draft.provenance_key),
            target=draft.target,
            source_review_id=draft.review_id,
            source_comment_id=draft.comment_id,
            task_index=draft.task_index,
            description=draft.description,
            priority=draft.priority,
            origin_text=draft.origin_text,
            file=draft.file,
            line=draft.line,
            created_at=now,
            updated_at=now,
        )

    def refresh_content(self, draft: TaskDraft, now: str) -> bool:
        """Copy content-owned fields from draft. Returns True if anything changed."""
        incoming = {
            "description": draft.description,
            "priority": draft.priority,
            "origin_text": draft.origin_text,
            "file": draft.file,
            "line": draft.line,
        }
        changed = False
        for name, value in incoming.items():
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed = True
        if changed:
            self.updated_at = now
        return changed

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target": self.target,
            "source_review_id": self.source_review_id,
            "source_comment_id": self.source_comment_id,
            "task_index": self.task_index,
            "description": self.description,
            "priority": self.priority.value,
            "origin_text": self.origin_text,
            "file": self.file,
            "line": self.line,
            "status": self.status.value,
            "implementation_status": self.implementation_status.value,
            "verification_status": self.verification_status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_verification_at": self.last_verification_at,
            "verification_history": [v.to_dict() for v in self.verification_history],
        }

    @classmethod
    def from_dict(cls, d: dict) -> Task:
        status = d.get("status", "todo")
        # Older task files spelled it "cancelled".
        if status == "cancelled":
            status = "cancel"
        return cls(
            id=d["id"],
            target=str(d.get("target", "")),
            source_review_id=int(d.get("source_review_id", 0)),
            source_comment_id=int(d.get("source_comment_id", 0)),
            task_index=int(d.get("task_index", 0)),
            description=d.get("description", ""),
            priority=Priority.coerce(d.get("priority")),
            origin_text=d.get("origin_text", ""),
            file=d.get("file", "") or "",
            line=int(d.get("line", 0) or 0),
            status=TaskStatus(status),
            implementation_status=ImplementationStatus(d.get("implementation_status", "unknown")),
            verification_status=VerificationStatus(d.get("verification_status", "unknown")),
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
            last_verification_at=d.get("last_verification_at", ""),
            verification_history=[VerificationResult.from_dict(v) for v in d.get("verification_history", [])],
        )


@dataclass
class Checkpoint:
    """Extraction progress for one target.

    processed counts comments that are durably cached (or were already
    cached when the run started), over the exact comment ordering of the
    run that created it.
    """

    target: str
    processed: int
    total: int
    started_at: str = field(default_factory=utc_now)
    last_processed_at: str = ""

    @property
    def remaining(self) -> int:
        return max(self.total - self.processed, 0)

    def is_stale(self, max_age: timedelta = timedelta(hours=24), now: datetime | None = None) -> bool:
        if not self.last_processed_at:
            return False
        now = now or datetime.now(timezone.utc)
        return now - datetime.fromisoformat(self.last_processed_at) > max_age

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "processed": self.processed,
            "total": self.total,
            "started_at": self.started_at,
            "last_processed_at": self.last_processed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Checkpoint:
        return cls(
            target=str(d.get("target", "")),
            processed=int(d.get("processed", 0)),
            total=int(d.get("total", 0)),
            started_at=d.get("started_at", ""),
            last_processed_at=d.get("last_processed_at", ""),
        )
