"""Base analyzer implementing the Template Method pattern.

All providers share the same extraction algorithm:
    analyze() → _build_system_prompt() + _build_user_prompt()
              → _call_with_retry() → _call_api()   ← only this differs per provider
                                   → _parse()
              → _attribute()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Everything else (prompt construction, JSON parsing, retry logic and
mapping results back onto comments) lives here so it is defined once and
inherited consistently by every provider.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field

from prtask_core.comments import ReviewComment, is_low_priority
from prtask_core.errors import MalformedExtractionResult, TransientCollaboratorError
from prtask_store.models import Priority

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096
_MAX_CHARS_PER_COMMENT = 8000
_SIMILARITY_THRESHOLD = 0.8


@dataclass
class DraftSpec:
    """What the analysis service says about one task: text and priority."""

    description: str
    priority: Priority


@dataclass
class BatchAnalysis:
    """Per-comment outcome of one analyze() call.

    Keyed by (review id, comment id). Every comment in the batch ends up
    in exactly one of the two maps.
    """

    drafts: dict[tuple[int, int], list[DraftSpec]] = field(default_factory=dict)
    malformed: dict[tuple[int, int], MalformedExtractionResult] = field(default_factory=dict)


class _UnparsableResponse(ValueError):
    pass


class TruncatedResponseError(_UnparsableResponse):
    """The model hit its output token limit before closing the JSON list."""

    def __init__(self, model: str, max_tokens: int):
        super().__init__(
            f"{model} stopped at the {max_tokens}-token output limit; lower batch_size so each call asks for less"
        )


class BaseAnalyzer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    user_language: str = "English"
    max_chars_per_comment: int = _MAX_CHARS_PER_COMMENT
    low_priority_patterns: list[str] = []
    nitpick_priority: Priority = Priority.LOW
    deduplicate: bool = True
    similarity_threshold: float = _SIMILARITY_THRESHOLD

    def configure(self, config: dict) -> BaseAnalyzer:
        """Apply the analysis-related keys of a loaded config."""
        self.MAX_RETRIES = max(int(config.get("max_retries", _MAX_RETRIES)), 1)
        self.user_language = config.get("user_language") or "English"
        self.max_chars_per_comment = int(config.get("max_chars_per_comment", _MAX_CHARS_PER_COMMENT))
        self.low_priority_patterns = list(config.get("low_priority_patterns") or [])
        self.nitpick_priority = Priority.coerce(config.get("nitpick_priority"), Priority.LOW)
        self.deduplicate = bool(config.get("deduplicate", True))
        self.similarity_threshold = float(config.get("similarity_threshold", _SIMILARITY_THRESHOLD))
        return self

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(self, batch: list[ReviewComment]) -> BatchAnalysis:
        """Extract task drafts for every comment in the batch.

        Raises TransientCollaboratorError once the retry budget is spent.
        Problems confined to a single comment never raise; they come back
        in BatchAnalysis.malformed.
        """
        if not batch:
            return BatchAnalysis()
        system = self._build_system_prompt()
        user = self._build_user_prompt(batch)
        entries = self._call_with_retry(system, user)
        return self._attribute(batch, entries)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> list:
        """Call and parse, retrying up to MAX_RETRIES times with exponential backoff.

        A response that is not a JSON array at all is treated like a
        transport failure: the model usually gets it right on a second try.
        """
        last_error: Exception | None = None
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._parse(self._call_api(system_prompt, user_prompt))
            except Exception as e:
                last_error = e
                if attempt == self.MAX_RETRIES - 1:
                    break
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)

        logger.error(
            "%s API failed after %d attempts: %s",
            self.__class__.__name__,
            self.MAX_RETRIES,
            last_error,
        )
        raise TransientCollaboratorError(
            f"{self.__class__.__name__} failed after {self.MAX_RETRIES} attempts: {last_error}"
        ) from last_error

    def _build_system_prompt(self) -> str:
        return f"""You turn code review comments into actionable developer tasks.

For each comment, decide which concrete changes the reviewer is asking for.
Split a comment into several tasks only when it asks for clearly independent changes.
Return no tasks for comments that are praise, questions already answered, or purely informational.

Priority rules:
- critical: security vulnerabilities, authentication bypasses, data exposure, crashes
- high: performance bottlenecks, memory leaks, data loss risks
- medium: functional bugs, logic improvements, error handling
- low: code style, naming conventions, comments and documentation

Write every task description in {self.user_language}. Be concise and actionable."""

    def _build_user_prompt(self, batch: list[ReviewComment]) -> str:
        sections = []
        for comment in batch:
            body = comment.body
            if len(body) > self.max_chars_per_comment:
                body = body[: self.max_chars_per_comment] + "\n... [comment truncated]"
            location = f"{comment.file}:{comment.line}" if comment.file else "(review summary)"
            section = [
                f"### Comment {comment.id} (review {comment.review_id})",
                f"Author: {comment.author}",
                f"Location: {location}",
                "",
                body,
            ]
            if comment.replies:
                section.append("\nReplies:")
                for reply in comment.replies:
                    section.append(f"- {reply.author}: {reply.body}")
            sections.append("\n".join(section))

        comments_block = "\n\n".join(sections)
        return f"""Analyze the following {len(batch)} review comment(s).

{comments_block}

### Output Format:
Respond with **only** a valid JSON list containing one entry per comment above:

[
  {{
    "comment_id": <the comment id (integer)>,
    "review_id": <the review id (integer)>,
    "tasks": [
      {{"description": "<what to change>", "priority": "<critical|high|medium|low>"}}
    ]
  }},
  ...
]

Use an empty "tasks" list for comments that need no action.
Do not return any text outside the JSON block."""

    def _parse(self, raw: str) -> list:
        """Parse the model's raw text response into a list of per-comment entries.

        Raises _UnparsableResponse so _call_with_retry can try again.
        """
        # Strip only the outer ```json ... ``` fence that the model wraps
        # the response in, NOT backticks inside description values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise _UnparsableResponse(f"response is not valid JSON: {(raw or '')[:200]!r}") from e
        if not isinstance(data, list):
            raise _UnparsableResponse(f"expected a JSON list, got {type(data).__name__}")
        return data

    def _attribute(self, batch: list[ReviewComment], entries: list) -> BatchAnalysis:
        """Map parsed entries back onto the comments that produced them.

        An entry matches on (review_id, comment_id). One without a review_id
        matches on comment_id alone, unless two comments in the batch share it.
        """
        by_key: dict[tuple[int, int], object] = {}
        by_id: dict[int, object] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                comment_id = int(entry.get("comment_id"))
                review_id = entry.get("review_id")
                if review_id is None:
                    by_id[comment_id] = entry.get("tasks")
                else:
                    by_key[(int(review_id), comment_id)] = entry.get("tasks")
            except (TypeError, ValueError):
                logger.debug("Ignoring entry without a usable comment_id: %r", entry)

        ids = Counter(comment.id for comment in batch)
        result = BatchAnalysis()
        for comment in batch:
            if comment.key in by_key:
                tasks = by_key[comment.key]
            elif comment.id in by_id and ids[comment.id] == 1:
                tasks = by_id[comment.id]
            else:
                result.malformed[comment.key] = MalformedExtractionResult(comment.id, "no result returned")
                continue
            try:
                result.drafts[comment.key] = self._to_specs(comment, tasks)
            except MalformedExtractionResult as e:
                result.malformed[comment.key] = e
        return result

    def _to_specs(self, comment: ReviewComment, tasks) -> list[DraftSpec]:
        if not isinstance(tasks, list):
            raise MalformedExtractionResult(comment.id, f"'tasks' must be a list, got {type(tasks).__name__}")
        nitpick = is_low_priority(comment.body, self.low_priority_patterns)
        specs = []
        for task in tasks:
            if not isinstance(task, dict):
                raise MalformedExtractionResult(comment.id, f"task entry must be an object, got {task!r}")
            description = str(task.get("description") or "").strip()
            if not description:
                raise MalformedExtractionResult(comment.id, "task without a description")
            priority = self.nitpick_priority if nitpick else Priority.coerce(task.get("priority"))
            specs.append(DraftSpec(description=description, priority=priority))
        if self.deduplicate and len(specs) > 1:
            kept = deduplicate(specs, self.similarity_threshold)
            if len(kept) < len(specs):
                logger.debug("Comment %d: dropped %d near-duplicate task(s)", comment.id, len(specs) - len(kept))
            specs = kept
        return specs


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the lower-cased word sets of a and b (0.0 to 1.0)."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def deduplicate(specs: list[DraftSpec], threshold: float) -> list[DraftSpec]:
    """Drop tasks whose description is at least threshold-similar to a kept one.

    Higher priority wins a clash. Survivors keep the order they arrived in.
    """
    by_priority = sorted(range(len(specs)), key=lambda i: (specs[i].priority.rank, i))
    kept: list[int] = []
    for i in by_priority:
        if all(similarity(specs[i].description, specs[k].description) < threshold for k in kept):
            kept.append(i)
    return [specs[i] for i in sorted(kept)]
