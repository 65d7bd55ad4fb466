"""Content-addressed cache of extraction results.

Keyed by comment fingerprint, so an edited comment simply misses the
cache instead of returning stale drafts. There is no eviction: the only
way entries leave is clear(target), which the pipeline calls on an
explicit refresh.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from prtask_store.base import CACHE, BaseStore
from prtask_store.models import TaskDraft, utc_now

logger = logging.getLogger(__name__)


def _drafts(entry: dict | None) -> list[TaskDraft] | None:
    if entry is None:
        return None
    return [TaskDraft.from_dict(d) for d in entry.get("drafts", [])]


class CacheStore:
    def __init__(self, backend: BaseStore):
        self._backend = backend

    def _load(self, target: str) -> dict:
        return self._backend.get(target, CACHE) or {}

    def lookup(self, target: str, fingerprint: str) -> list[TaskDraft] | None:
        """Return cached drafts, or None on a miss.

        An empty list is a hit: the comment was analysed and yielded no work.
        """
        return _drafts(self._load(target).get(fingerprint))

    def reader(self, target: str) -> Callable[[str], Optional[list[TaskDraft]]]:
        """Load target's cache once and return a lookup over that copy.

        Writes made after the call are not visible through it.
        """
        cache = self._load(target)
        return lambda fingerprint: _drafts(cache.get(fingerprint))

    def fingerprints(self, target: str) -> set[str]:
        return set(self._load(target))

    def store(self, target: str, fingerprint: str, comment_id: int, drafts: list[TaskDraft]) -> None:
        self.store_many(target, [(fingerprint, comment_id, drafts)])

    def store_many(self, target: str, entries: list[tuple[str, int, list[TaskDraft]]]) -> None:
        """Write several entries with a single durable put."""
        if not entries:
            return
        cache = self._load(target)
        now = utc_now()
        for fingerprint, comment_id, drafts in entries:
            cache[fingerprint] = {
                "comment_id": comment_id,
                "cached_at": now,
                "drafts": [d.to_dict() for d in drafts],
            }
        self._backend.put(target, CACHE, cache)
        logger.debug("Cached %d comment result(s) for %s", len(entries), target)

    def clear(self, target: str) -> None:
        self._backend.delete(target, CACHE)
        logger.info("Cleared extraction cache for %s", target)
