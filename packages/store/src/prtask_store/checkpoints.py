"""Persisted extraction progress, one record per target."""

from __future__ import annotations

from prtask_store.base import CHECKPOINT, BaseStore
from prtask_store.models import Checkpoint, utc_now


class CheckpointStore:
    def __init__(self, backend: BaseStore):
        self._backend = backend

    def load(self, target: str) -> Checkpoint | None:
        data = self._backend.get(target, CHECKPOINT)
        if not data:
            return None
        return Checkpoint.from_dict(data)

    def save(self, checkpoint: Checkpoint) -> None:
        checkpoint.last_processed_at = utc_now()
        self._backend.put(checkpoint.target, CHECKPOINT, checkpoint.to_dict())

    def clear(self, target: str) -> None:
        self._backend.delete(target, CHECKPOINT)
