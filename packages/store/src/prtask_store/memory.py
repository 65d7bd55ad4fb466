"""In-memory store: nothing survives the process.

Used as the test double for every reconciliation test, and selectable
with `store: memory` for dry runs. Documents are deep-copied on the way
in and out, so callers never share state with the store.
"""

from __future__ import annotations

import copy
from typing import Any

from prtask_store.base import BaseStore


class MemoryStore(BaseStore):
    def __init__(self):
        self._docs: dict[str, dict[str, Any]] = {}
        self.puts = 0

    def get(self, target: str, name: str) -> Any | None:
        value = self._docs.get(target, {}).get(name)
        return copy.deepcopy(value)

    def put(self, target: str, name: str, value: Any) -> None:
        self._docs.setdefault(target, {})[name] = copy.deepcopy(value)
        self.puts += 1

    def delete(self, target: str, name: str) -> None:
        docs = self._docs.get(target)
        if docs is None:
            return
        docs.pop(name, None)
        if not docs:
            del self._docs[target]

    def list_targets(self) -> list[str]:
        return sorted(self._docs)
