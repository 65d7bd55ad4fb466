"""JsonFileStore: the default, human-readable local store.

Layout under the root directory (default `.pr-review`):

    .pr-review/
      PR-42/
        tasks.json
        checkpoint.json
        cache.json

Durability: every put() writes a sibling temp file, fsyncs it and then
os.replace()s it over the target. os.replace is atomic on POSIX and
Windows, so a crash mid-write leaves the previous document untouched.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from prtask_store.base import BaseStore, StorageIOError

logger = logging.getLogger(__name__)

_TARGET_DIR_RE = re.compile(r"^PR-(.+)$")


class JsonFileStore(BaseStore):
    def __init__(self, root: str = ".pr-review"):
        self._root = Path(root)

    def _target_dir(self, target: str) -> Path:
        return self._root / f"PR-{target}"

    def _path(self, target: str, name: str) -> Path:
        return self._target_dir(target) / f"{name}.json"

    def get(self, target: str, name: str) -> Any | None:
        path = self._path(target, name)
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StorageIOError(f"Could not read {path}: {e}") from e

    def put(self, target: str, name: str, value: Any) -> None:
        path = self._path(target, name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(value, f, indent=2, ensure_ascii=False)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                # Leave no half-written temp files behind.
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageIOError(f"Could not write {path}: {e}") from e
        logger.debug("Wrote %s", path)

    def delete(self, target: str, name: str) -> None:
        path = self._path(target, name)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageIOError(f"Could not delete {path}: {e}") from e

    def list_targets(self) -> list[str]:
        if not self._root.is_dir():
            return []
        targets = []
        for entry in self._root.iterdir():
            match = _TARGET_DIR_RE.match(entry.name)
            if entry.is_dir() and match and any(entry.glob("*.json")):
                targets.append(match.group(1))
        return sorted(targets)
