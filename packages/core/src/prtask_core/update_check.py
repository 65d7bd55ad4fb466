"""Best-effort "newer release available" check.

Runs beside the main command and must never get in its way:
- the GitHub call is bounded by a short timeout,
- every failure is swallowed and logged at debug level,
- the only state it writes is the last-checked timestamp, and only after a
  successful, non-cancelled check.

State and clock are explicit so the scheduling rules are testable without
touching the network or the wall clock.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

RELEASE_REPO = "prtask/prtask"

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Release:
    tag_name: str
    prerelease: bool
    html_url: str


@dataclass
class UpdateCheckState:
    last_check: datetime | None = None

    @classmethod
    def load(cls, path: Path) -> UpdateCheckState:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            last_check = datetime.fromisoformat(data["last_check"])
        except (OSError, ValueError, KeyError, TypeError):
            return cls()
        if last_check.tzinfo is None:
            last_check = last_check.replace(tzinfo=timezone.utc)
        return cls(last_check=last_check)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        last = self.last_check.isoformat() if self.last_check else None
        path.write_text(json.dumps({"last_check": last}), encoding="utf-8")


def should_check(state: UpdateCheckState, enabled: bool, interval_hours: int, now: datetime) -> bool:
    if not enabled:
        return False
    if state.last_check is None:
        return True
    return now - state.last_check >= timedelta(hours=interval_hours)


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse "v1.2.3" / "1.2.3-rc1" into (1, 2, 3). "dev" sorts above everything."""
    if version.strip() in ("dev", "0.0.0.dev0"):
        return (999, 999, 999)
    match = _VERSION_RE.match(version.strip())
    if not match:
        raise ValueError(f"invalid version format: {version!r} (expected major.minor.patch)")
    return tuple(int(part) for part in match.groups())  # type: ignore[return-value]


def fetch_latest_release(repo_name: str, timeout: float, include_prereleases: bool) -> Release | None:
    from github import Github

    repo = Github(timeout=int(max(timeout, 1))).get_repo(repo_name)
    if include_prereleases:
        releases = repo.get_releases()
        release = next(iter(releases), None)
    else:
        release = repo.get_latest_release()
    if release is None:
        return None
    return Release(tag_name=release.tag_name, prerelease=release.prerelease, html_url=release.html_url)


class UpdateChecker:
    def __init__(
        self,
        current_version: str,
        repo_name: str = RELEASE_REPO,
        timeout: float = 5,
        notify_prereleases: bool = False,
        fetch: Optional[Callable[..., Optional[Release]]] = None,
    ):
        self.current_version = current_version
        self.repo_name = repo_name
        self.timeout = timeout
        self.notify_prereleases = notify_prereleases
        self._fetch = fetch or fetch_latest_release

    def check(self) -> str | None:
        """Return a notification if a newer release exists, else None. May raise."""
        release = self._fetch(self.repo_name, self.timeout, self.notify_prereleases)
        if release is None:
            return None
        if release.prerelease and not self.notify_prereleases:
            return None
        if parse_version(self.current_version) < parse_version(release.tag_name):
            return f"Update available: {self.current_version} → {release.tag_name}\nRelease notes: {release.html_url}"
        return None


class BackgroundUpdateCheck:
    """A tracked, cancellable update check running on a daemon thread."""

    def __init__(self, checker: UpdateChecker, state: UpdateCheckState, state_path: Path, clock: Clock = _utc_now):
        self._checker = checker
        self._state = state
        self._state_path = state_path
        self._clock = clock
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name="prtask-update-check", daemon=True)
        self.notification: str | None = None

    def start(self) -> BackgroundUpdateCheck:
        self._thread.start()
        return self

    def _run(self) -> None:
        try:
            notification = self._checker.check()
        except Exception as e:
            logger.debug("Update check failed: %s", e)
            return
        if self._cancelled.is_set():
            return
        self.notification = notification
        self._state.last_check = self._clock()
        try:
            self._state.save(self._state_path)
        except OSError as e:
            logger.debug("Could not record update check time: %s", e)

    def cancel(self) -> None:
        self._cancelled.set()

    def wait(self, timeout: float) -> str | None:
        """Wait at most timeout seconds; return the notification if one arrived."""
        self._thread.join(timeout)
        if self._thread.is_alive():
            self.cancel()
            return None
        return self.notification


def start_update_check(
    current_version: str,
    settings: dict,
    state_path: Path,
    clock: Clock = _utc_now,
    checker: UpdateChecker | None = None,
) -> BackgroundUpdateCheck | None:
    """Kick off a background check if one is due, else return None."""
    state = UpdateCheckState.load(state_path)
    if not should_check(state, settings.get("enabled", True), int(settings.get("interval_hours", 24)), clock()):
        return None
    checker = checker or UpdateChecker(
        current_version,
        repo_name=settings.get("repo", RELEASE_REPO),
        timeout=float(settings.get("timeout_seconds", 5)),
        notify_prereleases=bool(settings.get("notify_prereleases", False)),
    )
    return BackgroundUpdateCheck(checker, state, state_path, clock).start()
