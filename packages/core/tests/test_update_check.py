"""Tests for the background release check."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from prtask_core.update_check import (
    BackgroundUpdateCheck,
    Release,
    UpdateChecker,
    UpdateCheckState,
    parse_version,
    should_check,
    start_update_check,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _clock():
    return NOW


def _make_checker(tag="v1.3.0", prerelease=False, current="1.2.0", notify_prereleases=False):
    release = Release(tag_name=tag, prerelease=prerelease, html_url=f"https://example.invalid/{tag}")
    return UpdateChecker(current, notify_prereleases=notify_prereleases, fetch=lambda *args: release)


class _FailingChecker:
    def check(self):
        raise ConnectionError("offline")


class _BlockingChecker:
    def __init__(self):
        self.release = threading.Event()

    def check(self):
        self.release.wait(5)
        return "Update available"


class TestParseVersion:
    def test_plain_and_prefixed(self):
        assert parse_version("1.2.3") == (1, 2, 3)
        assert parse_version("v10.0.1") == (10, 0, 1)

    def test_suffix_is_ignored(self):
        assert parse_version("2.0.0-rc1") == (2, 0, 0)

    def test_dev_sorts_above_releases(self):
        assert parse_version("dev") > parse_version("v99.0.0")

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_version("latest")


class TestShouldCheck:
    def test_disabled(self):
        assert not should_check(UpdateCheckState(), False, 24, NOW)

    def test_never_checked(self):
        assert should_check(UpdateCheckState(), True, 24, NOW)

    def test_within_interval(self):
        assert not should_check(UpdateCheckState(last_check=NOW - timedelta(hours=2)), True, 24, NOW)

    def test_interval_elapsed(self):
        assert should_check(UpdateCheckState(last_check=NOW - timedelta(hours=25)), True, 24, NOW)


class TestUpdateCheckState:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "state" / "update_check.json"
        UpdateCheckState(last_check=NOW).save(path)
        assert UpdateCheckState.load(path).last_check == NOW

    def test_missing_or_corrupt_file_is_empty_state(self, tmp_path):
        assert UpdateCheckState.load(tmp_path / "nope.json").last_check is None
        bad = tmp_path / "bad.json"
        bad.write_text("{", encoding="utf-8")
        assert UpdateCheckState.load(bad).last_check is None

    def test_naive_timestamp_is_read_as_utc(self, tmp_path):
        path = tmp_path / "update_check.json"
        path.write_text(json.dumps({"last_check": "2024-06-01T11:00:00"}), encoding="utf-8")
        state = UpdateCheckState.load(path)
        assert state.last_check == NOW - timedelta(hours=1)
        assert not should_check(state, True, 24, NOW)


class TestUpdateChecker:
    def test_newer_release_notifies(self):
        message = _make_checker().check()
        assert "1.2.0 → v1.3.0" in message

    def test_same_version_is_silent(self):
        assert _make_checker(tag="v1.2.0").check() is None

    def test_prerelease_ignored_unless_requested(self):
        assert _make_checker(tag="v2.0.0-beta", prerelease=True).check() is None
        assert _make_checker(tag="v2.0.0-beta", prerelease=True, notify_prereleases=True).check()

    def test_no_release(self):
        assert UpdateChecker("1.0.0", fetch=lambda *args: None).check() is None


class TestBackgroundUpdateCheck:
    def test_success_records_last_check(self, tmp_path):
        path = tmp_path / "update_check.json"
        check = BackgroundUpdateCheck(_make_checker(), UpdateCheckState(), path, clock=_clock).start()

        assert "v1.3.0" in check.wait(5)
        assert json.loads(path.read_text(encoding="utf-8"))["last_check"] == NOW.isoformat()

    def test_failure_is_swallowed_and_not_recorded(self, tmp_path):
        path = tmp_path / "update_check.json"
        check = BackgroundUpdateCheck(_FailingChecker(), UpdateCheckState(), path, clock=_clock).start()

        assert check.wait(5) is None
        assert not path.exists()

    def test_slow_check_is_cancelled_without_writing(self, tmp_path):
        path = tmp_path / "update_check.json"
        checker = _BlockingChecker()
        check = BackgroundUpdateCheck(checker, UpdateCheckState(), path, clock=_clock).start()

        assert check.wait(0.01) is None
        checker.release.set()
        check._thread.join(5)
        assert not path.exists()


class TestStartUpdateCheck:
    def test_not_due_returns_none(self, tmp_path):
        path = tmp_path / "update_check.json"
        UpdateCheckState(last_check=NOW - timedelta(hours=1)).save(path)
        assert start_update_check("1.0.0", {"enabled": True, "interval_hours": 24}, path, clock=_clock) is None

    def test_naive_state_file_does_not_raise(self, tmp_path):
        path = tmp_path / "update_check.json"
        path.write_text(json.dumps({"last_check": "2024-01-01T00:00:00"}), encoding="utf-8")
        check = start_update_check("1.0.0", {"enabled": True}, path, clock=_clock, checker=_make_checker())
        assert check is not None
        assert check.wait(5)

    def test_disabled_returns_none(self, tmp_path):
        assert start_update_check("1.0.0", {"enabled": False}, tmp_path / "s.json", clock=_clock) is None

    def test_due_check_runs(self, tmp_path):
        path = tmp_path / "update_check.json"
        check = start_update_check("1.0.0", {"enabled": True}, path, clock=_clock, checker=_make_checker())
        assert check is not None
        assert check.wait(5)
