"""Tests for pause/abort control signals."""

import time

import pytest

from waypoint.core.signals import ABORT_MARKER, PAUSE_MARKER, ControlSignals, parse_duration


class TestDurationParsing:
    def test_hours(self):
        assert parse_duration("2h") == 7200

    def test_minutes(self):
        assert parse_duration("30m") == 1800

    def test_seconds(self):
        assert parse_duration("45s") == 45

    def test_combined(self):
        assert parse_duration("1h30m") == 5400

    def test_full_combo(self):
        assert parse_duration("1h30m15s") == 5415

    def test_invalid(self):
        assert parse_duration("abc") is None

    def test_empty(self):
        assert parse_duration("") is None

    def test_zero(self):
        assert parse_duration("0m") == 0


@pytest.fixture
def signals(tmp_path):
    return ControlSignals(tmp_path)


class TestControlSignals:
    def test_initial_state(self, signals):
        assert signals.is_paused("t1") is False
        assert signals.is_aborted("t1") is False
        assert signals.state("t1") == "running"

    def test_pause_resume(self, signals, tmp_path):
        signals.pause("t1")
        assert (tmp_path / "t1" / PAUSE_MARKER).exists()
        assert signals.is_paused("t1") is True
        assert signals.resume("t1") is True
        assert signals.is_paused("t1") is False

    def test_resume_without_pause(self, signals):
        assert signals.resume("t1") is False

    def test_abort_and_clear(self, signals, tmp_path):
        signals.abort("t1")
        assert (tmp_path / "t1" / ABORT_MARKER).exists()
        assert signals.is_aborted("t1") is True
        assert signals.clear_abort("t1") is True
        assert signals.is_aborted("t1") is False
        assert signals.clear_abort("t1") is False

    def test_abort_beats_pause(self, signals):
        signals.pause("t1")
        signals.abort("t1")
        assert signals.state("t1") == "aborted"

    def test_signals_are_per_task(self, signals):
        signals.pause("t1")
        assert signals.is_paused("t2") is False

    def test_timed_pause_expires(self, signals, tmp_path):
        signals.pause("t1", duration_seconds=60)
        assert signals.is_paused("t1") is True
        marker = tmp_path / "t1" / PAUSE_MARKER
        marker.write_text(f"until={time.time() - 1}")
        assert signals.is_paused("t1") is False
        assert not marker.exists()

    def test_marker_written_by_another_process(self, signals, tmp_path):
        (tmp_path / "t1").mkdir()
        (tmp_path / "t1" / PAUSE_MARKER).write_text("")
        assert signals.is_paused("t1") is True
