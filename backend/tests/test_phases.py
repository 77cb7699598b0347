from __future__ import annotations
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
import pytest

from challenge_league.models.prompt import SCHEDULED, ACTIVE, VOTING, COMPLETED
from challenge_league.services.phases import (
    PhaseSettings, as_utc, can_transition, is_phase_expired, is_submission_window_open,
    next_phase, phase_deadlines, phase_end_time, time_until_phase_end,
)

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
SETTINGS = PhaseSettings(submission_days=7, voting_days=2)


def _prompt(status, started=T0, **kw):
    return SimpleNamespace(status=status, phase_started_at=started, **kw)


def test_transition_table_only_moves_forward():
    assert next_phase(SCHEDULED) == ACTIVE
    assert next_phase(ACTIVE) == VOTING
    assert next_phase(VOTING) == COMPLETED
    assert next_phase(COMPLETED) is None
    assert can_transition(ACTIVE, VOTING)
    assert not can_transition(VOTING, ACTIVE)
    assert not can_transition(SCHEDULED, VOTING)


def test_phase_end_uses_league_durations():
    assert phase_end_time(_prompt(ACTIVE), SETTINGS) == T0 + timedelta(days=7)
    assert phase_end_time(_prompt(VOTING), SETTINGS) == T0 + timedelta(days=2)
    assert phase_end_time(_prompt(SCHEDULED), SETTINGS) is None
    assert phase_end_time(_prompt(ACTIVE, started=None), SETTINGS) is None


def test_stored_deadline_wins_over_recomputed_one():
    p = _prompt(ACTIVE, week_end=T0 + timedelta(days=3))
    assert phase_end_time(p, SETTINGS) == T0 + timedelta(days=3)


def test_expiry_is_inclusive_at_deadline():
    p = _prompt(ACTIVE)
    end = T0 + timedelta(days=7)
    assert not is_phase_expired(p, SETTINGS, end - timedelta(seconds=1))
    assert is_phase_expired(p, SETTINGS, end)
    assert is_submission_window_open(p, SETTINGS, end - timedelta(seconds=1))
    assert not is_submission_window_open(p, SETTINGS, end)
    assert not is_submission_window_open(_prompt(VOTING), SETTINGS, T0)


def test_time_remaining_breakdown():
    p = _prompt(VOTING)
    left = time_until_phase_end(p, SETTINGS, T0 + timedelta(hours=2, minutes=30))
    assert left == {"days": 1, "hours": 21, "minutes": 30, "is_expired": False}
    assert time_until_phase_end(p, SETTINGS, T0 + timedelta(days=5))["is_expired"] is True


def test_phase_deadlines():
    assert phase_deadlines(ACTIVE, SETTINGS, T0) == (T0, T0 + timedelta(days=7))
    assert phase_deadlines(VOTING, SETTINGS, T0) == (T0, T0 + timedelta(days=2))
    with pytest.raises(ValueError):
        phase_deadlines(COMPLETED, SETTINGS, T0)


def test_as_utc_normalizes_inputs():
    naive = datetime(2026, 3, 2, 12, 0)
    assert as_utc(naive) == T0
    assert as_utc("2026-03-02T12:00:00+00:00") == T0
    assert as_utc("not a date") is None
    assert as_utc(None) is None
    assert as_utc(42) is None


@pytest.mark.parametrize("prompt", [
    _prompt(SCHEDULED),
    _prompt(COMPLETED),
    _prompt(ACTIVE, started=None),
])
def test_no_deadline_means_not_expired(prompt):
    assert is_phase_expired(prompt, SETTINGS, T0 + timedelta(days=30)) is False
    assert time_until_phase_end(prompt, SETTINGS, T0 + timedelta(days=30)) == {
        "days": 0, "hours": 0, "minutes": 0, "is_expired": False,
    }
