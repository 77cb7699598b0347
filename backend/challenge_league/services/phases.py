from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_tz
from typing import Any, Protocol

from challenge_league.models.prompt import SCHEDULED, ACTIVE, VOTING, COMPLETED

NEXT_PHASE: dict[str, str | None] = {
    SCHEDULED: ACTIVE,
    ACTIVE: VOTING,
    VOTING: COMPLETED,
    COMPLETED: None,  # terminal
}


class HasPhaseSettings(Protocol):
    submission_days: int
    voting_days: int


@dataclass(frozen=True)
class PhaseSettings:
    submission_days: int = 7
    voting_days: int = 2
    votes_per_player: int = 3

    @classmethod
    def from_league(cls, league: Any) -> "PhaseSettings":
        return cls(
            submission_days=int(league.submission_days),
            voting_days=int(league.voting_days),
            votes_per_player=int(league.votes_per_player),
        )


def utcnow() -> datetime:
    return datetime.now(dt_tz.utc)


def as_utc(value: Any) -> datetime | None:
    """
    Coerce a stored timestamp into an aware UTC datetime.
    Naive values are treated as UTC (SQLite drops tzinfo); anything that is not
    a datetime or an ISO string comes back as None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt_tz.utc)
    return value.astimezone(dt_tz.utc)


def next_phase(status: str) -> str | None:
    return NEXT_PHASE.get(status)


def can_transition(current: str, target: str) -> bool:
    return NEXT_PHASE.get(current) == target


def phase_duration(status: str, settings: HasPhaseSettings) -> timedelta | None:
    if status == ACTIVE:
        return timedelta(days=int(settings.submission_days))
    if status == VOTING:
        return timedelta(days=int(settings.voting_days))
    return None


def phase_end_time(prompt: Any, settings: HasPhaseSettings) -> datetime | None:
    """End of the prompt's current phase, or None when the phase has no deadline."""
    stored = {ACTIVE: "week_end", VOTING: "vote_end"}.get(prompt.status)
    if stored and as_utc(getattr(prompt, stored, None)) is not None:
        return as_utc(getattr(prompt, stored))
    started = as_utc(getattr(prompt, "phase_started_at", None))
    if started is None:
        return None
    duration = phase_duration(prompt.status, settings)
    if duration is None:
        return None
    return started + duration


def is_phase_expired(prompt: Any, settings: HasPhaseSettings, now: datetime | None = None) -> bool:
    end = phase_end_time(prompt, settings)
    if end is None:
        return False
    return (now or utcnow()) >= end


def is_submission_window_open(prompt: Any, settings: HasPhaseSettings, now: datetime | None = None) -> bool:
    return prompt.status == ACTIVE and not is_phase_expired(prompt, settings, now)


def time_until_phase_end(prompt: Any, settings: HasPhaseSettings, now: datetime | None = None) -> dict:
    end = phase_end_time(prompt, settings)
    if end is None:
        return {"days": 0, "hours": 0, "minutes": 0, "is_expired": False}
    remaining = int((end - (now or utcnow())).total_seconds())
    if remaining <= 0:
        return {"days": 0, "hours": 0, "minutes": 0, "is_expired": True}
    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    return {"days": days, "hours": hours, "minutes": rest // 60, "is_expired": False}


def phase_deadlines(status: str, settings: HasPhaseSettings, now: datetime) -> tuple[datetime, datetime]:
    """(start, end) written when a prompt enters ACTIVE or VOTING at `now`."""
    duration = phase_duration(status, settings)
    if duration is None:
        raise ValueError(f"{status} has no timed window")
    return now, now + duration
