"""
In-app notifications fanned out to league members on phase changes.

Rows are written by the `notify_league` job so that a slow or failing
fan-out never holds up a prompt transition.
"""
from __future__ import annotations
from datetime import datetime
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.notification import Notification
from challenge_league.models.prompt import Prompt

NEW_PROMPT = "new-prompt-available"
VOTING_AVAILABLE = "voting-available"
RESULTS_AVAILABLE = "results-available"
LEAGUE_STARTED = "league-started"

_COPY = {
    NEW_PROMPT: ("New challenge in {league}", "{prompt}"),
    VOTING_AVAILABLE: ("Voting is open in {league}", "Rank your favourite photos for: {prompt}"),
    RESULTS_AVAILABLE: ("Results are in for {league}", "See who won: {prompt}"),
    LEAGUE_STARTED: ("{league} has started", "The first challenge is on its way."),
}


def render(kind: str, league_name: str, prompt_text: str | None) -> tuple[str, str]:
    if kind not in _COPY:
        raise ValueError(f"unknown notification kind: {kind}")
    title, body = _COPY[kind]
    fields = {"league": league_name, "prompt": prompt_text or ""}
    return title.format(**fields)[:120], body.format(**fields)


async def notify_league_members(
    session: AsyncSession,
    league_id: UUID,
    kind: str,
    prompt_id: UUID | None = None,
    exclude_user_id: UUID | None = None,
) -> int:
    """Create one notification per active member. Returns how many were created."""
    league = await session.get(League, league_id)
    if league is None:
        return 0
    prompt = await session.get(Prompt, prompt_id) if prompt_id else None
    title, body = render(kind, league.name, prompt.text if prompt else None)

    q = select(LeagueMembership.user_id).where(
        LeagueMembership.league_id == league_id,
        LeagueMembership.is_active.is_(True),
    )
    if exclude_user_id is not None:
        q = q.where(LeagueMembership.user_id != exclude_user_id)
    user_ids = (await session.execute(q)).scalars().all()

    data = {"league_id": str(league_id)}
    if prompt_id:
        data["prompt_id"] = str(prompt_id)
    for uid in user_ids:
        session.add(Notification(user_id=uid, league_id=league_id, kind=kind, title=title, body=body, data=data))
    await session.flush()
    return len(user_ids)


async def list_for_user(session: AsyncSession, user_id: UUID, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        q = q.where(Notification.read_at.is_(None))
    q = q.order_by(Notification.created_at.desc()).limit(limit)
    return list((await session.execute(q)).scalars().all())


async def mark_read(session: AsyncSession, user_id: UUID, notification_id: UUID, now: datetime) -> bool:
    res = await session.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1
