from __future__ import annotations
import random
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.models.league import LeagueMembership
from challenge_league.models.prompt import Prompt, ACTIVE, COMPLETED
from challenge_league.models.response import Response
from challenge_league.models.user import User
from challenge_league.services.errors import NotFound


@dataclass
class Standing:
    user_id: UUID
    username: str
    total_points: int = 0
    submissions: int = 0
    wins: int = 0
    podiums: int = 0
    average_rank: float | None = None
    league_rank: int = 0


async def league_standings(session: AsyncSession, league_id: UUID) -> list[Standing]:
    """Aggregate every active member's results over the league's completed prompts."""
    members = (await session.execute(
        select(User.id, User.username)
        .join(LeagueMembership, LeagueMembership.user_id == User.id)
        .where(LeagueMembership.league_id == league_id, LeagueMembership.is_active.is_(True))
    )).all()

    totals = (await session.execute(
        select(
            Response.user_id,
            func.coalesce(func.sum(Response.total_points), 0),
            func.count(Response.id),
            func.sum(case((Response.final_rank == 1, 1), else_=0)),
            func.sum(case((Response.final_rank <= 3, 1), else_=0)),
            func.avg(Response.final_rank),
        )
        .join(Prompt, Prompt.id == Response.prompt_id)
        .where(Prompt.league_id == league_id, Prompt.status == COMPLETED, Response.is_published.is_(True))
        .group_by(Response.user_id)
    )).all()
    by_user = {row[0]: row[1:] for row in totals}

    rows = []
    for user_id, username in members:
        s = Standing(user_id=user_id, username=username)
        agg = by_user.get(user_id)
        if agg:
            points, count, wins, podiums, avg_rank = agg
            s.total_points = int(points or 0)
            s.submissions = int(count or 0)
            s.wins = int(wins or 0)
            s.podiums = int(podiums or 0)
            s.average_rank = round(float(avg_rank), 2) if avg_rank is not None else None
        rows.append(s)

    rows.sort(key=lambda s: (-s.total_points, -s.wins, s.username.lower()))
    prev = None
    for position, s in enumerate(rows, start=1):
        if s.total_points != prev:
            rank = position
            prev = s.total_points
        s.league_rank = rank
    return rows


async def completed_count(session: AsyncSession, league_id: UUID) -> int:
    return int(await session.scalar(
        select(func.count()).select_from(Prompt).where(Prompt.league_id == league_id, Prompt.status == COMPLETED)
    ) or 0)


async def list_rounds(session: AsyncSession, league_id: UUID) -> list[tuple[Prompt, int]]:
    """Completed prompts, newest first, with their response counts."""
    rows = (await session.execute(
        select(Prompt, func.count(Response.id))
        .outerjoin(Response, (Response.prompt_id == Prompt.id) & Response.is_published.is_(True))
        .where(Prompt.league_id == league_id, Prompt.status == COMPLETED)
        .group_by(Prompt.id)
        .order_by(Prompt.vote_end.desc(), Prompt.created_at.desc())
    )).all()
    return [(p, int(n)) for p, n in rows]


async def round_results(session: AsyncSession, league_id: UUID, prompt_id: UUID) -> tuple[Prompt, list[tuple[Response, str]]]:
    prompt = await session.get(Prompt, prompt_id)
    if prompt is None or prompt.league_id != league_id or prompt.status != COMPLETED:
        raise NotFound("Round not found")
    rows = (await session.execute(
        select(Response, User.username)
        .join(User, User.id == Response.user_id)
        .where(Response.prompt_id == prompt.id, Response.is_published.is_(True))
        .order_by(Response.final_rank.asc(), Response.total_points.desc(), Response.submitted_at.asc())
    )).all()
    return prompt, [(r, username) for r, username in rows]


@dataclass
class Submitter:
    response_id: UUID
    user_id: UUID
    username: str
    submitted_at: datetime


@dataclass
class SubmissionStats:
    has_active_challenge: bool = False
    submission_count: int = 0
    total_members: int = 0
    submitters: list[Submitter] = field(default_factory=list)


async def submission_stats(session: AsyncSession, league_id: UUID, sample_size: int = 6) -> SubmissionStats:
    """How many members have submitted to the ACTIVE prompt, with a random handful of them."""
    prompt_id = await session.scalar(
        select(Prompt.id).where(Prompt.league_id == league_id, Prompt.status == ACTIVE)
    )
    if prompt_id is None:
        return SubmissionStats()
    rows = (await session.execute(
        select(Response.id, Response.user_id, User.username, Response.submitted_at)
        .join(User, User.id == Response.user_id)
        .where(Response.prompt_id == prompt_id)
    )).all()
    members = await session.scalar(
        select(func.count()).select_from(LeagueMembership)
        .where(LeagueMembership.league_id == league_id, LeagueMembership.is_active.is_(True))
    )
    picked = random.sample(rows, min(sample_size, len(rows)))
    return SubmissionStats(
        has_active_challenge=True,
        submission_count=len(rows),
        total_members=int(members or 0),
        submitters=[Submitter(*row) for row in picked],
    )
