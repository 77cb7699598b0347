from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.prompt import Prompt, VOTING
from challenge_league.models.response import Response
from challenge_league.models.vote import Vote
from challenge_league.services.errors import Forbidden, VoteRejected
from challenge_league.services.ordering import voting_order
from challenge_league.services.phases import as_utc
from challenge_league.services.prompt_queue import current_prompt
from challenge_league.services.scoring import points_for_rank

log = structlog.get_logger()


@dataclass
class Ballot:
    prompt: Prompt | None
    responses: list[Response] = field(default_factory=list)
    my_votes: list[Vote] = field(default_factory=list)
    votes_per_player: int = 3
    voting_open: bool = False


def voting_is_open(prompt: Prompt | None, now: datetime) -> bool:
    if prompt is None or prompt.status != VOTING:
        return False
    end = as_utc(prompt.vote_end)
    return end is not None and end > now


async def _votes_of(session: AsyncSession, prompt_id: UUID, voter_id: UUID) -> list[Vote]:
    return list((await session.execute(
        select(Vote)
        .join(Response, Response.id == Vote.response_id)
        .where(Response.prompt_id == prompt_id, Vote.voter_id == voter_id)
        .order_by(Vote.rank.asc())
        .execution_options(populate_existing=True)
    )).scalars().all())


async def get_ballot(session: AsyncSession, league: League, user_id: UUID, now: datetime) -> Ballot:
    prompt = await current_prompt(session, league.id, (VOTING,))
    ballot = Ballot(prompt=prompt, votes_per_player=league.votes_per_player)
    if prompt is None:
        return ballot
    responses = (await session.execute(
        select(Response)
        .where(Response.prompt_id == prompt.id, Response.is_published.is_(True), Response.user_id != user_id)
        .order_by(Response.submitted_at.asc(), Response.id.asc())
    )).scalars().all()
    ballot.responses = voting_order(responses, user_id, prompt.id)
    ballot.my_votes = await _votes_of(session, prompt.id, user_id)
    ballot.voting_open = voting_is_open(prompt, now)
    return ballot


def validate_ballot(entries: list[tuple[UUID, int]], votes_per_player: int) -> None:
    """Shape checks that need no database: 1..N entries, ranks exactly 1..n, distinct responses."""
    if not entries:
        raise VoteRejected("At least one vote is required")
    if len(entries) > votes_per_player:
        raise VoteRejected(f"You can cast at most {votes_per_player} votes")
    response_ids = [rid for rid, _ in entries]
    if len(set(response_ids)) != len(response_ids):
        raise VoteRejected("Each response can only be ranked once")
    ranks = sorted(rank for _, rank in entries)
    if ranks != list(range(1, len(entries) + 1)):
        raise VoteRejected(f"Ranks must be 1..{len(entries)} with no gaps or repeats")


async def cast_votes(
    session: AsyncSession,
    league: League,
    user_id: UUID,
    entries: list[tuple[UUID, int]],
    now: datetime,
) -> list[Vote]:
    """
    Replace the user's ballot for the league's VOTING prompt.

    The membership row lock serialises concurrent ballots from the same
    voter, and the count check after insert guards the ballot size.
    """
    validate_ballot(entries, league.votes_per_player)
    try:
        membership = await session.scalar(
            select(LeagueMembership)
            .where(
                LeagueMembership.league_id == league.id,
                LeagueMembership.user_id == user_id,
                LeagueMembership.is_active.is_(True),
            )
            .with_for_update()
        )
        if membership is None:
            raise Forbidden("Not a member of this league")

        prompt = await current_prompt(session, league.id, (VOTING,))
        if not voting_is_open(prompt, now):
            raise VoteRejected("Voting is not open for this league")

        response_ids = [rid for rid, _ in entries]
        found = {
            r.id: r for r in (await session.execute(
                select(Response).where(
                    Response.id.in_(response_ids),
                    Response.prompt_id == prompt.id,
                    Response.is_published.is_(True),
                )
            )).scalars().all()
        }
        if len(found) != len(response_ids):
            raise VoteRejected("Some responses are not part of the current vote")
        if any(r.user_id == user_id for r in found.values()):
            raise VoteRejected("Cannot vote for your own response")

        prompt_responses = select(Response.id).where(Response.prompt_id == prompt.id)
        await session.execute(
            delete(Vote)
            .where(Vote.voter_id == user_id, Vote.response_id.in_(prompt_responses))
            .execution_options(synchronize_session=False)
        )
        votes = [
            Vote(response_id=rid, voter_id=user_id, rank=rank, points=points_for_rank(rank, league.votes_per_player))
            for rid, rank in entries
        ]
        session.add_all(votes)
        await session.flush()

        cast = await session.scalar(
            select(func.count()).select_from(Vote)
            .join(Response, Response.id == Vote.response_id)
            .where(Response.prompt_id == prompt.id, Vote.voter_id == user_id)
        )
        if int(cast or 0) > league.votes_per_player:
            raise VoteRejected(f"You can cast at most {league.votes_per_player} votes")
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    log.info("votes.cast", league_id=str(league.id), prompt_id=str(prompt.id), voter_id=str(user_id), votes=len(votes))
    return sorted(votes, key=lambda v: v.rank)
