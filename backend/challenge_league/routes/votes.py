from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user
from challenge_league.league_deps import get_member_league, http_error
from challenge_league.models.league import League
from challenge_league.schemas.prompt import PromptPublic
from challenge_league.schemas.response import response_public
from challenge_league.schemas.vote import BallotSubmit, BallotPublic, VotePublic
from challenge_league.services.errors import LeagueError
from challenge_league.services.phases import utcnow
from challenge_league.services.voting import get_ballot, cast_votes

router = APIRouter(prefix="/leagues", tags=["votes"])

async def _ballot_public(session: AsyncSession, league: League, user_id) -> BallotPublic:
    ballot = await get_ballot(session, league, user_id, utcnow())
    # Voting is anonymous: responses carry no username
    return BallotPublic(
        prompt=PromptPublic.model_validate(ballot.prompt, from_attributes=True) if ballot.prompt else None,
        responses=[response_public(r) for r in ballot.responses],
        my_votes=[VotePublic(response_id=v.response_id, rank=v.rank, points=v.points) for v in ballot.my_votes],
        votes_per_player=ballot.votes_per_player,
        voting_open=ballot.voting_open,
    )

@router.get("/{league_id}/voting", response_model=BallotPublic)
async def voting_ballot(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    return await _ballot_public(session, league, user.id)

@router.post("/{league_id}/votes", response_model=BallotPublic)
async def submit_votes(
    payload: BallotSubmit,
    league: League = Depends(get_member_league),
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
):
    league_id, user_id = league.id, user.id
    entries = [(v.response_id, v.rank) for v in payload.votes]
    try:
        await cast_votes(session, league, user_id, entries, utcnow())
    except LeagueError as e:
        raise http_error(e)
    league = await session.get(League, league_id)
    return await _ballot_public(session, league, user_id)
