from __future__ import annotations
import uuid
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.config import settings
from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user
from challenge_league.league_deps import get_member_league, get_owned_league, http_error
from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.prompt import ACTIVE, VOTING
from challenge_league.models.response import Response
from challenge_league.models.user import User
from challenge_league.schemas.league import LeagueCreate, LeagueUpdate, JoinRequest, LeaguePublic, MemberPublic, StandingRow, SubmissionStats
from challenge_league.schemas.prompt import PromptPublic, TimeRemaining
from challenge_league.schemas.response import CurrentPrompt, RoundSummary, RoundResults, response_public
from challenge_league.services import leagues as league_service
from challenge_league.services import notifications
from challenge_league.services.errors import LeagueError
from challenge_league.services.phases import PhaseSettings, time_until_phase_end, utcnow
from challenge_league.services.prompt_queue import current_prompt, run_league_cycle
from challenge_league.services.standings import league_standings, completed_count, list_rounds, round_results, submission_stats
from challenge_league.services.storage import delete_object
from challenge_league.services.task_queue import enqueue
from challenge_league.jobs.notify import notify_league

router = APIRouter(prefix="/leagues", tags=["leagues"])
log = structlog.get_logger()

async def hydrate_public(session: AsyncSession, league: League, user_id) -> LeaguePublic:
    return LeaguePublic(
        id=league.id, owner_id=league.owner_id, name=league.name, description=league.description,
        invite_code=league.invite_code,
        submission_days=league.submission_days, voting_days=league.voting_days,
        votes_per_player=league.votes_per_player,
        is_started=league.is_started, is_active=league.is_active, created_at=league.created_at,
        member_count=await league_service.member_count(session, league.id),
        is_owner=(league.owner_id == user_id),
    )

@router.post("", response_model=LeaguePublic, status_code=201)
async def create_league(payload: LeagueCreate, session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    owner_id = user.id
    try:
        league = await league_service.create_league(
            session, owner_id, payload.name, payload.description,
            payload.submission_days, payload.voting_days, payload.votes_per_player,
        )
    except LeagueError:
        raise HTTPException(status_code=500, detail="Failed to generate unique invite code")
    return await hydrate_public(session, league, owner_id)

@router.get("/mine", response_model=list[LeaguePublic])
async def list_my_leagues(session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    q = (
        select(League)
        .join(LeagueMembership, LeagueMembership.league_id == League.id)
        .where(LeagueMembership.user_id == user.id, LeagueMembership.is_active.is_(True), League.is_active.is_(True))
        .order_by(League.created_at.desc())
    )
    rows = (await session.execute(q)).scalars().all()
    return [await hydrate_public(session, league, user.id) for league in rows]

@router.post("/join", response_model=LeaguePublic)
async def join_by_code(payload: JoinRequest, session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    try:
        league = await league_service.join_league(session, user.id, payload.invite_code)
    except LeagueError as e:
        raise http_error(e)
    return await hydrate_public(session, league, user.id)

@router.get("/{league_id}", response_model=LeaguePublic)
async def get_league(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    return await hydrate_public(session, league, user.id)

@router.patch("/{league_id}", response_model=LeaguePublic)
async def update_league(
    payload: LeagueUpdate,
    league: League = Depends(get_owned_league),
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
):
    user_id = user.id
    try:
        league = await league_service.update_league(session, league, payload.model_dump(exclude_unset=True))
    except LeagueError as e:
        raise http_error(e)
    return await hydrate_public(session, league, user_id)

@router.delete("/{league_id}", status_code=204)
async def delete_league(league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session)):
    keys = await league_service.delete_league(session, league)
    for key in keys:
        delete_object(key)

@router.post("/{league_id}/start", response_model=LeaguePublic)
async def start_league(league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    try:
        league = await league_service.start_league(session, league)
    except LeagueError as e:
        raise http_error(e)
    league_id, user_id = league.id, user.id
    enqueue(notify_league, str(league_id), notifications.LEAGUE_STARTED, None, str(user_id))
    try:
        await run_league_cycle(session, league_id)
    except Exception:
        # The start is committed; the cron sweep activates the first prompt
        log.exception("prompt_queue.lazy_failed", league_id=str(league_id))
        await session.refresh(league)
    return await hydrate_public(session, league, user_id)

@router.post("/{league_id}/leave", status_code=204)
async def leave_league(league_id: uuid.UUID, session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    league = await session.get(League, league_id)
    if not league or not league.is_active:
        raise HTTPException(status_code=404, detail="League not found")
    try:
        keys = await league_service.leave_league(session, league, user.id)
    except LeagueError as e:
        raise http_error(e)
    for key in keys:
        delete_object(key)

@router.get("/{league_id}/members", response_model=list[MemberPublic])
async def list_members(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session)):
    q = (
        select(User.id, User.username, LeagueMembership.joined_at)
        .join(LeagueMembership, LeagueMembership.user_id == User.id)
        .where(LeagueMembership.league_id == league.id, LeagueMembership.is_active.is_(True))
        .order_by(LeagueMembership.joined_at.asc())
    )
    rows = (await session.execute(q)).all()
    return [
        MemberPublic(user_id=uid, username=uname, joined_at=joined_at, is_owner=(uid == league.owner_id))
        for (uid, uname, joined_at) in rows
    ]

@router.get("/{league_id}/standings", response_model=list[StandingRow])
async def standings(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session)):
    rows = await league_standings(session, league.id)
    return [StandingRow(**vars(s)) for s in rows]

@router.get("/{league_id}/prompt", response_model=CurrentPrompt)
async def get_current_prompt(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    """
    The league's ACTIVE or VOTING prompt. Due transitions for this league are
    applied first, so a read after a deadline already sees the next phase.
    """
    now = utcnow()
    league_id, user_id, username = league.id, user.id, user.username
    phase_settings = PhaseSettings.from_league(league)
    if settings.lazy_queue_on_read:
        try:
            await run_league_cycle(session, league_id, now)
        except Exception:
            # Serve the current state; the cron sweep retries the transition
            log.exception("prompt_queue.lazy_failed", league_id=str(league_id))

    prompt = await current_prompt(session, league_id, (ACTIVE, VOTING))
    number = await completed_count(session, league_id) + 1
    if prompt is None:
        return CurrentPrompt(prompt=None, challenge_number=number)

    mine = await session.scalar(
        select(Response).where(Response.prompt_id == prompt.id, Response.user_id == user_id)
    )
    return CurrentPrompt(
        prompt=PromptPublic.model_validate(prompt, from_attributes=True),
        challenge_number=number,
        time_remaining=TimeRemaining(**time_until_phase_end(prompt, phase_settings, now)),
        my_response=response_public(mine, username) if mine else None,
    )

@router.get("/{league_id}/rounds", response_model=list[RoundSummary])
async def rounds(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session)):
    rows = await list_rounds(session, league.id)
    return [
        RoundSummary(prompt=PromptPublic.model_validate(p, from_attributes=True), response_count=n)
        for p, n in rows
    ]

@router.get("/{league_id}/rounds/{prompt_id}", response_model=RoundResults)
async def round_detail(prompt_id: uuid.UUID, league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session)):
    try:
        prompt, rows = await round_results(session, league.id, prompt_id)
    except LeagueError as e:
        raise http_error(e)
    return RoundResults(
        prompt=PromptPublic.model_validate(prompt, from_attributes=True),
        responses=[response_public(r, username) for r, username in rows],
    )

@router.get("/{league_id}/submission-stats", response_model=SubmissionStats)
async def get_submission_stats(league: League = Depends(get_member_league), session: AsyncSession = Depends(get_session)):
    """Submission progress on the ACTIVE prompt; responses stay hidden until voting."""
    stats = await submission_stats(session, league.id)
    return SubmissionStats.model_validate(stats, from_attributes=True)
