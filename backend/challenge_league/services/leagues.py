from __future__ import annotations
from uuid import UUID

import structlog
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.models.comment import Comment
from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.notification import Notification
from challenge_league.models.prompt import Prompt, VOTING
from challenge_league.models.response import Response
from challenge_league.models.vote import Vote
from challenge_league.services.errors import LeagueError, NotFound, Forbidden
from challenge_league.services.invite_code import generate_code, normalize_code
from challenge_league.services.prompt_queue import current_prompt, lock_league

log = structlog.get_logger()


async def create_league(
    session: AsyncSession,
    owner_id: UUID,
    name: str,
    description: str | None,
    submission_days: int,
    voting_days: int,
    votes_per_player: int,
) -> League:
    """Create a league with a fresh invite code; the owner becomes its first member."""
    # Retry on invite code collision
    for _ in range(5):
        league = League(
            owner_id=owner_id,
            name=name.strip(),
            description=description,
            invite_code=generate_code(),
            submission_days=submission_days,
            voting_days=voting_days,
            votes_per_player=votes_per_player,
        )
        session.add(league)
        try:
            await session.flush()
            session.add(LeagueMembership(league_id=league.id, user_id=owner_id))
            await session.commit()
        except IntegrityError:
            await session.rollback()
            continue
        await session.refresh(league)
        log.info("league.created", league_id=str(league.id), owner_id=str(owner_id))
        return league
    raise LeagueError("Failed to generate unique invite code")


async def join_league(session: AsyncSession, user_id: UUID, invite_code: str) -> League:
    league = await session.scalar(
        select(League).where(League.invite_code == normalize_code(invite_code), League.is_active.is_(True))
    )
    if league is None:
        raise NotFound("Invalid invite code")
    membership = await session.scalar(
        select(LeagueMembership).where(LeagueMembership.league_id == league.id, LeagueMembership.user_id == user_id)
    )
    if membership is not None and membership.is_active:
        raise LeagueError("Already a member of this league")
    if membership is not None:
        membership.is_active = True
    else:
        session.add(LeagueMembership(league_id=league.id, user_id=user_id))
    try:
        await session.commit()
    except IntegrityError:
        # Concurrent join by the same user
        await session.rollback()
        raise LeagueError("Already a member of this league")
    log.info("league.joined", league_id=str(league.id), user_id=str(user_id))
    return league


def _league_responses(league_id: UUID, user_id: UUID | None = None):
    q = select(Response.id).join(Prompt, Prompt.id == Response.prompt_id).where(Prompt.league_id == league_id)
    if user_id is not None:
        q = q.where(Response.user_id == user_id)
    return q


async def leave_league(session: AsyncSession, league: League, user_id: UUID) -> list[str]:
    """
    Deactivate the membership and remove the member's responses along with
    the votes and comments they received. Returns storage keys of the removed images.
    """
    if league.owner_id == user_id:
        raise Forbidden("League owners cannot leave their own league")
    membership = await session.scalar(
        select(LeagueMembership).where(
            LeagueMembership.league_id == league.id,
            LeagueMembership.user_id == user_id,
            LeagueMembership.is_active.is_(True),
        )
    )
    if membership is None:
        raise LeagueError("You are not a member of this league")
    try:
        keys = (await session.execute(
            select(Response.storage_key).where(Response.id.in_(_league_responses(league.id, user_id)))
        )).scalars().all()
        await session.execute(
            delete(Comment).where(Comment.response_id.in_(_league_responses(league.id, user_id)))
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(Vote).where(Vote.response_id.in_(_league_responses(league.id, user_id)))
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(Response).where(Response.id.in_(_league_responses(league.id, user_id)))
            .execution_options(synchronize_session=False)
        )
        membership.is_active = False
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    log.info("league.left", league_id=str(league.id), user_id=str(user_id), responses_removed=len(keys))
    return [k for k in keys if k]


async def delete_league(session: AsyncSession, league: League) -> list[str]:
    """Remove the league and everything under it. Returns storage keys of the removed images."""
    league_id = league.id
    try:
        keys = (await session.execute(
            select(Response.storage_key).where(Response.id.in_(_league_responses(league_id)))
        )).scalars().all()
        await session.execute(
            delete(Comment).where(Comment.response_id.in_(_league_responses(league_id)))
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(Vote).where(Vote.response_id.in_(_league_responses(league_id)))
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(Response).where(Response.id.in_(_league_responses(league_id)))
            .execution_options(synchronize_session=False)
        )
        for model in (Prompt, LeagueMembership, Notification):
            await session.execute(
                delete(model).where(model.league_id == league_id).execution_options(synchronize_session=False)
            )
        await session.delete(league)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    log.info("league.deleted", league_id=str(league_id), images=len(keys))
    return [k for k in keys if k]


async def start_league(session: AsyncSession, league: League) -> League:
    res = await session.execute(
        update(League)
        .where(League.id == league.id, League.is_started.is_(False))
        .values(is_started=True)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await session.rollback()
        raise LeagueError("League is already started")
    await session.commit()
    await session.refresh(league)
    log.info("league.started", league_id=str(league.id))
    return league


async def update_league(session: AsyncSession, league: League, changes: dict) -> League:
    """
    Apply owner edits. Phase lengths only affect phases that start later, since
    running deadlines are stored on the prompt. The ballot size cannot change
    while a prompt is in VOTING: cast ballots and the point curve depend on it.
    """
    league_id = league.id
    try:
        league = await lock_league(session, league_id)
        new_limit = changes.get("votes_per_player")
        if new_limit is not None and new_limit != league.votes_per_player:
            if await current_prompt(session, league_id, (VOTING,)) is not None:
                raise LeagueError("Votes per player cannot change while voting is open")
        _apply_changes(league, changes)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(league)
    log.info("league.updated", league_id=str(league_id), fields=sorted(k for k, v in changes.items() if v is not None))
    return league


def _apply_changes(league: League, changes: dict) -> None:
    for field in ("name", "description", "submission_days", "voting_days", "votes_per_player"):
        if field in changes and changes[field] is not None:
            value = changes[field].strip() if field == "name" else changes[field]
            setattr(league, field, value)


async def member_count(session: AsyncSession, league_id: UUID) -> int:
    return int(await session.scalar(
        select(func.count()).select_from(LeagueMembership)
        .where(LeagueMembership.league_id == league_id, LeagueMembership.is_active.is_(True))
    ) or 0)
