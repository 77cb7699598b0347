from __future__ import annotations
import uuid
from fastapi import Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user
from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.user import User
from challenge_league.services.errors import LeagueError

def http_error(e: LeagueError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail)

async def _get_league(session: AsyncSession, league_id: uuid.UUID) -> League:
    league = await session.get(League, league_id)
    if not league or not league.is_active:
        raise HTTPException(status_code=404, detail="League not found")
    return league

async def get_member_league(
    league_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> League:
    """League the caller is an active member of (404 if missing, 403 if not a member)."""
    league = await _get_league(session, league_id)
    is_member = await session.scalar(
        select(LeagueMembership.id).where(
            LeagueMembership.league_id == league.id,
            LeagueMembership.user_id == user.id,
            LeagueMembership.is_active.is_(True),
        )
    )
    if not is_member:
        raise HTTPException(status_code=403, detail="Not a member of this league")
    return league

async def get_owned_league(
    league_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> League:
    league = await _get_league(session, league_id)
    if league.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Only the league owner can do this")
    return league
