from __future__ import annotations
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import dialect_name
from challenge_league.models.league import League, LeagueMembership
from challenge_league.models.prompt import Prompt, ACTIVE
from challenge_league.models.response import Response
from challenge_league.services.errors import Forbidden, SubmissionClosed
from challenge_league.services.phases import as_utc
from challenge_league.services.prompt_queue import current_prompt, lock_league

_INSERT = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


async def active_membership(session: AsyncSession, league_id: UUID, user_id: UUID) -> LeagueMembership | None:
    return await session.scalar(
        select(LeagueMembership).where(
            LeagueMembership.league_id == league_id,
            LeagueMembership.user_id == user_id,
            LeagueMembership.is_active.is_(True),
        )
    )


async def open_prompt_for_submission(session: AsyncSession, league: League, user_id: UUID, now: datetime) -> Prompt:
    if await active_membership(session, league.id, user_id) is None:
        raise Forbidden("Not a member of this league")
    prompt = await current_prompt(session, league.id, (ACTIVE,))
    if prompt is None:
        raise SubmissionClosed("No active prompt accepting submissions")
    end = as_utc(prompt.week_end)
    if end is None or end <= now:
        raise SubmissionClosed("Submission window has closed")
    return prompt


def old_photo_warning(photo_taken_at: datetime | None, prompt: Prompt) -> str | None:
    taken = as_utc(photo_taken_at)
    started = as_utc(prompt.week_start)
    if taken is None or started is None or taken >= started:
        return None
    return f"This photo was taken on {taken.date().isoformat()}, before this challenge started."


async def upsert_response(
    session: AsyncSession,
    prompt: Prompt,
    user_id: UUID,
    *,
    caption: str,
    storage_key: str,
    mime_type: str,
    photo_taken_at: datetime | None,
    now: datetime,
) -> tuple[Response, str | None]:
    """
    Insert or replace the user's response to `prompt`, keyed by (user_id, prompt_id).
    Returns the stored row and the storage key of the image it replaced, if any.

    The league row is locked and the prompt re-read first, so a sweep that
    closed submissions after the caller's check wins and nothing is written.
    A published response is never overwritten.
    """
    await lock_league(session, prompt.league_id)
    status, week_end = (await session.execute(
        select(Prompt.status, Prompt.week_end).where(Prompt.id == prompt.id)
    )).one_or_none() or (None, None)
    end = as_utc(week_end)
    if status != ACTIVE or end is None or end <= now:
        raise SubmissionClosed("Submission window has closed")

    previous_key = await session.scalar(
        select(Response.storage_key).where(Response.prompt_id == prompt.id, Response.user_id == user_id)
    )
    values = {
        "caption": caption,
        "storage_key": storage_key,
        "mime_type": mime_type,
        "photo_taken_at": photo_taken_at,
        "submitted_at": now,
    }
    insert = _INSERT[dialect_name(session)]
    stmt = insert(Response).values(prompt_id=prompt.id, user_id=user_id, is_published=False, total_points=0, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "prompt_id"],
        set_={k: getattr(stmt.excluded, k) for k in values},
        where=Response.is_published.is_(False),
    )
    res = await session.execute(stmt)
    if res.rowcount != 1:
        raise SubmissionClosed("Response is already published")
    row = await session.scalar(
        select(Response)
        .where(Response.prompt_id == prompt.id, Response.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return row, (previous_key if previous_key != storage_key else None)
