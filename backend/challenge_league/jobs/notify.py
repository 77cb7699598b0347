from __future__ import annotations
import asyncio
from uuid import UUID
import structlog
from challenge_league.db import SessionLocal
from challenge_league.services.notifications import notify_league_members

log = structlog.get_logger()

async def _run(league_id: str, kind: str, prompt_id: str | None, exclude_user_id: str | None) -> int:
    async with SessionLocal() as session:
        created = await notify_league_members(
            session,
            UUID(league_id),
            kind,
            prompt_id=UUID(prompt_id) if prompt_id else None,
            exclude_user_id=UUID(exclude_user_id) if exclude_user_id else None,
        )
        await session.commit()
    log.info("notifications.fanned_out", league_id=league_id, kind=kind, prompt_id=prompt_id, recipients=created)
    return created

def notify_league(league_id: str, kind: str, prompt_id: str | None = None, exclude_user_id: str | None = None) -> int:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run(league_id, kind, prompt_id, exclude_user_id))
