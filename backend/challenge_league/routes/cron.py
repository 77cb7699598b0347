from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import get_session
from challenge_league.auth_deps import require_cron_secret
from challenge_league.services.prompt_queue import process_prompt_queue

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])

@router.get("/prompt-cycle")
@router.post("/prompt-cycle")
async def prompt_cycle(session: AsyncSession = Depends(get_session)):
    """Run one sweep of the prompt queue across all leagues (scheduler calls this)."""
    result = await process_prompt_queue(session)
    return {"success": True, **result}
