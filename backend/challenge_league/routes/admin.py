from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import get_session
from challenge_league.league_deps import get_owned_league, http_error
from challenge_league.models.league import League
from challenge_league.models.prompt import ACTIVE, VOTING
from challenge_league.schemas.prompt import (
    PromptCreate, PromptUpdate, ReorderRequest, PromptPublic, PromptQueue, PhaseChangeOut, TransitionResult,
)
from challenge_league.services import prompt_queue
from challenge_league.services.errors import LeagueError

router = APIRouter(prefix="/leagues/{league_id}/admin", tags=["admin"])

def _pub(p) -> PromptPublic:
    return PromptPublic.model_validate(p, from_attributes=True)

@router.get("/prompts", response_model=PromptQueue)
async def list_prompts(league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session)):
    queue = await prompt_queue.get_queue(session, league.id)
    return PromptQueue(**{status: [_pub(p) for p in rows] for status, rows in queue.items()})

@router.post("/prompts", response_model=PromptPublic, status_code=201)
async def create_prompt(payload: PromptCreate, league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session)):
    try:
        prompt = await prompt_queue.create_prompt(session, league.id, payload.text)
        await session.commit()
        await session.refresh(prompt)
    except LeagueError as e:
        await session.rollback()
        raise http_error(e)
    return _pub(prompt)

@router.post("/prompts/reorder", response_model=list[PromptPublic])
async def reorder_prompts(payload: ReorderRequest, league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session)):
    try:
        ordered = await prompt_queue.reorder_queue(session, league.id, payload.prompt_ids)
        await session.commit()
    except LeagueError as e:
        await session.rollback()
        raise http_error(e)
    return [_pub(p) for p in ordered]

@router.patch("/prompts/{prompt_id}", response_model=PromptPublic)
async def update_prompt(
    prompt_id: uuid.UUID,
    payload: PromptUpdate,
    league: League = Depends(get_owned_league),
    session: AsyncSession = Depends(get_session),
):
    try:
        prompt = await prompt_queue.update_prompt_text(session, league.id, prompt_id, payload.text)
        await session.commit()
    except LeagueError as e:
        await session.rollback()
        raise http_error(e)
    return _pub(prompt)

@router.delete("/prompts/{prompt_id}", status_code=204)
async def delete_prompt(prompt_id: uuid.UUID, league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session)):
    try:
        await prompt_queue.delete_scheduled_prompt(session, league.id, prompt_id)
        await session.commit()
    except LeagueError as e:
        await session.rollback()
        raise http_error(e)

@router.post("/transition-phase", response_model=TransitionResult)
async def transition_phase(league: League = Depends(get_owned_league), session: AsyncSession = Depends(get_session)):
    """Advance the league's current prompt one phase now, as if its deadline had passed."""
    league_id = league.id
    try:
        changes = await prompt_queue.manual_transition(session, league_id)
    except LeagueError as e:
        raise http_error(e)
    current = await prompt_queue.current_prompt(session, league_id, (ACTIVE, VOTING))
    return TransitionResult(
        changes=[PhaseChangeOut(**c.as_dict()) for c in changes],
        current=_pub(current) if current else None,
    )
