"""
Prompt cycle engine.

Each league runs one prompt at a time through
SCHEDULED -> ACTIVE -> VOTING -> COMPLETED. Every status change is a single
UPDATE guarded by the status the caller observed, and the league row is locked
for the duration of a league's transaction, so overlapping sweeps (cron job,
lazy reads, owner actions) cannot double-activate or double-complete a prompt.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy import select, update, delete, func, exists
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from challenge_league.models.league import League
from challenge_league.models.prompt import Prompt, SCHEDULED, ACTIVE, VOTING, COMPLETED
from challenge_league.models.response import Response
from challenge_league.models.vote import Vote
from challenge_league.services import notifications
from challenge_league.services.errors import NotFound, InvalidTransition, QueueValidationError
from challenge_league.services.phases import as_utc, phase_deadlines, utcnow
from challenge_league.services.scoring import rank_responses
from challenge_league.services.task_queue import enqueue
from challenge_league.jobs.notify import notify_league

log = structlog.get_logger()

_NOTIFY_ON = {
    ACTIVE: notifications.NEW_PROMPT,
    VOTING: notifications.VOTING_AVAILABLE,
    COMPLETED: notifications.RESULTS_AVAILABLE,
}


@dataclass
class PhaseChange:
    league_id: UUID
    prompt_id: UUID
    from_status: str
    to_status: str
    at: datetime

    def as_dict(self) -> dict:
        return {
            "league_id": str(self.league_id),
            "prompt_id": str(self.prompt_id),
            "from_status": self.from_status,
            "to_status": self.to_status,
            "at": self.at.isoformat(),
        }


# ---------- reads ----------

async def lock_league(session: AsyncSession, league_id: UUID) -> League | None:
    return await session.scalar(
        select(League)
        .where(League.id == league_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def current_prompt(session: AsyncSession, league_id: UUID, statuses: Iterable[str] = (ACTIVE, VOTING)) -> Prompt | None:
    """The league's in-flight prompt, derived from status rather than stored on the league."""
    return await session.scalar(
        select(Prompt)
        .where(Prompt.league_id == league_id, Prompt.status.in_(tuple(statuses)))
        .order_by(Prompt.phase_started_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )


async def get_queue(session: AsyncSession, league_id: UUID) -> dict[str, list[Prompt]]:
    rows = (await session.execute(
        select(Prompt)
        .where(Prompt.league_id == league_id)
        .order_by(Prompt.queue_order.asc(), Prompt.created_at.asc())
        .execution_options(populate_existing=True)
    )).scalars().all()
    queue: dict[str, list[Prompt]] = {"active": [], "voting": [], "scheduled": [], "completed": []}
    for p in rows:
        queue[p.status.lower()].append(p)
    queue["completed"].sort(key=lambda p: as_utc(p.vote_end) or as_utc(p.created_at), reverse=True)
    return queue


def _deadline_passed(deadline: datetime | None, now: datetime) -> bool:
    end = as_utc(deadline)
    return end is not None and end <= now


# ---------- guarded transitions ----------

async def close_submissions(session: AsyncSession, league: League, prompt: Prompt, now: datetime) -> PhaseChange | None:
    """ACTIVE -> VOTING: publish every response and open the voting window."""
    vote_start, vote_end = phase_deadlines(VOTING, league, now)
    res = await session.execute(
        update(Prompt)
        .where(Prompt.id == prompt.id, Prompt.status == ACTIVE)
        .values(status=VOTING, phase_started_at=now, vote_start=vote_start, vote_end=vote_end)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None
    published = await session.execute(
        update(Response)
        .where(Response.prompt_id == prompt.id)
        .values(is_published=True, published_at=now)
        .execution_options(synchronize_session=False)
    )
    log.info("prompt.voting_started", league_id=str(league.id), prompt_id=str(prompt.id),
             responses=published.rowcount, vote_end=vote_end.isoformat())
    return PhaseChange(league.id, prompt.id, ACTIVE, VOTING, now)


async def apply_scoring(session: AsyncSession, prompt_id: UUID) -> int:
    """Write total_points and final_rank on every published response of a prompt."""
    responses = (await session.execute(
        select(Response.id, Response.submitted_at)
        .where(Response.prompt_id == prompt_id, Response.is_published.is_(True))
    )).all()
    votes = (await session.execute(
        select(Vote.response_id, Vote.rank, Vote.points)
        .join(Response, Response.id == Vote.response_id)
        .where(Response.prompt_id == prompt_id, Response.is_published.is_(True))
    )).all()
    scored = rank_responses(
        [(rid, as_utc(at)) for rid, at in responses],
        [(rid, rank, points) for rid, rank, points in votes],
    )
    for row in scored:
        await session.execute(
            update(Response)
            .where(Response.id == row.response_id)
            .values(total_points=row.total_points, final_rank=row.final_rank)
            .execution_options(synchronize_session=False)
        )
    return len(scored)


async def complete_voting(session: AsyncSession, league: League, prompt: Prompt, now: datetime) -> PhaseChange | None:
    """VOTING -> COMPLETED; the status flip and the scores land in the same transaction."""
    res = await session.execute(
        update(Prompt)
        .where(Prompt.id == prompt.id, Prompt.status == VOTING)
        .values(status=COMPLETED, phase_started_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None
    ranked = await apply_scoring(session, prompt.id)
    log.info("prompt.completed", league_id=str(league.id), prompt_id=str(prompt.id), ranked=ranked)
    return PhaseChange(league.id, prompt.id, VOTING, COMPLETED, now)


async def _close_gap(session: AsyncSession, league_id: UUID, after_order: int) -> None:
    await session.execute(
        update(Prompt)
        .where(Prompt.league_id == league_id, Prompt.status == SCHEDULED, Prompt.queue_order > after_order)
        .values(queue_order=Prompt.queue_order - 1)
        .execution_options(synchronize_session=False)
    )


async def activate_next(session: AsyncSession, league: League, now: datetime) -> PhaseChange | None:
    """SCHEDULED -> ACTIVE for the head of the queue, when the league is idle and started."""
    if not league.is_started:
        return None
    busy = await session.scalar(
        select(exists().where(Prompt.league_id == league.id, Prompt.status.in_((ACTIVE, VOTING))))
    )
    if busy:
        return None
    nxt = await session.scalar(
        select(Prompt)
        .where(Prompt.league_id == league.id, Prompt.status == SCHEDULED)
        .order_by(Prompt.queue_order.asc(), Prompt.created_at.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    if nxt is None:
        return None

    week_start, week_end = phase_deadlines(ACTIVE, league, now)
    inflight = aliased(Prompt)
    res = await session.execute(
        update(Prompt)
        .where(
            Prompt.id == nxt.id,
            Prompt.status == SCHEDULED,
            ~exists().where(inflight.league_id == league.id, inflight.status.in_((ACTIVE, VOTING))),
        )
        .values(status=ACTIVE, phase_started_at=now, week_start=week_start, week_end=week_end, queue_order=0)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None
    await _close_gap(session, league.id, nxt.queue_order)
    log.info("prompt.activated", league_id=str(league.id), prompt_id=str(nxt.id), week_end=week_end.isoformat())
    return PhaseChange(league.id, nxt.id, SCHEDULED, ACTIVE, now)


# ---------- per-league cycle ----------

async def process_league(session: AsyncSession, league_id: UUID, now: datetime) -> list[PhaseChange]:
    """Apply every due transition for one league. The caller owns the transaction."""
    league = await lock_league(session, league_id)
    if league is None or not league.is_active:
        return []
    changes: list[PhaseChange] = []

    active = await current_prompt(session, league.id, (ACTIVE,))
    if active is not None and _deadline_passed(active.week_end, now):
        change = await close_submissions(session, league, active, now)
        if change:
            changes.append(change)

    voting = await current_prompt(session, league.id, (VOTING,))
    if voting is not None and _deadline_passed(voting.vote_end, now):
        change = await complete_voting(session, league, voting, now)
        if change:
            changes.append(change)

    change = await activate_next(session, league, now)
    if change:
        changes.append(change)
    return changes


def dispatch_notifications(changes: Iterable[PhaseChange]) -> None:
    for c in changes:
        kind = _NOTIFY_ON.get(c.to_status)
        if kind:
            enqueue(notify_league, str(c.league_id), kind, str(c.prompt_id))


async def run_league_cycle(session: AsyncSession, league_id: UUID, now: datetime | None = None) -> list[PhaseChange]:
    """process_league in its own transaction; notifications go out only after commit."""
    now = now or utcnow()
    try:
        changes = await process_league(session, league_id, now)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    dispatch_notifications(changes)
    return changes


async def process_prompt_queue(session: AsyncSession, now: datetime | None = None) -> dict:
    """
    Sweep every active league. A failure in one league is rolled back and
    logged; the remaining leagues are still processed and the failed one is
    picked up again by the next sweep since its state is unchanged.
    """
    now = now or utcnow()
    league_ids = (await session.execute(
        select(League.id).where(League.is_active.is_(True)).order_by(League.created_at.asc())
    )).scalars().all()
    await session.commit()

    changes: list[PhaseChange] = []
    errors: list[dict] = []
    for league_id in league_ids:
        try:
            changes.extend(await run_league_cycle(session, league_id, now))
        except Exception as exc:
            log.exception("prompt_queue.league_failed", league_id=str(league_id))
            errors.append({"league_id": str(league_id), "error": str(exc) or exc.__class__.__name__})

    log.info("prompt_queue.processed", leagues=len(league_ids), changes=len(changes), errors=len(errors))
    return {
        "processed": len(league_ids),
        "changes": [c.as_dict() for c in changes],
        "errors": errors,
        "timestamp": now.isoformat(),
    }


async def manual_transition(session: AsyncSession, league_id: UUID, now: datetime | None = None) -> list[PhaseChange]:
    """
    Owner-triggered step of the same state machine: force ACTIVE -> VOTING, or
    VOTING -> COMPLETED followed by activation of the next queued prompt.
    """
    now = now or utcnow()
    try:
        league = await lock_league(session, league_id)
        if league is None:
            raise NotFound("League not found")

        changes: list[PhaseChange] = []
        active = await current_prompt(session, league.id, (ACTIVE,))
        if active is not None:
            change = await close_submissions(session, league, active, now)
            if change is None:
                raise InvalidTransition("Prompt changed phase concurrently; refresh and retry")
            changes.append(change)
        else:
            voting = await current_prompt(session, league.id, (VOTING,))
            if voting is None:
                raise InvalidTransition("No active or voting prompt to transition")
            change = await complete_voting(session, league, voting, now)
            if change is None:
                raise InvalidTransition("Prompt changed phase concurrently; refresh and retry")
            changes.append(change)
            nxt = await activate_next(session, league, now)
            if nxt:
                changes.append(nxt)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    log.info("prompt.manual_transition", league_id=str(league_id), changes=[c.as_dict() for c in changes])
    dispatch_notifications(changes)
    return changes


# ---------- queue management ----------

async def _scheduled_prompt(session: AsyncSession, league_id: UUID, prompt_id: UUID) -> Prompt:
    prompt = await session.scalar(
        select(Prompt).where(Prompt.id == prompt_id).execution_options(populate_existing=True)
    )
    if prompt is None:
        raise NotFound("Prompt not found")
    if prompt.league_id != league_id:
        raise QueueValidationError("Prompt does not belong to this league")
    if prompt.status != SCHEDULED:
        raise QueueValidationError("Can only modify scheduled prompts")
    return prompt


async def create_prompt(session: AsyncSession, league_id: UUID, text: str) -> Prompt:
    text = (text or "").strip()
    if not text:
        raise QueueValidationError("Prompt text is required")
    league = await lock_league(session, league_id)
    if league is None:
        raise NotFound("League not found")
    last = await session.scalar(
        select(func.max(Prompt.queue_order)).where(Prompt.league_id == league_id, Prompt.status == SCHEDULED)
    )
    prompt = Prompt(league_id=league_id, text=text, status=SCHEDULED, queue_order=int(last or 0) + 1)
    session.add(prompt)
    await session.flush()
    return prompt


async def update_prompt_text(session: AsyncSession, league_id: UUID, prompt_id: UUID, text: str) -> Prompt:
    text = (text or "").strip()
    if not text:
        raise QueueValidationError("Prompt text is required")
    prompt = await _scheduled_prompt(session, league_id, prompt_id)
    prompt.text = text
    await session.flush()
    return prompt


async def delete_scheduled_prompt(session: AsyncSession, league_id: UUID, prompt_id: UUID) -> None:
    if await lock_league(session, league_id) is None:
        raise NotFound("League not found")
    prompt = await _scheduled_prompt(session, league_id, prompt_id)
    removed_order = prompt.queue_order
    res = await session.execute(
        delete(Prompt)
        .where(Prompt.id == prompt.id, Prompt.status == SCHEDULED)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise InvalidTransition("Prompt is no longer scheduled")
    session.expunge(prompt)
    await _close_gap(session, league_id, removed_order)


async def reorder_queue(session: AsyncSession, league_id: UUID, prompt_ids: list[UUID]) -> list[Prompt]:
    """Rewrite queue_order to match the given list (1-based)."""
    if not prompt_ids:
        raise QueueValidationError("promptIds array is required")
    if len(set(prompt_ids)) != len(prompt_ids):
        raise QueueValidationError("promptIds must not contain duplicates")
    if await lock_league(session, league_id) is None:
        raise NotFound("League not found")

    scheduled = {
        p.id: p for p in (await session.execute(
            select(Prompt)
            .where(Prompt.league_id == league_id, Prompt.status == SCHEDULED)
            .execution_options(populate_existing=True)
        )).scalars().all()
    }
    unknown = [pid for pid in prompt_ids if pid not in scheduled]
    if unknown:
        raise QueueValidationError(
            "Some prompts not found or not schedulable (only queued prompts of this league can be reordered)"
        )
    if len(prompt_ids) != len(scheduled):
        raise QueueValidationError("Reorder must include every scheduled prompt in the league")

    ordered = []
    for position, pid in enumerate(prompt_ids, start=1):
        prompt = scheduled[pid]
        prompt.queue_order = position
        ordered.append(prompt)
    await session.flush()
    log.info("prompt_queue.reordered", league_id=str(league_id), order=[str(pid) for pid in prompt_ids])
    return ordered
