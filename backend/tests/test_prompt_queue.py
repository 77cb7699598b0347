from __future__ import annotations
import asyncio
from datetime import timedelta
import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from challenge_league.models.prompt import Prompt, SCHEDULED, ACTIVE, VOTING, COMPLETED
from challenge_league.models.response import Response
from challenge_league.services import prompt_queue
from challenge_league.services.errors import InvalidTransition
from challenge_league.services.phases import as_utc
from challenge_league.services.voting import cast_votes
from conftest import T0, make_user, make_league, add_prompts


async def _reload(session, prompt_id) -> Prompt:
    return await session.scalar(select(Prompt).where(Prompt.id == prompt_id).execution_options(populate_existing=True))


async def _respond(session, prompt, user, minutes: int) -> Response:
    r = Response(
        prompt_id=prompt.id, user_id=user.id, caption=f"{user.username} photo",
        storage_key=f"responses/{prompt.id}/{user.id}/x.jpg", mime_type="image/jpeg",
        submitted_at=T0 + timedelta(minutes=minutes),
    )
    session.add(r)
    await session.commit()
    return r


@pytest.mark.asyncio
async def test_full_cycle_activate_vote_complete(session):
    owner, alice, bob = await make_user(session, "owner"), await make_user(session, "alice"), await make_user(session, "bob")
    league = await make_league(session, owner, [alice, bob], submission_days=7, voting_days=2, votes_per_player=3)
    p1, p2 = await add_prompts(session, league, "Something blue", "Your breakfast")
    await session.commit()

    changes = await prompt_queue.run_league_cycle(session, league.id, T0)
    assert [(c.prompt_id, c.to_status) for c in changes] == [(p1.id, ACTIVE)]
    p1 = await _reload(session, p1.id)
    assert p1.status == ACTIVE
    assert as_utc(p1.week_start) == T0
    assert as_utc(p1.week_end) == T0 + timedelta(days=7)
    assert (await _reload(session, p2.id)).queue_order == 1

    # Nothing is due yet
    assert await prompt_queue.run_league_cycle(session, league.id, T0 + timedelta(days=6)) == []

    ra = await _respond(session, p1, alice, 1)
    rb = await _respond(session, p1, bob, 2)
    ro = await _respond(session, p1, owner, 3)

    changes = await prompt_queue.run_league_cycle(session, league.id, T0 + timedelta(days=7))
    assert [c.to_status for c in changes] == [VOTING]
    p1 = await _reload(session, p1.id)
    assert p1.status == VOTING
    assert as_utc(p1.vote_end) == T0 + timedelta(days=9)
    published = (await session.execute(
        select(Response.is_published).where(Response.prompt_id == p1.id).execution_options(populate_existing=True)
    )).scalars().all()
    assert published == [True, True, True]

    during_vote = T0 + timedelta(days=8)
    await cast_votes(session, league, owner.id, [(ra.id, 1), (rb.id, 2)], during_vote)
    await cast_votes(session, league, alice.id, [(rb.id, 1), (ro.id, 2)], during_vote)
    await cast_votes(session, league, bob.id, [(ra.id, 1), (ro.id, 2)], during_vote)

    changes = await prompt_queue.run_league_cycle(session, league.id, T0 + timedelta(days=9))
    assert [(c.prompt_id, c.to_status) for c in changes] == [(p1.id, COMPLETED), (p2.id, ACTIVE)]

    results = {
        r.user_id: (r.total_points, r.final_rank)
        for r in (await session.execute(
            select(Response).where(Response.prompt_id == p1.id).execution_options(populate_existing=True)
        )).scalars().all()
    }
    assert results[alice.id] == (6, 1)
    assert results[bob.id] == (5, 2)
    assert results[owner.id] == (4, 3)


@pytest.mark.asyncio
async def test_second_sweep_changes_nothing(session):
    owner = await make_user(session)
    league = await make_league(session, owner)
    await add_prompts(session, league, "One", "Two")
    await session.commit()

    first = await prompt_queue.process_prompt_queue(session, T0)
    second = await prompt_queue.process_prompt_queue(session, T0)
    assert len(first["changes"]) == 1
    assert second["changes"] == []
    assert second["errors"] == []


@pytest.mark.asyncio
async def test_expired_voting_without_queue_leaves_league_idle(session):
    owner = await make_user(session)
    league = await make_league(session, owner)
    (p,) = await add_prompts(session, league, "Only one")
    await session.commit()

    await prompt_queue.run_league_cycle(session, league.id, T0)
    await prompt_queue.run_league_cycle(session, league.id, T0 + timedelta(days=7))
    changes = await prompt_queue.run_league_cycle(session, league.id, T0 + timedelta(days=9))

    assert [c.to_status for c in changes] == [COMPLETED]
    assert (await _reload(session, p.id)).status == COMPLETED
    assert await prompt_queue.current_prompt(session, league.id) is None


@pytest.mark.asyncio
async def test_unstarted_league_does_not_activate(session):
    owner = await make_user(session)
    league = await make_league(session, owner, started=False)
    (p,) = await add_prompts(session, league, "Waiting")
    await session.commit()

    assert await prompt_queue.run_league_cycle(session, league.id, T0) == []
    assert (await _reload(session, p.id)).status == SCHEDULED


@pytest.mark.asyncio
async def test_transitions_only_move_forward(session):
    owner = await make_user(session)
    league = await make_league(session, owner)
    (p,) = await add_prompts(session, league, "Forward")
    await session.commit()

    seen = []
    for day in (0, 3, 7, 8, 9, 12):
        await prompt_queue.run_league_cycle(session, league.id, T0 + timedelta(days=day))
        seen.append((await _reload(session, p.id)).status)
    order = [SCHEDULED, ACTIVE, VOTING, COMPLETED]
    assert [order.index(s) for s in seen] == sorted(order.index(s) for s in seen)
    assert seen[-1] == COMPLETED


@pytest.mark.asyncio
async def test_stale_transition_is_a_no_op(session):
    owner = await make_user(session)
    league = await make_league(session, owner)
    (p,) = await add_prompts(session, league, "Race")
    await session.commit()
    await prompt_queue.run_league_cycle(session, league.id, T0)
    active = await _reload(session, p.id)
    league = await prompt_queue.lock_league(session, league.id)

    first = await prompt_queue.close_submissions(session, league, active, T0 + timedelta(days=7))
    second = await prompt_queue.close_submissions(session, league, active, T0 + timedelta(days=7))
    await session.commit()
    assert first is not None and first.to_status == VOTING
    assert second is None


@pytest.mark.asyncio
async def test_failing_league_does_not_stop_sweep(session, monkeypatch):
    owner = await make_user(session)
    broken = await make_league(session, owner)
    healthy = await make_league(session, owner)
    await add_prompts(session, broken, "Broken")
    (hp,) = await add_prompts(session, healthy, "Healthy")
    await session.commit()
    broken_id, healthy_prompt_id = broken.id, hp.id

    real = prompt_queue.process_league

    async def flaky(s, league_id, now):
        if league_id == broken_id:
            raise RuntimeError("boom")
        return await real(s, league_id, now)

    monkeypatch.setattr(prompt_queue, "process_league", flaky)
    result = await prompt_queue.process_prompt_queue(session, T0)

    assert result["processed"] == 2
    assert result["errors"] == [{"league_id": str(broken_id), "error": "boom"}]
    assert [c["prompt_id"] for c in result["changes"]] == [str(healthy_prompt_id)]


@pytest.mark.asyncio
async def test_manual_transition_steps_through_phases(session):
    owner = await make_user(session)
    league = await make_league(session, owner)
    p1, p2 = await add_prompts(session, league, "First", "Second")
    await session.commit()
    # A rejected transition rolls back and expires loaded rows
    league_id, p1_id, p2_id = league.id, p1.id, p2.id

    with pytest.raises(InvalidTransition):
        await prompt_queue.manual_transition(session, league_id, T0)

    await prompt_queue.run_league_cycle(session, league_id, T0)
    changes = await prompt_queue.manual_transition(session, league_id, T0 + timedelta(hours=1))
    assert [(c.prompt_id, c.to_status) for c in changes] == [(p1_id, VOTING)]

    changes = await prompt_queue.manual_transition(session, league_id, T0 + timedelta(hours=2))
    assert [(c.prompt_id, c.to_status) for c in changes] == [(p1_id, COMPLETED), (p2_id, ACTIVE)]
    assert as_utc((await _reload(session, p2_id)).week_end) == T0 + timedelta(hours=2, days=7)


@pytest.mark.asyncio
async def test_reorder_then_delete_keeps_queue_contiguous(session):
    owner = await make_user(session)
    league = await make_league(session, owner, started=False)
    p1, p2, p3 = await add_prompts(session, league, "P1", "P2", "P3")
    await session.commit()

    await prompt_queue.reorder_queue(session, league.id, [p3.id, p1.id, p2.id])
    await session.commit()
    orders = {p.id: p.queue_order for p in (await prompt_queue.get_queue(session, league.id))["scheduled"]}
    assert orders == {p3.id: 1, p1.id: 2, p2.id: 3}

    await prompt_queue.delete_scheduled_prompt(session, league.id, p1.id)
    await session.commit()
    queue = (await prompt_queue.get_queue(session, league.id))["scheduled"]
    assert [(p.id, p.queue_order) for p in queue] == [(p3.id, 1), (p2.id, 2)]


@pytest.mark.asyncio
async def test_create_prompt_appends_to_queue(session):
    owner = await make_user(session)
    league = await make_league(session, owner, started=False)
    await add_prompts(session, league, "A", "B")
    await session.commit()
    created = await prompt_queue.create_prompt(session, league.id, "  C  ")
    await session.commit()
    assert created.text == "C"
    assert created.queue_order == 3
    assert created.status == SCHEDULED


def test_one_inflight_index_is_partial_on_status():
    index = {i.name: i for i in Prompt.__table__.indexes}["uq_prompts_one_inflight_per_league"]
    assert index.unique
    for dialect in ("postgresql", "sqlite"):
        assert str(index.dialect_options[dialect]["where"]) == "status IN ('ACTIVE','VOTING')"


@pytest.mark.asyncio
async def test_database_rejects_second_inflight_prompt(session):
    owner = await make_user(session)
    league = await make_league(session, owner)
    session.add(Prompt(league_id=league.id, text="One", status=ACTIVE, queue_order=0, phase_started_at=T0))
    await session.flush()
    session.add(Prompt(league_id=league.id, text="Two", status=VOTING, queue_order=0, phase_started_at=T0))
    with pytest.raises(IntegrityError):
        await session.flush()


@pytest.mark.asyncio
async def test_concurrent_cycles_activate_exactly_one_prompt(file_session_factory):
    async with file_session_factory() as s:
        owner = await make_user(s)
        league = await make_league(s, owner)
        await add_prompts(s, league, "First", "Second")
        await s.commit()
        league_id = league.id

    async def cycle():
        async with file_session_factory() as s:
            return await prompt_queue.run_league_cycle(s, league_id, T0)

    results = await asyncio.gather(cycle(), cycle(), return_exceptions=True)
    activated = [c for res in results if isinstance(res, list) for c in res if c.to_status == ACTIVE]
    assert len(activated) == 1

    async with file_session_factory() as s:
        rows = (await s.execute(
            select(Prompt.status, Prompt.queue_order).where(Prompt.league_id == league_id)
        )).all()
    assert sorted(rows) == [(ACTIVE, 0), (SCHEDULED, 1)]
