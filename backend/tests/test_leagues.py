import uuid
import pytest
from conftest import register_login


async def _create_league(ac, hdrs, **overrides):
    payload = {"name": "Sunday Snaps", "description": "One photo a week", **overrides}
    r = await ac.post("/leagues", headers=hdrs, json=payload)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_create_join_and_list(client):
    owner_hdrs, _ = await register_login(client)
    member_hdrs, member = await register_login(client)

    league = await _create_league(client, owner_hdrs)
    assert league["invite_code"]
    assert league["is_owner"] is True
    assert league["member_count"] == 1
    assert (league["submission_days"], league["voting_days"], league["votes_per_player"]) == (7, 2, 3)

    # Invite codes are case-insensitive
    r = await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"].lower()})
    assert r.status_code == 200, r.text
    assert r.json()["member_count"] == 2

    r = await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"]})
    assert r.status_code == 400

    r = await client.get("/leagues/mine", headers=member_hdrs)
    assert [x["id"] for x in r.json()] == [league["id"]]

    r = await client.get(f"/leagues/{league['id']}/members", headers=owner_hdrs)
    assert r.status_code == 200
    members = r.json()
    assert len(members) == 2
    assert {m["username"] for m in members if not m["is_owner"]} == {member["username"]}


@pytest.mark.asyncio
async def test_unknown_code_and_access_rules(client):
    owner_hdrs, _ = await register_login(client)
    outsider_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)

    r = await client.post("/leagues/join", headers=outsider_hdrs, json={"invite_code": "NOPE99"})
    assert r.status_code == 404
    r = await client.get(f"/leagues/{league['id']}", headers=outsider_hdrs)
    assert r.status_code == 403
    r = await client.get(f"/leagues/{uuid.uuid4()}", headers=outsider_hdrs)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_settings_update_is_owner_only_and_validated(client):
    owner_hdrs, _ = await register_login(client)
    member_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)
    await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"]})

    r = await client.patch(f"/leagues/{league['id']}", headers=member_hdrs, json={"name": "Mine now"})
    assert r.status_code == 403
    r = await client.patch(f"/leagues/{league['id']}", headers=owner_hdrs, json={"voting_days": 0})
    assert r.status_code == 422
    r = await client.patch(f"/leagues/{league['id']}", headers=owner_hdrs, json={"votes_per_player": 5, "name": "Renamed"})
    assert r.status_code == 200
    assert (r.json()["votes_per_player"], r.json()["name"]) == (5, "Renamed")

    r = await client.post("/leagues", headers=owner_hdrs, json={"name": "Bad", "submission_days": 31})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_start_activates_first_prompt_once(client):
    owner_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)
    lid = league["id"]

    r = await client.post(f"/leagues/{lid}/admin/prompts", headers=owner_hdrs, json={"text": "Something red"})
    assert r.status_code == 201
    r = await client.get(f"/leagues/{lid}/prompt", headers=owner_hdrs)
    assert r.json()["prompt"] is None
    assert r.json()["challenge_number"] == 1

    r = await client.post(f"/leagues/{lid}/start", headers=owner_hdrs)
    assert r.status_code == 200
    assert r.json()["is_started"] is True
    r = await client.post(f"/leagues/{lid}/start", headers=owner_hdrs)
    assert r.status_code == 400

    r = await client.get(f"/leagues/{lid}/prompt", headers=owner_hdrs)
    body = r.json()
    assert body["prompt"]["text"] == "Something red"
    assert body["prompt"]["status"] == "ACTIVE"
    assert body["time_remaining"]["days"] == 6
    assert body["my_response"] is None


@pytest.mark.asyncio
async def test_leave_and_rejoin(client):
    owner_hdrs, _ = await register_login(client)
    member_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)
    lid = league["id"]
    await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"]})

    r = await client.post(f"/leagues/{lid}/leave", headers=owner_hdrs)
    assert r.status_code == 403
    r = await client.post(f"/leagues/{lid}/leave", headers=member_hdrs)
    assert r.status_code == 204
    r = await client.get(f"/leagues/{lid}", headers=member_hdrs)
    assert r.status_code == 403
    r = await client.post(f"/leagues/{lid}/leave", headers=member_hdrs)
    assert r.status_code == 400

    r = await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"]})
    assert r.status_code == 200
    assert r.json()["member_count"] == 2


@pytest.mark.asyncio
async def test_delete_league(client):
    owner_hdrs, _ = await register_login(client)
    member_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)
    lid = league["id"]
    await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"]})
    await client.post(f"/leagues/{lid}/admin/prompts", headers=owner_hdrs, json={"text": "Doomed"})

    r = await client.delete(f"/leagues/{lid}", headers=member_hdrs)
    assert r.status_code == 403
    r = await client.delete(f"/leagues/{lid}", headers=owner_hdrs)
    assert r.status_code == 204
    r = await client.get(f"/leagues/{lid}", headers=owner_hdrs)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_ballot_size_is_frozen_while_voting(client):
    owner_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)
    lid = league["id"]
    await client.post(f"/leagues/{lid}/admin/prompts", headers=owner_hdrs, json={"text": "Shadows"})

    # Allowed before voting starts
    r = await client.patch(f"/leagues/{lid}", headers=owner_hdrs, json={"votes_per_player": 2})
    assert r.status_code == 200
    await client.post(f"/leagues/{lid}/start", headers=owner_hdrs)
    r = await client.patch(f"/leagues/{lid}", headers=owner_hdrs, json={"votes_per_player": 4})
    assert r.status_code == 200

    await client.post(f"/leagues/{lid}/admin/transition-phase", headers=owner_hdrs)
    r = await client.patch(f"/leagues/{lid}", headers=owner_hdrs, json={"votes_per_player": 1})
    assert r.status_code == 400
    r = await client.patch(f"/leagues/{lid}", headers=owner_hdrs, json={"name": "Renamed", "votes_per_player": 4})
    assert r.status_code == 200
    assert (r.json()["name"], r.json()["votes_per_player"]) == ("Renamed", 4)
    assert (await client.get(f"/leagues/{lid}", headers=owner_hdrs)).json()["votes_per_player"] == 4

    # Completed rounds release the lock
    await client.post(f"/leagues/{lid}/admin/transition-phase", headers=owner_hdrs)
    r = await client.patch(f"/leagues/{lid}", headers=owner_hdrs, json={"votes_per_player": 1})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_start_survives_a_failing_first_cycle(client, monkeypatch):
    import challenge_league.routes.leagues as league_routes

    async def broken_cycle(session, league_id, now=None):
        raise RuntimeError("queue down")

    monkeypatch.setattr(league_routes, "run_league_cycle", broken_cycle)
    owner_hdrs, _ = await register_login(client)
    league = await _create_league(client, owner_hdrs)
    r = await client.post(f"/leagues/{league['id']}/start", headers=owner_hdrs)
    assert r.status_code == 200
    assert r.json()["is_started"] is True
    r = await client.post(f"/leagues/{league['id']}/start", headers=owner_hdrs)
    assert r.status_code == 400
