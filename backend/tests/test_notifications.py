import uuid
import pytest
from challenge_league.services.notifications import notify_league_members, NEW_PROMPT, render
from conftest import register_login


def test_render_known_and_unknown_kinds():
    title, body = render(NEW_PROMPT, "Photo Club", "Something blue")
    assert title == "New challenge in Photo Club"
    assert body == "Something blue"
    with pytest.raises(ValueError):
        render("nope", "x", None)


@pytest.mark.asyncio
async def test_fan_out_list_and_mark_read(client, session_factory):
    owner_hdrs, owner = await register_login(client)
    member_hdrs, _ = await register_login(client)
    league = (await client.post("/leagues", headers=owner_hdrs, json={"name": "Photo Club"})).json()
    await client.post("/leagues/join", headers=member_hdrs, json={"invite_code": league["invite_code"]})

    async with session_factory() as s:
        created = await notify_league_members(s, uuid.UUID(league["id"]), NEW_PROMPT, exclude_user_id=uuid.UUID(owner["id"]))
        await s.commit()
    assert created == 1

    assert (await client.get("/notifications", headers=owner_hdrs)).json() == []
    items = (await client.get("/notifications", headers=member_hdrs)).json()
    assert len(items) == 1
    assert items[0]["kind"] == "new-prompt-available"
    assert items[0]["data"]["league_id"] == league["id"]

    nid = items[0]["id"]
    assert (await client.post(f"/notifications/{nid}/read", headers=owner_hdrs)).status_code == 404
    assert (await client.post(f"/notifications/{nid}/read", headers=member_hdrs)).status_code == 204
    assert (await client.post(f"/notifications/{nid}/read", headers=member_hdrs)).status_code == 404
    assert (await client.get("/notifications?unread=1", headers=member_hdrs)).json() == []
