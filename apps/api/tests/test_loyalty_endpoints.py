import pytest

from conftest import session_headers
from nailbliss_api.services.backend import BackendError
from nailbliss_api.services.identity import Role


@pytest.mark.asyncio
async def test_card_reports_progress_and_default_skin(client, backend) -> None:
    customer = backend.add_profile(first_name="Ava", last_name="Stone", points=3, total_visits=7)

    response = await client.get("/api/v1/loyalty/card", headers=session_headers(customer.id))

    assert response.status_code == 200
    card = response.json()
    assert card["displayName"] == "Ava Stone"
    assert card["stampsLabel"] == "3/5"
    assert card["stampsRemaining"] == 2
    assert card["rewardReady"] is False
    assert card["headline"] == "Collect 5 stamps for a reward"
    assert [slot["filled"] for slot in card["slots"]] == [True, True, True, False, False]
    assert card["slots"][-1]["isReward"] is True
    assert card["skin"]["tag"] == "pink"
    assert card["skin"]["name"] == "Rose Blush"


@pytest.mark.asyncio
async def test_card_for_customer_without_loyalty_row(client, backend) -> None:
    customer = backend.add_profile(card_template="gold")

    response = await client.get("/api/v1/loyalty/card", headers=session_headers(customer.id))

    card = response.json()
    assert card["points"] == 0
    assert card["totalVisits"] == 0
    assert card["lastVisitAt"] is None
    assert card["skin"]["name"] == "Golden Hour"


@pytest.mark.asyncio
async def test_reward_ready_caps_stamps(client, backend) -> None:
    customer = backend.add_profile(points=7)

    card = (await client.get("/api/v1/loyalty/card", headers=session_headers(customer.id))).json()

    assert card["stamps"] == 5
    assert card["rewardReady"] is True
    assert card["headline"] == "Reward Ready!"


@pytest.mark.asyncio
async def test_staff_has_no_loyalty_card(client, backend) -> None:
    staff = backend.add_profile(role=Role.STAFF)

    response = await client.get("/api/v1/loyalty/card", headers=session_headers(staff.id))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_skins(client) -> None:
    response = await client.get("/api/v1/loyalty/skins")

    assert response.status_code == 200
    assert [(skin["tag"], skin["name"]) for skin in response.json()] == [
        ("pink", "Rose Blush"),
        ("gold", "Golden Hour"),
        ("floral", "Ocean Breeze"),
        ("minimalist", "Midnight"),
    ]


@pytest.mark.asyncio
async def test_select_skin_persists_on_profile(client, backend) -> None:
    customer = backend.add_profile()
    headers = session_headers(customer.id)

    response = await client.put("/api/v1/loyalty/card/skin", json={"tag": "minimalist"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["name"] == "Midnight"
    assert backend.profiles[customer.id].card_template == "minimalist"

    card = (await client.get("/api/v1/loyalty/card", headers=headers)).json()
    assert card["skin"]["tag"] == "minimalist"


@pytest.mark.asyncio
async def test_select_unknown_skin_is_rejected(client, backend) -> None:
    customer = backend.add_profile()

    response = await client.put(
        "/api/v1/loyalty/card/skin",
        json={"tag": "neon"},
        headers=session_headers(customer.id),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_backend_failure_maps_to_502(client, backend) -> None:
    customer = backend.add_profile()

    async def broken_fetch(customer_id, *, access_token=None):
        raise BackendError("database unavailable", status_code=503)

    backend.fetch_loyalty_card = broken_fetch
    response = await client.get("/api/v1/loyalty/card", headers=session_headers(customer.id))

    assert response.status_code == 502
