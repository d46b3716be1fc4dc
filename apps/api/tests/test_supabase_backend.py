import json

import httpx
import pytest

from nailbliss_api.services.backend import (
    BackendAuthorizationError,
    BackendError,
    ProfileNotFoundError,
    SupabaseBackend,
)
from nailbliss_api.services.identity import Role


CUSTOMER_ID = "8d3c0c8e-4f0e-4a55-9d7f-1f0f4b9e2a11"
STAFF_ID = "2b4e6c3d-1a2b-4c5d-8e9f-0a1b2c3d4e5f"


def _backend(handler) -> SupabaseBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseBackend(base_url="https://project.supabase.test/", api_key="anon-key", http_client=client)


@pytest.mark.asyncio
async def test_fetch_profile_sends_project_key_and_user_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {
                    "id": CUSTOMER_ID,
                    "email": "ava@example.com",
                    "first_name": "Ava",
                    "last_name": None,
                    "username": "ava",
                    "role": "customer",
                    "card_template": "floral",
                }
            ],
        )

    backend = _backend(handler)
    profile = await backend.fetch_profile(CUSTOMER_ID, access_token="user-jwt")

    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/profiles"
    assert request.url.params["id"] == f"eq.{CUSTOMER_ID}"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer user-jwt"
    assert profile.role is Role.CUSTOMER
    assert profile.display_name == "ava"
    assert profile.card_template == "floral"


@pytest.mark.asyncio
async def test_fetch_profile_missing_row_raises_not_found() -> None:
    backend = _backend(lambda request: httpx.Response(200, json=[]))

    with pytest.raises(ProfileNotFoundError):
        await backend.fetch_profile(CUSTOMER_ID)


@pytest.mark.asyncio
async def test_fetch_loyalty_card_parses_row_and_defaults_when_missing() -> None:
    rows = {
        CUSTOMER_ID: [{"points": 4, "total_visits": 11, "last_visit": "2024-05-01T10:30:00Z"}],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["select"] == "points,total_visits,last_visit"
        customer = request.url.params["customer_id"].removeprefix("eq.")
        return httpx.Response(200, json=rows.get(customer, []))

    backend = _backend(handler)

    card = await backend.fetch_loyalty_card(CUSTOMER_ID)
    assert card.points == 4
    assert card.total_visits == 11
    assert card.last_visit_at is not None and card.last_visit_at.tzinfo is not None

    empty = await backend.fetch_loyalty_card(STAFF_ID)
    assert empty.points == 0 and empty.total_visits == 0 and empty.last_visit_at is None


@pytest.mark.asyncio
async def test_add_loyalty_point_invokes_procedure_once() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(204)

    backend = _backend(handler)
    await backend.add_loyalty_point(CUSTOMER_ID, STAFF_ID, access_token="staff-jwt")

    assert len(calls) == 1
    assert calls[0].method == "POST"
    assert calls[0].url.path == "/rest/v1/rpc/add_loyalty_point"
    assert json.loads(calls[0].content) == {"p_customer_id": CUSTOMER_ID, "p_staff_id": STAFF_ID}
    assert calls[0].headers["Authorization"] == "Bearer staff-jwt"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "body"),
    [
        (401, {"message": "JWT expired", "code": "PGRST301"}),
        (403, {"message": "permission denied for function add_loyalty_point", "code": "42501"}),
        (400, {"message": "permission denied", "code": "42501"}),
    ],
)
async def test_authorization_failures_are_classified(status_code, body) -> None:
    backend = _backend(lambda request: httpx.Response(status_code, json=body))

    with pytest.raises(BackendAuthorizationError) as exc_info:
        await backend.add_loyalty_point(CUSTOMER_ID, STAFF_ID)

    assert exc_info.value.message == body["message"]
    assert exc_info.value.code == body["code"]


@pytest.mark.asyncio
async def test_server_error_is_backend_error() -> None:
    backend = _backend(lambda request: httpx.Response(500, text="oops"))

    with pytest.raises(BackendError) as exc_info:
        await backend.add_loyalty_point(CUSTOMER_ID, STAFF_ID)

    assert not isinstance(exc_info.value, BackendAuthorizationError)
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_transport_failure_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = _backend(handler)

    with pytest.raises(BackendError) as exc_info:
        await backend.fetch_profile(CUSTOMER_ID)

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_malformed_json_is_backend_error() -> None:
    backend = _backend(lambda request: httpx.Response(200, content=b"<html>", headers={"Content-Type": "text/html"}))

    with pytest.raises(BackendError):
        await backend.fetch_profile(CUSTOMER_ID)


@pytest.mark.asyncio
async def test_update_card_template_patches_profile() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        payload = json.loads(request.content)
        return httpx.Response(200, json=[{"id": CUSTOMER_ID, "role": "customer", **payload}])

    backend = _backend(handler)
    profile = await backend.update_card_template(CUSTOMER_ID, "gold", access_token="user-jwt")

    assert seen[0].method == "PATCH"
    assert seen[0].headers["Prefer"] == "return=representation"
    assert profile.card_template == "gold"


@pytest.mark.asyncio
async def test_owned_client_is_closed() -> None:
    backend = SupabaseBackend(base_url="https://project.supabase.test", api_key="anon-key")
    assert backend.is_configured
    assert backend.base_url == "https://project.supabase.test"

    await backend.aclose()

    assert backend._client.is_closed
