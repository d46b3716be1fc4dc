import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("OTEL_SDK_DISABLED", "true")


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from nailbliss_api.app import create_app  # noqa: E402
from nailbliss_api.observability.redemption import RedemptionObservabilityStore, get_redemption_store  # noqa: E402
from nailbliss_api.services.backend import ProfileNotFoundError  # noqa: E402
from nailbliss_api.services.identity import AuthSession, IdentityContext, Profile, Role  # noqa: E402
from nailbliss_api.services.loyalty import LoyaltyCardSnapshot  # noqa: E402
from nailbliss_api.services.tokens import TokenCodec  # noqa: E402


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeLoyaltyBackend:
    """In-memory profiles, loyalty cards, and crediting procedure."""

    base_url = "http://backend.test"
    is_configured = True

    def __init__(self) -> None:
        self.profiles: dict[str, Profile] = {}
        self.cards: dict[str, LoyaltyCardSnapshot] = {}
        self.credit_calls: list[tuple[str, str]] = []
        self.lookup_calls: list[str] = []
        self.profile_error: Exception | None = None
        self.credit_error: Exception | None = None
        self.credit_gate = None
        self.closed = False

    def add_profile(
        self,
        *,
        role: Role = Role.CUSTOMER,
        first_name: str | None = "Ava",
        last_name: str | None = "Stone",
        username: str | None = None,
        points: int = 0,
        total_visits: int = 0,
        card_template: str | None = None,
    ) -> Profile:
        profile = Profile(
            id=str(uuid4()),
            first_name=first_name,
            last_name=last_name,
            username=username,
            role=role,
            card_template=card_template,
        )
        self.profiles[profile.id] = profile
        if points or total_visits:
            self.cards[profile.id] = LoyaltyCardSnapshot(
                customer_id=profile.id,
                points=points,
                total_visits=total_visits,
            )
        return profile

    async def fetch_profile(self, user_id: str, *, access_token: str | None = None) -> Profile:
        self.lookup_calls.append(user_id)
        if self.profile_error is not None:
            raise self.profile_error
        try:
            return self.profiles[user_id]
        except KeyError:
            raise ProfileNotFoundError(user_id) from None

    async def fetch_loyalty_card(self, customer_id: str, *, access_token: str | None = None) -> LoyaltyCardSnapshot:
        return self.cards.get(customer_id) or LoyaltyCardSnapshot.empty(customer_id)

    async def add_loyalty_point(self, customer_id: str, staff_id: str, *, access_token: str | None = None) -> None:
        self.credit_calls.append((customer_id, staff_id))
        if self.credit_gate is not None:
            await self.credit_gate.wait()
        if self.credit_error is not None:
            raise self.credit_error
        card = self.cards.get(customer_id) or LoyaltyCardSnapshot.empty(customer_id)
        self.cards[customer_id] = replace(
            card,
            points=card.points + 1,
            total_visits=card.total_visits + 1,
            last_visit_at=datetime.now(timezone.utc),
        )

    async def update_card_template(self, user_id: str, template: str, *, access_token: str | None = None) -> Profile:
        profile = replace(self.profiles[user_id], card_template=template)
        self.profiles[user_id] = profile
        return profile

    async def aclose(self) -> None:
        self.closed = True


def session_headers(user_id: str, access_token: str | None = None) -> dict[str, str]:
    headers = {"X-Session-User": user_id}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def identity_for(profile: Profile, access_token: str | None = "token") -> IdentityContext:
    return IdentityContext.signed_in(AuthSession(user_id=profile.id, access_token=access_token), profile)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock: FakeClock) -> TokenCodec:
    return TokenCodec(clock=clock)


@pytest.fixture
def backend() -> FakeLoyaltyBackend:
    return FakeLoyaltyBackend()


@pytest.fixture
def store() -> RedemptionObservabilityStore:
    return RedemptionObservabilityStore()


@pytest.fixture
def app(backend: FakeLoyaltyBackend, codec: TokenCodec):
    get_redemption_store().reset()
    return create_app(backend=backend, codec=codec)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
