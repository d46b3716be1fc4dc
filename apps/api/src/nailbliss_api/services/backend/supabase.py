"""Gateway to the hosted backend's REST surface (PostgREST tables and RPC)."""

from __future__ import annotations

from typing import Any, Mapping

import httpx
from loguru import logger

from nailbliss_api.core.settings import Settings, settings as default_settings
from nailbliss_api.services.identity import Profile
from nailbliss_api.services.loyalty.card import LoyaltyCardSnapshot


CREDIT_PROCEDURE = "add_loyalty_point"

# Postgres insufficient_privilege plus PostgREST JWT failures.
_AUTHORIZATION_CODES = frozenset({"42501", "PGRST301", "PGRST302"})


class BackendError(RuntimeError):
    """Raised when the hosted backend rejects or fails a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details


class BackendAuthorizationError(BackendError):
    """The caller's credentials do not allow the requested operation."""


class ProfileNotFoundError(BackendError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"Profile {user_id} not found", status_code=404)
        self.user_id = user_id


def _error_from_response(response: httpx.Response, *, operation: str) -> BackendError:
    payload: Mapping[str, Any] = {}
    try:
        body = response.json()
        if isinstance(body, Mapping):
            payload = body
    except ValueError:
        pass

    message = str(payload.get("message") or payload.get("msg") or f"{operation} failed with HTTP {response.status_code}")
    code = payload.get("code")
    code = str(code) if code is not None else None
    details = payload.get("details") or payload.get("hint")

    error_cls = BackendError
    if response.status_code in (401, 403) or code in _AUTHORIZATION_CODES:
        error_cls = BackendAuthorizationError
    return error_cls(message, status_code=response.status_code, code=code, details=details)


class SupabaseBackend:
    """Read profiles and loyalty cards, and invoke the stamp-crediting procedure."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> "SupabaseBackend":
        config = config or default_settings
        return cls(
            base_url=config.supabase_url,
            api_key=config.supabase_anon_key,
            http_client=http_client,
            timeout_seconds=config.backend_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, access_token: str | None) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {access_token or self._api_key}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        access_token: str | None,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        headers = self._headers(access_token)
        if extra_headers:
            headers.update(extra_headers)
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("Backend request failed", operation=operation, error=str(exc))
            raise BackendError(f"{operation} failed: {exc}") from exc

        if response.is_error:
            raise _error_from_response(response, operation=operation)
        return response

    @staticmethod
    def _first_row(response: httpx.Response) -> Mapping[str, Any] | None:
        if not response.content:
            return None
        try:
            rows = response.json()
        except ValueError as exc:
            raise BackendError("Backend returned a malformed response", status_code=response.status_code) from exc
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows if isinstance(rows, Mapping) else None

    async def fetch_profile(self, user_id: str, *, access_token: str | None = None) -> Profile:
        response = await self._request(
            "GET",
            "/rest/v1/profiles",
            operation="fetch_profile",
            access_token=access_token,
            params={"id": f"eq.{user_id}", "select": "*", "limit": "1"},
        )
        row = self._first_row(response)
        if row is None:
            raise ProfileNotFoundError(user_id)
        return Profile.from_row(row)

    async def fetch_loyalty_card(self, customer_id: str, *, access_token: str | None = None) -> LoyaltyCardSnapshot:
        response = await self._request(
            "GET",
            "/rest/v1/loyalty_cards",
            operation="fetch_loyalty_card",
            access_token=access_token,
            params={
                "customer_id": f"eq.{customer_id}",
                "select": "points,total_visits,last_visit",
                "limit": "1",
            },
        )
        return LoyaltyCardSnapshot.from_row(customer_id, self._first_row(response))

    async def add_loyalty_point(self, customer_id: str, staff_id: str, *, access_token: str | None = None) -> None:
        """Invoke the crediting procedure once; the backend applies it atomically."""

        await self._request(
            "POST",
            f"/rest/v1/rpc/{CREDIT_PROCEDURE}",
            operation=CREDIT_PROCEDURE,
            access_token=access_token,
            json={"p_customer_id": customer_id, "p_staff_id": staff_id},
        )
        logger.info("Loyalty point credited", customer_id=customer_id, staff_id=staff_id)

    async def update_card_template(self, user_id: str, template: str, *, access_token: str | None = None) -> Profile:
        response = await self._request(
            "PATCH",
            "/rest/v1/profiles",
            operation="update_card_template",
            access_token=access_token,
            params={"id": f"eq.{user_id}"},
            json={"card_template": template},
            extra_headers={"Prefer": "return=representation"},
        )
        row = self._first_row(response)
        if row is None:
            raise ProfileNotFoundError(user_id)
        return Profile.from_row(row)


__all__ = [
    "BackendAuthorizationError",
    "BackendError",
    "CREDIT_PROCEDURE",
    "ProfileNotFoundError",
    "SupabaseBackend",
]
