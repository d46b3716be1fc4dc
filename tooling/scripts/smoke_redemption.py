#!/usr/bin/env python3
"""Smoke test for the QR token -> stamp redemption flow.

Usage (HTTP, against a deployed API and hosted backend):
    python tooling/scripts/smoke_redemption.py --base-url http://localhost:8000 \
        --customer-id <uuid> --customer-token <jwt> --staff-id <uuid> --staff-token <jwt>

Usage (in-process, no network sockets required):
    python tooling/scripts/smoke_redemption.py --in-process

The script checks:
1. API health (`/healthz`)
2. QR token issue for the customer (`/api/v1/qr/token`)
3. Staff scan of that token (`POST /api/v1/redemptions/scan`)
4. Stamp confirmation (`POST /api/v1/redemptions/confirm`) and the refreshed card
5. Redemption observability snapshot (`/api/v1/observability/redemptions`)

In-process mode points the backend gateway at an in-memory stand-in for the
hosted REST surface, so the real request/response handling is exercised.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import uuid
from pathlib import Path
from typing import Any

import httpx
from httpx import ASGITransport, Response


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NailBliss redemption smoke test")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the FastAPI service (ignored with --in-process)",
    )
    parser.add_argument("--customer-id", help="Customer profile id (HTTP mode)")
    parser.add_argument("--customer-token", help="Customer access token (HTTP mode)")
    parser.add_argument("--staff-id", help="Staff profile id (HTTP mode)")
    parser.add_argument("--staff-token", help="Staff access token (HTTP mode)")
    parser.add_argument(
        "--api-key",
        help="Value for X-API-Key when reading observability (defaults to OBSERVABILITY_API_KEY).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Request timeout in seconds",
    )
    parser.add_argument(
        "--in-process",
        action="store_true",
        help="Run requests directly against the ASGI app without binding network sockets.",
    )
    return parser.parse_args()


def _session_headers(user_id: str, access_token: str | None) -> dict[str, str]:
    headers = {"X-Session-User": user_id}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


async def _get_json(client: httpx.AsyncClient, path: str, headers: dict[str, str] | None = None) -> dict[str, Any]:
    response: Response = await client.get(path, headers=headers)
    response.raise_for_status()
    return response.json()


async def _post_json(
    client: httpx.AsyncClient,
    path: str,
    headers: dict[str, str],
    payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    response: Response = await client.post(path, json=payload, headers=headers)
    response.raise_for_status()
    return response.json()


async def _run_checks(
    client: httpx.AsyncClient,
    *,
    customer: dict[str, str],
    staff: dict[str, str],
    api_key: str | None,
) -> dict[str, Any]:
    health = await _get_json(client, "/healthz")
    if health.get("status") != "ok":
        raise RuntimeError(f"Unexpected health response: {health}")

    issued = await _get_json(client, "/api/v1/qr/token", headers=customer)
    if not issued.get("token") or not issued.get("image", {}).get("src"):
        raise RuntimeError(f"QR token response incomplete: {issued}")

    scanned = await _post_json(client, "/api/v1/redemptions/scan", staff, {"code": issued["token"]})
    if scanned.get("state") != "awaiting_confirmation":
        raise RuntimeError(f"Scan did not reach confirmation: {scanned}")
    before = scanned["attempt"]["customer"]["points"]

    confirmed = await _post_json(client, "/api/v1/redemptions/confirm", staff)
    if confirmed.get("notice", {}).get("kind") != "success":
        raise RuntimeError(f"Confirmation failed: {confirmed}")
    card = confirmed.get("updatedCard") or {}
    if card.get("points") != before + 1:
        raise RuntimeError(f"Expected {before + 1} points after credit, got {card.get('points')}")

    headers = {"X-API-Key": api_key} if api_key else None
    observability = await _get_json(client, "/api/v1/observability/redemptions", headers=headers)
    if observability.get("credits", {}).get("succeeded", 0) < 1:
        raise RuntimeError(f"Observability snapshot missing credit: {observability}")

    return card


class _InMemoryRestBackend:
    """Minimal stand-in for the hosted profiles/loyalty_cards tables and crediting RPC."""

    def __init__(self, customer_id: str, staff_id: str) -> None:
        self.profiles = {
            customer_id: {"id": customer_id, "first_name": "Smoke", "last_name": "Customer", "role": "customer"},
            staff_id: {"id": staff_id, "first_name": "Smoke", "last_name": "Staff", "role": "staff"},
        }
        self.cards: dict[str, dict[str, Any]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/rest/v1/profiles":
            row = self.profiles.get(request.url.params.get("id", "").removeprefix("eq."))
            return httpx.Response(200, json=[row] if row else [])
        if path == "/rest/v1/loyalty_cards":
            row = self.cards.get(request.url.params.get("customer_id", "").removeprefix("eq."))
            return httpx.Response(200, json=[row] if row else [])
        if path == "/rest/v1/rpc/add_loyalty_point":
            body = json.loads(request.content)
            card = self.cards.setdefault(body["p_customer_id"], {"points": 0, "total_visits": 0, "last_visit": None})
            card["points"] += 1
            card["total_visits"] += 1
            return httpx.Response(204)
        return httpx.Response(404, json={"message": f"Unknown path {path}"})


async def run_http(args: argparse.Namespace, api_key: str | None) -> dict[str, Any]:
    missing = [name for name in ("customer_id", "staff_id") if not getattr(args, name)]
    if missing:
        raise SystemExit(f"Missing --{missing[0].replace('_', '-')} for HTTP smoke test.")
    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        return await _run_checks(
            client,
            customer=_session_headers(args.customer_id, args.customer_token),
            staff=_session_headers(args.staff_id, args.staff_token),
            api_key=api_key,
        )


async def run_in_process(timeout: float) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from nailbliss_api.app import create_app  # type: ignore import-position
    from nailbliss_api.services.backend import SupabaseBackend  # type: ignore import-position

    customer_id, staff_id = str(uuid.uuid4()), str(uuid.uuid4())
    rest = httpx.AsyncClient(transport=httpx.MockTransport(_InMemoryRestBackend(customer_id, staff_id)))
    backend = SupabaseBackend(base_url="http://backend.local", api_key="smoke-anon-key", http_client=rest)

    app = create_app(backend=backend)
    lifespan = app.router.lifespan_context(app)
    await lifespan.__aenter__()
    try:
        transport = ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver", timeout=timeout) as client:
            return await _run_checks(
                client,
                customer=_session_headers(customer_id, None),
                staff=_session_headers(staff_id, None),
                api_key=os.environ.get("OBSERVABILITY_API_KEY"),
            )
    finally:
        await lifespan.__aexit__(None, None, None)
        await rest.aclose()


def main() -> int:
    args = parse_args()
    api_key = args.api_key or os.environ.get("OBSERVABILITY_API_KEY")

    if args.in_process:
        card = asyncio.run(run_in_process(args.timeout))
    else:
        card = asyncio.run(run_http(args, api_key))

    print(f"Redemption smoke test passed ✅ {card.get('displayName')} now at {card.get('stampsLabel')} stamps")
    return 0


if __name__ == "__main__":
    sys.exit(main())
