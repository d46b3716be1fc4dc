#!/usr/bin/env python3
"""Staff scan station for a keyboard-wedge QR reader.

Usage:
    python tooling/scripts/scan_station.py --staff-id <uuid> --access-token "$STAFF_TOKEN"

Each line read from stdin is treated as one scanned code. After a customer is
resolved, type ``y`` to add the stamp or ``n`` to cancel. With
``--auto-confirm`` every resolved scan is credited immediately.

Backend connection details come from the usual ``SUPABASE_URL`` and
``SUPABASE_ANON_KEY`` settings.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path


CONFIRM_WORDS = {"y", "yes"}
CANCEL_WORDS = {"n", "no", "c", "cancel"}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NailBliss staff scan station")
    parser.add_argument("--staff-id", required=True, help="Profile id of the staff member operating the station")
    parser.add_argument(
        "--access-token",
        default=None,
        help="Staff access token (defaults to NAILBLISS_STAFF_TOKEN).",
    )
    parser.add_argument(
        "--auto-confirm",
        action="store_true",
        help="Credit every resolved scan without waiting for operator confirmation.",
    )
    return parser.parse_args()


def _ensure_import_path() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))


def _show(outcome) -> None:
    marker = "❌" if outcome.notice.is_error else "✅"
    print(f"[scan-station] {marker} {outcome.notice.title}: {outcome.notice.message}")
    if outcome.loyalty is not None:
        from nailbliss_api.services.loyalty import compute_progress  # type: ignore import-position

        progress = compute_progress(outcome.loyalty)
        print(f"[scan-station]    {progress.label} stamps, {outcome.loyalty.total_visits} visits. {progress.headline}")


async def _interactive(session, coordinator) -> None:
    from nailbliss_api.services.redemption import RedemptionState  # type: ignore import-position

    async for raw in session.codes():
        if coordinator.state is RedemptionState.AWAITING_CONFIRMATION:
            word = raw.lower()
            if word in CONFIRM_WORDS:
                _show(await coordinator.confirm())
                continue
            if word in CANCEL_WORDS:
                _show(coordinator.cancel())
                continue
        outcome = await coordinator.submit_scan(raw)
        _show(outcome)
        if outcome.state is RedemptionState.AWAITING_CONFIRMATION:
            print("[scan-station]    Add stamp? [y/n]")


async def run(args: argparse.Namespace) -> int:
    _ensure_import_path()

    from nailbliss_api.api.dependencies.session import parse_session  # type: ignore import-position
    from nailbliss_api.services.backend import BackendError, SupabaseBackend  # type: ignore import-position
    from nailbliss_api.services.identity import IdentityContext  # type: ignore import-position
    from nailbliss_api.services.redemption import (  # type: ignore import-position
        RedemptionCoordinator,
        RedemptionState,
    )
    from nailbliss_api.services.scanner import (  # type: ignore import-position
        ScanSession,
        ScannerUnavailableError,
        StreamCaptureDevice,
    )
    from nailbliss_api.services.tokens import TokenCodec  # type: ignore import-position
    from fastapi import HTTPException

    try:
        auth = parse_session(args.staff_id, args.access_token or os.environ.get("NAILBLISS_STAFF_TOKEN"))
    except HTTPException as error:
        print(f"[scan-station] ❌ {error.detail}")
        return 2

    backend = SupabaseBackend.from_settings()
    try:
        try:
            profile = await backend.fetch_profile(auth.user_id, access_token=auth.access_token)
        except BackendError as error:
            print(f"[scan-station] ❌ Could not load staff profile: {error.message}")
            return 1

        identity = IdentityContext.signed_in(auth, profile)
        if not identity.is_staff:
            print("[scan-station] ❌ Unauthorized: Only staff members can scan QR codes.")
            return 1

        coordinator = RedemptionCoordinator(identity, backend=backend, codec=TokenCodec.from_settings())
        print(f"[scan-station] Ready for {profile.display_name}. Scan customer QR codes to add loyalty points.")
        try:
            async with ScanSession([StreamCaptureDevice(sys.stdin)]) as session:
                if args.auto_confirm:

                    async def confirm_resolved(outcome) -> None:
                        _show(outcome)
                        if outcome.state is RedemptionState.AWAITING_CONFIRMATION:
                            _show(await coordinator.confirm())

                    await session.feed(coordinator, on_outcome=confirm_resolved)
                else:
                    await _interactive(session, coordinator)
        except ScannerUnavailableError as error:
            print(f"[scan-station] ❌ {error.title}: {error.user_message}")
            return 1
        finally:
            coordinator.close()
            identity.sign_out()
    finally:
        await backend.aclose()
    return 0


def main() -> int:
    args = parse_args()
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("[scan-station] Stopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
