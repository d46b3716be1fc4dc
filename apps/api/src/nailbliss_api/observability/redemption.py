from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


@dataclass
class RedemptionSnapshot:
    scans: Dict[str, int]
    credits: Dict[str, int]
    failures: Dict[str, int]
    tokens_issued: int
    last_credit_at: datetime | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "scans": dict(self.scans),
            "credits": dict(self.credits),
            "failures": dict(self.failures),
            "tokensIssued": self.tokens_issued,
            "lastCreditAt": self.last_credit_at.isoformat() if self.last_credit_at else None,
        }


class RedemptionObservabilityStore:
    """Collect QR token and stamp-crediting telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._scans: Dict[str, int] = defaultdict(int)
        self._credits: Dict[str, int] = defaultdict(int)
        self._failures: Dict[str, int] = defaultdict(int)
        self._tokens_issued = 0
        self._last_credit_at: datetime | None = None

    def record_token_issued(self) -> None:
        with self._lock:
            self._tokens_issued += 1

    def record_scan(self, outcome: str) -> None:
        with self._lock:
            self._scans["total"] += 1
            self._scans[outcome] += 1

    def record_credit(self, *, succeeded: bool) -> None:
        with self._lock:
            self._credits["attempted"] += 1
            if succeeded:
                self._credits["succeeded"] += 1
                self._last_credit_at = datetime.now(timezone.utc)
            else:
                self._credits["failed"] += 1

    def record_failure(self, kind: str) -> None:
        with self._lock:
            self._failures[kind] += 1

    def snapshot(self) -> RedemptionSnapshot:
        with self._lock:
            return RedemptionSnapshot(
                scans=dict(self._scans),
                credits=dict(self._credits),
                failures=dict(self._failures),
                tokens_issued=self._tokens_issued,
                last_credit_at=self._last_credit_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._scans.clear()
            self._credits.clear()
            self._failures.clear()
            self._tokens_issued = 0
            self._last_credit_at = None


_STORE = RedemptionObservabilityStore()


def get_redemption_store() -> RedemptionObservabilityStore:
    return _STORE


__all__ = ["get_redemption_store", "RedemptionObservabilityStore", "RedemptionSnapshot"]
