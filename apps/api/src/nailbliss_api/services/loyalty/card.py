"""Read-only loyalty card snapshot and reward progress."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from nailbliss_api.core.settings import settings


DEFAULT_REWARD_THRESHOLD = 5


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        # PostgREST renders timestamptz with a trailing "Z" or "+00:00".
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return None


@dataclass(frozen=True)
class LoyaltyCardSnapshot:
    customer_id: str
    points: int = 0
    total_visits: int = 0
    last_visit_at: datetime | None = None

    @classmethod
    def empty(cls, customer_id: str) -> "LoyaltyCardSnapshot":
        return cls(customer_id=customer_id)

    @classmethod
    def from_row(cls, customer_id: str, row: Mapping[str, Any] | None) -> "LoyaltyCardSnapshot":
        if not row:
            return cls.empty(customer_id)
        return cls(
            customer_id=customer_id,
            points=int(row.get("points") or 0),
            total_visits=int(row.get("total_visits") or 0),
            last_visit_at=_parse_timestamp(row.get("last_visit")),
        )


@dataclass(frozen=True)
class StampSlot:
    index: int
    filled: bool
    is_reward: bool


@dataclass(frozen=True)
class CardProgress:
    stamps: int
    threshold: int
    reward_ready: bool

    @property
    def stamps_remaining(self) -> int:
        return max(self.threshold - self.stamps, 0)

    @property
    def label(self) -> str:
        return f"{self.stamps}/{self.threshold}"

    @property
    def headline(self) -> str:
        if self.reward_ready:
            return "Reward Ready!"
        return f"Collect {self.threshold} stamps for a reward"

    def slots(self) -> list[StampSlot]:
        return [
            StampSlot(index=index, filled=index < self.stamps, is_reward=index == self.threshold - 1)
            for index in range(self.threshold)
        ]


def compute_progress(snapshot: LoyaltyCardSnapshot, *, threshold: int | None = None) -> CardProgress:
    threshold = threshold or settings.loyalty_reward_threshold or DEFAULT_REWARD_THRESHOLD
    points = max(snapshot.points, 0)
    return CardProgress(
        stamps=min(points, threshold),
        threshold=threshold,
        reward_ready=points >= threshold,
    )


__all__ = [
    "CardProgress",
    "DEFAULT_REWARD_THRESHOLD",
    "LoyaltyCardSnapshot",
    "StampSlot",
    "compute_progress",
]
