"""Encode and validate the short-lived QR tokens customers present at the desk.

A token is the standard base64 encoding of the compact JSON document
``{"userId": ..., "timestamp": ...}`` followed by the obfuscation suffix. The
suffix hides the payload from casual inspection but offers no integrity
guarantee; when a signing secret is configured an HMAC-SHA256 signature is
appended as ``<payload>.<signature>`` and unsigned or altered tokens are
rejected.

Freshness is evaluated against the wall clock at decode time only. Nothing on
the backend re-checks it.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import math
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from nailbliss_api.core.settings import Settings, settings as default_settings


DEFAULT_FRESHNESS_WINDOW_MS = 60_000
DEFAULT_OBFUSCATION_KEY = "nailbliss-2024"
SIGNATURE_SEPARATOR = "."

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class DecodedToken:
    customer_id: str
    issued_at_ms: int

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.issued_at_ms


class TokenCodec:
    """Reversible transform between ``(customer_id, issued_at_ms)`` and a token string."""

    def __init__(
        self,
        *,
        obfuscation_key: str = DEFAULT_OBFUSCATION_KEY,
        freshness_window_ms: int = DEFAULT_FRESHNESS_WINDOW_MS,
        signing_secret: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        if freshness_window_ms <= 0:
            raise ValueError("freshness_window_ms must be positive")
        self.obfuscation_key = obfuscation_key
        self.freshness_window_ms = freshness_window_ms
        self._signing_key = signing_secret.encode("utf-8") if signing_secret else None
        self._clock = clock or wall_clock_ms

    @classmethod
    def from_settings(cls, config: Settings | None = None, *, clock: Clock | None = None) -> "TokenCodec":
        config = config or default_settings
        return cls(
            obfuscation_key=config.qr_obfuscation_key,
            freshness_window_ms=config.qr_freshness_window_ms,
            signing_secret=config.qr_signing_secret,
            clock=clock,
        )

    @property
    def is_signed(self) -> bool:
        return self._signing_key is not None

    def now_ms(self) -> int:
        return self._clock()

    def encode(self, customer_id: str, issued_at_ms: int) -> str:
        if not customer_id:
            raise ValueError("customer_id is required")
        document = json.dumps(
            {"userId": customer_id, "timestamp": int(issued_at_ms)},
            separators=(",", ":"),
            ensure_ascii=False,
        )
        payload = base64.b64encode((document + self.obfuscation_key).encode("utf-8")).decode("ascii")
        if self._signing_key is None:
            return payload
        return f"{payload}{SIGNATURE_SEPARATOR}{self._sign(payload)}"

    def issue(self, customer_id: str) -> str:
        """Encode a token stamped with the current wall-clock time."""

        return self.encode(customer_id, self.now_ms())

    def decode(self, token: str, *, now_ms: int | None = None) -> DecodedToken | None:
        """Return the embedded identity, or ``None`` for malformed or stale tokens."""

        parsed = self._parse(token)
        if parsed is None:
            return None

        current = self.now_ms() if now_ms is None else now_ms
        if parsed.age_ms(current) > self.freshness_window_ms:
            logger.info(
                "QR token expired",
                customer_id=parsed.customer_id,
                age_ms=parsed.age_ms(current),
                window_ms=self.freshness_window_ms,
            )
            return None
        return parsed

    def _parse(self, token: object) -> DecodedToken | None:
        if not isinstance(token, str) or not token.strip():
            return None
        payload = token.strip()

        if self._signing_key is not None:
            payload, sep, signature = payload.rpartition(SIGNATURE_SEPARATOR)
            if not sep or not hmac.compare_digest(signature.encode("utf-8"), self._sign(payload).encode("ascii")):
                logger.warning("QR token signature rejected")
                return None

        try:
            decoded = base64.b64decode(payload, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None

        if not decoded.endswith(self.obfuscation_key):
            return None
        document = decoded[: len(decoded) - len(self.obfuscation_key)]

        try:
            data = json.loads(document)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None

        customer_id = data.get("userId")
        issued_at = data.get("timestamp")
        if not isinstance(customer_id, str) or not customer_id:
            return None
        if isinstance(issued_at, bool) or not isinstance(issued_at, (int, float)):
            return None
        if isinstance(issued_at, float) and not math.isfinite(issued_at):
            return None
        return DecodedToken(customer_id=customer_id, issued_at_ms=int(issued_at))

    def _sign(self, payload: str) -> str:
        if self._signing_key is None:
            raise RuntimeError("Token signing is not configured")
        digest = hmac.new(self._signing_key, payload.encode("ascii", "replace"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


__all__ = [
    "DEFAULT_FRESHNESS_WINDOW_MS",
    "DEFAULT_OBFUSCATION_KEY",
    "DecodedToken",
    "TokenCodec",
    "wall_clock_ms",
]
