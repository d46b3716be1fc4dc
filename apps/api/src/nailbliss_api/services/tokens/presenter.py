"""Keep a customer's displayed QR token fresh while the card is on screen."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from nailbliss_api.observability.redemption import RedemptionObservabilityStore, get_redemption_store
from nailbliss_api.services.identity import IdentityContext

from .codec import TokenCodec
from .rendering import QRRenderer, RenderedCode


class NoCustomerIdentityError(RuntimeError):
    """A token can only be presented for a signed-in customer."""


@dataclass(frozen=True)
class PresentedToken:
    token: str
    customer_id: str
    issued_at_ms: int
    expires_at_ms: int
    image: RenderedCode


TokenListener = Callable[[PresentedToken], Awaitable[None] | None]
TickListener = Callable[[int], Awaitable[None] | None]


def issue_token(
    identity: IdentityContext,
    *,
    codec: TokenCodec,
    renderer: QRRenderer,
    store: RedemptionObservabilityStore | None = None,
) -> PresentedToken:
    """Encode and render a token bound to the identity's customer at the current time."""

    if not identity.is_customer or identity.user_id is None:
        raise NoCustomerIdentityError("QR codes are only issued to signed-in customers")

    customer_id = identity.user_id
    issued_at = codec.now_ms()
    token = codec.encode(customer_id, issued_at)
    (store or get_redemption_store()).record_token_issued()
    return PresentedToken(
        token=token,
        customer_id=customer_id,
        issued_at_ms=issued_at,
        expires_at_ms=issued_at + codec.freshness_window_ms,
        image=renderer.render(token),
    )


class TokenPresenter:
    """Issue a token on start, then re-issue every refresh interval with a per-second countdown.

    Refresh and countdown run as two independent tasks owned by the presenter.
    Leaving the ``async with`` block (or the identity signing out) cancels both.
    """

    def __init__(
        self,
        identity: IdentityContext,
        *,
        codec: TokenCodec,
        renderer: QRRenderer,
        refresh_interval_seconds: float | None = None,
        countdown_step_seconds: float = 1.0,
        on_token: TokenListener | None = None,
        on_tick: TickListener | None = None,
        store: RedemptionObservabilityStore | None = None,
    ) -> None:
        self._identity = identity
        self._codec = codec
        self._renderer = renderer
        self.refresh_interval_seconds = refresh_interval_seconds or codec.freshness_window_ms / 1000
        self.countdown_step_seconds = countdown_step_seconds
        self._countdown_start = max(int(round(self.refresh_interval_seconds / countdown_step_seconds)), 1)
        self._on_token = on_token
        self._on_tick = on_tick
        self._store = store
        self._stop_event = asyncio.Event()
        self._refresh_task: asyncio.Task | None = None
        self._countdown_task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._customer_id: str | None = None
        self._current: PresentedToken | None = None
        self._countdown = self._countdown_start

    @property
    def current(self) -> PresentedToken | None:
        return self._current

    @property
    def countdown(self) -> int:
        return self._countdown

    @property
    def is_running(self) -> bool:
        return any(task is not None and not task.done() for task in (self._refresh_task, self._countdown_task))

    async def __aenter__(self) -> "TokenPresenter":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        await self._issue()
        self._customer_id = self._identity.user_id
        self._unsubscribe = self._identity.subscribe(self._on_identity_change)
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="qr-token-refresh")
        self._countdown_task = asyncio.create_task(self._countdown_loop(), name="qr-token-countdown")
        logger.info(
            "QR token presenter started",
            customer_id=self._customer_id,
            refresh_interval_seconds=self.refresh_interval_seconds,
        )

    async def stop(self) -> None:
        self._stop_event.set()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = [task for task in (self._refresh_task, self._countdown_task) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._refresh_task = None
        self._countdown_task = None
        if tasks:
            logger.info("QR token presenter stopped", customer_id=self._customer_id)

    async def wait_stopped(self) -> None:
        await self._stop_event.wait()

    def _on_identity_change(self, identity: IdentityContext) -> None:
        if not identity.is_customer or identity.user_id != self._customer_id:
            logger.info("Identity changed; halting QR token presenter", customer_id=self._customer_id)
            self._stop_event.set()

    async def _issue(self) -> None:
        self._current = issue_token(
            self._identity,
            codec=self._codec,
            renderer=self._renderer,
            store=self._store,
        )
        self._countdown = self._countdown_start
        await self._emit(self._on_token, self._current)

    async def _sleep(self, seconds: float) -> bool:
        """Wait for ``seconds``; return False if the presenter was stopped meanwhile."""

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return not self._stop_event.is_set()
        return False

    async def _refresh_loop(self) -> None:
        while await self._sleep(self.refresh_interval_seconds):
            await self._issue()

    async def _countdown_loop(self) -> None:
        while await self._sleep(self.countdown_step_seconds):
            self._countdown = self._countdown - 1 if self._countdown > 0 else self._countdown_start
            await self._emit(self._on_tick, self._countdown)

    async def _emit(self, listener: Callable[[Any], Any] | None, value: Any) -> None:
        if listener is None:
            return
        try:
            result = listener(value)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # pragma: no cover - listener fault
            logger.exception("QR presenter listener failed", error=str(exc))


__all__ = ["NoCustomerIdentityError", "PresentedToken", "TokenPresenter", "issue_token"]
