"""Staff-side redemption flow: scanned QR token -> confirmed loyalty stamp.

One coordinator serves one staff station. It walks a single attempt through

    idle -> decoding -> resolving_customer -> awaiting_confirmation -> crediting -> idle

and refuses to start another attempt until the current one is confirmed,
cancelled, or abandoned. The crediting procedure is called at most once per
confirmation and never retried automatically; a failed credit returns the
attempt to ``awaiting_confirmation`` so the operator can re-confirm.

Every public operation reports a :class:`RedemptionOutcome` rather than
raising, so a failed scan never tears down the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol
from uuid import UUID, uuid4

from loguru import logger

from nailbliss_api.observability.redemption import RedemptionObservabilityStore, get_redemption_store
from nailbliss_api.observability.tracing import get_tracer
from nailbliss_api.services.backend.supabase import (
    BackendAuthorizationError,
    BackendError,
    ProfileNotFoundError,
)
from nailbliss_api.services.identity import IdentityContext, Profile
from nailbliss_api.services.loyalty.card import LoyaltyCardSnapshot, compute_progress
from nailbliss_api.services.tokens.codec import TokenCodec

from .errors import (
    CreditingError,
    CustomerLookupError,
    InvalidTokenError,
    NoPendingAttemptError,
    Notice,
    NoticeKind,
    RedemptionBusyError,
    RedemptionError,
    StaffAuthorizationError,
)


_tracer = get_tracer(__name__)


class RedemptionState(str, Enum):
    IDLE = "idle"
    DECODING = "decoding"
    RESOLVING_CUSTOMER = "resolving_customer"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CREDITING = "crediting"


IN_FLIGHT_STATES = frozenset(
    {RedemptionState.DECODING, RedemptionState.RESOLVING_CUSTOMER, RedemptionState.CREDITING}
)


class AttemptStatus(str, Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class RedemptionAttempt:
    customer_id: str
    profile: Profile
    loyalty: LoyaltyCardSnapshot
    token_issued_at_ms: int
    id: UUID = field(default_factory=uuid4)
    scanned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: AttemptStatus = AttemptStatus.PENDING_CONFIRMATION
    last_error: str | None = None


@dataclass(frozen=True)
class RedemptionOutcome:
    state: RedemptionState
    notice: Notice
    attempt: RedemptionAttempt | None = None
    loyalty: LoyaltyCardSnapshot | None = None

    @property
    def ok(self) -> bool:
        return not self.notice.is_error


class LoyaltyBackend(Protocol):
    async def fetch_profile(self, user_id: str, *, access_token: str | None = None) -> Profile:
        ...

    async def fetch_loyalty_card(
        self, customer_id: str, *, access_token: str | None = None
    ) -> LoyaltyCardSnapshot:
        ...

    async def add_loyalty_point(
        self, customer_id: str, staff_id: str, *, access_token: str | None = None
    ) -> None:
        ...


class CoordinatorClosedError(RuntimeError):
    """Raised when a torn-down coordinator is asked to start new work."""


class RedemptionCoordinator:
    def __init__(
        self,
        identity: IdentityContext,
        *,
        backend: LoyaltyBackend,
        codec: TokenCodec,
        store: RedemptionObservabilityStore | None = None,
    ) -> None:
        self._identity = identity
        self._backend = backend
        self._codec = codec
        self._store = store or get_redemption_store()
        self._state = RedemptionState.IDLE
        self._attempt: RedemptionAttempt | None = None
        self._closed = False

    @property
    def state(self) -> RedemptionState:
        return self._state

    @property
    def attempt(self) -> RedemptionAttempt | None:
        return self._attempt

    @property
    def is_busy(self) -> bool:
        return self._state in IN_FLIGHT_STATES

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def identity(self) -> IdentityContext:
        return self._identity

    def current(self) -> RedemptionOutcome:
        if self._state is RedemptionState.AWAITING_CONFIRMATION and self._attempt is not None:
            return RedemptionOutcome(self._state, self._awaiting_notice(self._attempt), self._attempt)
        if self.is_busy:
            return RedemptionOutcome(self._state, RedemptionBusyError().to_notice(), self._attempt)
        return RedemptionOutcome(
            self._state,
            Notice(kind=NoticeKind.NO_ATTEMPT, title="Ready", message="Scan customer QR codes to add loyalty points"),
        )

    async def submit_scan(self, raw: str) -> RedemptionOutcome:
        """Decode a scanned string and load the customer for operator confirmation."""

        self._ensure_open()
        if self._state is not RedemptionState.IDLE:
            self._store.record_scan("busy")
            logger.info("Scan ignored; redemption already in progress", state=self._state.value)
            return RedemptionOutcome(self._state, RedemptionBusyError().to_notice(), self._attempt)

        try:
            staff_id = self._require_staff()
        except StaffAuthorizationError as exc:
            self._store.record_scan("unauthorized")
            return self._abandon(exc)

        self._state = RedemptionState.DECODING
        try:
            decoded = self._codec.decode(raw)
            if decoded is None:
                self._store.record_scan("invalid")
                logger.warning("Rejected invalid or expired QR code", staff_id=staff_id)
                return self._abandon(InvalidTokenError())

            self._state = RedemptionState.RESOLVING_CUSTOMER
            profile, loyalty = await self._resolve_customer(decoded.customer_id)
        except RedemptionError as exc:
            self._store.record_scan(exc.kind.value)
            return self._abandon(exc)
        except BaseException:
            # Cancelled mid-lookup: nothing was shown to the operator, so drop the scan.
            if self._state in (RedemptionState.DECODING, RedemptionState.RESOLVING_CUSTOMER):
                logger.info("Scan interrupted before confirmation", state=self._state.value)
                self._store.record_scan("interrupted")
                self._attempt = None
                self._state = RedemptionState.IDLE
            raise

        if self._closed:
            logger.info("Discarding customer lookup for torn-down station", customer_id=decoded.customer_id)
            self._state = RedemptionState.IDLE
            return RedemptionOutcome(
                self._state,
                Notice(kind=NoticeKind.CANCELLED, title="Scan Discarded", message="The scanner was closed."),
            )

        attempt = RedemptionAttempt(
            customer_id=decoded.customer_id,
            profile=profile,
            loyalty=loyalty,
            token_issued_at_ms=decoded.issued_at_ms,
        )
        self._attempt = attempt
        self._state = RedemptionState.AWAITING_CONFIRMATION
        self._store.record_scan("resolved")
        logger.info(
            "Redemption awaiting confirmation",
            attempt_id=str(attempt.id),
            customer_id=attempt.customer_id,
            staff_id=staff_id,
            points=loyalty.points,
        )
        return RedemptionOutcome(self._state, self._awaiting_notice(attempt), attempt)

    async def confirm(self) -> RedemptionOutcome:
        """Credit one stamp for the pending attempt. Never retried automatically."""

        self._ensure_open()
        if self._state is RedemptionState.CREDITING:
            logger.info("Duplicate confirmation ignored while crediting")
            return RedemptionOutcome(self._state, RedemptionBusyError().to_notice(), self._attempt)
        attempt = self._attempt
        if self._state is not RedemptionState.AWAITING_CONFIRMATION or attempt is None:
            return RedemptionOutcome(self._state, NoPendingAttemptError().to_notice())

        try:
            staff_id = self._require_staff()
        except StaffAuthorizationError as exc:
            attempt.status = AttemptStatus.FAILED
            return self._abandon(exc)

        self._state = RedemptionState.CREDITING
        # The remote call is not cancelled with the caller; its result is applied whenever it resolves.
        task = asyncio.ensure_future(self._credit(attempt, staff_id))
        return await asyncio.shield(task)

    async def _credit(self, attempt: RedemptionAttempt, staff_id: str) -> RedemptionOutcome:
        with _tracer.start_as_current_span("redemption.credit") as span:
            span.set_attribute("redemption.attempt_id", str(attempt.id))
            span.set_attribute("redemption.customer_id", attempt.customer_id)
            try:
                await self._backend.add_loyalty_point(
                    attempt.customer_id,
                    staff_id,
                    access_token=self._identity.access_token,
                )
            except BackendAuthorizationError as exc:
                span.set_attribute("redemption.result", "unauthorized")
                self._store.record_credit(succeeded=False)
                logger.warning(
                    "Crediting procedure refused staff member",
                    attempt_id=str(attempt.id),
                    staff_id=staff_id,
                    error=exc.message,
                )
                attempt.status = AttemptStatus.FAILED
                return self._abandon(
                    StaffAuthorizationError(
                        "You don't have permission to add stamps. Ask a manager to check your staff access."
                    )
                )
            except Exception as exc:
                span.set_attribute("redemption.result", "failed")
                self._store.record_credit(succeeded=False)
                self._store.record_failure(NoticeKind.CREDIT_FAILED.value)
                if isinstance(exc, BackendError):
                    logger.warning("Crediting procedure failed", attempt_id=str(attempt.id), error=exc.message)
                    detail = exc.message
                else:
                    logger.exception("Crediting procedure raised unexpectedly", attempt_id=str(attempt.id))
                    detail = None
                return self._credit_failed(attempt, CreditingError(detail))

            span.set_attribute("redemption.result", "credited")

        self._store.record_credit(succeeded=True)
        attempt.status = AttemptStatus.CONFIRMED
        logger.info(
            "Stamp credited",
            attempt_id=str(attempt.id),
            customer_id=attempt.customer_id,
            staff_id=staff_id,
        )
        notice = Notice(
            kind=NoticeKind.SUCCESS,
            title="Stamp Added Successfully! 🎉",
            message=f"{attempt.profile.display_name} earned a loyalty stamp!",
        )
        if self._closed:
            logger.info("Station closed while crediting; result not applied", attempt_id=str(attempt.id))
            return RedemptionOutcome(RedemptionState.IDLE, notice, attempt)

        self._attempt = None
        self._state = RedemptionState.IDLE
        refreshed = await self._refresh_loyalty(attempt.customer_id)
        return RedemptionOutcome(self._state, notice, attempt, loyalty=refreshed)

    def cancel(self) -> RedemptionOutcome:
        if self._state is RedemptionState.CREDITING:
            return RedemptionOutcome(self._state, RedemptionBusyError().to_notice(), self._attempt)
        attempt = self._attempt
        if self._state is not RedemptionState.AWAITING_CONFIRMATION or attempt is None:
            return RedemptionOutcome(self._state, NoPendingAttemptError().to_notice())

        attempt.status = AttemptStatus.CANCELLED
        self._attempt = None
        self._state = RedemptionState.IDLE
        self._store.record_scan("cancelled")
        logger.info("Redemption cancelled", attempt_id=str(attempt.id), customer_id=attempt.customer_id)
        return RedemptionOutcome(
            self._state,
            Notice(kind=NoticeKind.CANCELLED, title="Cancelled", message="No stamp was added."),
            attempt,
        )

    def close(self) -> None:
        """Tear down the station; in-flight results are no longer applied."""

        if self._closed:
            return
        if self._state is RedemptionState.AWAITING_CONFIRMATION:
            self.cancel()
        self._closed = True

    async def refresh_loyalty(self, customer_id: str) -> LoyaltyCardSnapshot:
        return await self._backend.fetch_loyalty_card(customer_id, access_token=self._identity.access_token)

    def _ensure_open(self) -> None:
        if self._closed:
            raise CoordinatorClosedError("Redemption coordinator has been closed")

    def _require_staff(self) -> str:
        if not self._identity.is_staff or self._identity.user_id is None:
            raise StaffAuthorizationError()
        return self._identity.user_id

    async def _resolve_customer(self, customer_id: str) -> tuple[Profile, LoyaltyCardSnapshot]:
        access_token = self._identity.access_token
        try:
            profile = await self._backend.fetch_profile(customer_id, access_token=access_token)
            loyalty = await self._backend.fetch_loyalty_card(customer_id, access_token=access_token)
        except ProfileNotFoundError as exc:
            logger.warning("Scanned customer has no profile", customer_id=customer_id)
            raise CustomerLookupError(not_found=True) from exc
        except BackendAuthorizationError as exc:
            logger.warning("Customer lookup refused", customer_id=customer_id, error=exc.message)
            raise StaffAuthorizationError() from exc
        except BackendError as exc:
            logger.warning("Customer lookup failed", customer_id=customer_id, error=exc.message)
            raise CustomerLookupError() from exc
        except Exception as exc:
            logger.exception("Customer lookup raised unexpectedly", customer_id=customer_id)
            raise CustomerLookupError() from exc
        return profile, loyalty

    async def _refresh_loyalty(self, customer_id: str) -> LoyaltyCardSnapshot | None:
        try:
            return await self.refresh_loyalty(customer_id)
        except BackendError as exc:
            logger.warning("Post-credit loyalty refresh failed", customer_id=customer_id, error=exc.message)
            return None
        except Exception:
            # The stamp is already credited; report success without a fresh card.
            logger.exception("Post-credit loyalty refresh raised unexpectedly", customer_id=customer_id)
            return None

    def _abandon(self, error: RedemptionError) -> RedemptionOutcome:
        self._store.record_failure(error.kind.value)
        self._attempt = None
        self._state = RedemptionState.IDLE
        return RedemptionOutcome(self._state, error.to_notice())

    def _credit_failed(self, attempt: RedemptionAttempt, error: CreditingError) -> RedemptionOutcome:
        attempt.last_error = error.user_message
        if self._closed:
            attempt.status = AttemptStatus.FAILED
            return RedemptionOutcome(RedemptionState.IDLE, error.to_notice(), attempt)
        self._state = RedemptionState.AWAITING_CONFIRMATION
        return RedemptionOutcome(self._state, error.to_notice(), attempt)

    @staticmethod
    def _awaiting_notice(attempt: RedemptionAttempt) -> Notice:
        progress = compute_progress(attempt.loyalty)
        return Notice(
            kind=NoticeKind.AWAITING_CONFIRMATION,
            title="Confirm Stamp",
            message=(
                f"{attempt.profile.display_name}: {progress.label} stamps, "
                f"{attempt.loyalty.total_visits} visits"
            ),
        )


__all__ = [
    "AttemptStatus",
    "CoordinatorClosedError",
    "IN_FLIGHT_STATES",
    "LoyaltyBackend",
    "RedemptionAttempt",
    "RedemptionCoordinator",
    "RedemptionOutcome",
    "RedemptionState",
]
