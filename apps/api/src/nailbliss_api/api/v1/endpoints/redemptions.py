"""Staff endpoints for scanning customer QR codes and confirming stamps."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from nailbliss_api.api.dependencies.session import get_stations, require_staff
from nailbliss_api.services.identity import IdentityContext, Profile
from nailbliss_api.services.loyalty import LoyaltyCardSnapshot, compute_progress
from nailbliss_api.services.redemption import (
    NoticeKind,
    RedemptionAttempt,
    RedemptionCoordinator,
    RedemptionOutcome,
    StationRegistry,
)


router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


_STATUS_BY_NOTICE: dict[NoticeKind, int] = {
    NoticeKind.SUCCESS: status.HTTP_200_OK,
    NoticeKind.AWAITING_CONFIRMATION: status.HTTP_200_OK,
    NoticeKind.CANCELLED: status.HTTP_200_OK,
    NoticeKind.INVALID_CODE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NoticeKind.CUSTOMER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    NoticeKind.LOOKUP_FAILED: status.HTTP_502_BAD_GATEWAY,
    NoticeKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    NoticeKind.CREDIT_FAILED: status.HTTP_502_BAD_GATEWAY,
    NoticeKind.BUSY: status.HTTP_409_CONFLICT,
    NoticeKind.NO_ATTEMPT: status.HTTP_409_CONFLICT,
}


class ScanRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=4096, description="Raw string decoded from the QR code")


class NoticeResponse(BaseModel):
    kind: str
    title: str
    message: str
    isError: bool


class CustomerCardResponse(BaseModel):
    customerId: str
    displayName: str
    initials: str
    username: Optional[str]
    avatarUrl: Optional[str]
    points: int
    totalVisits: int
    stamps: int
    threshold: int
    stampsLabel: str
    rewardReady: bool
    lastVisitAt: Optional[datetime]

    @classmethod
    def build(cls, profile: Profile, loyalty: LoyaltyCardSnapshot) -> "CustomerCardResponse":
        progress = compute_progress(loyalty)
        return cls(
            customerId=loyalty.customer_id,
            displayName=profile.display_name,
            initials=profile.initials,
            username=profile.username,
            avatarUrl=profile.avatar_url,
            points=loyalty.points,
            totalVisits=loyalty.total_visits,
            stamps=progress.stamps,
            threshold=progress.threshold,
            stampsLabel=progress.label,
            rewardReady=progress.reward_ready,
            lastVisitAt=loyalty.last_visit_at,
        )


class AttemptResponse(BaseModel):
    id: UUID
    status: str
    scannedAt: datetime
    lastError: Optional[str]
    customer: CustomerCardResponse

    @classmethod
    def from_attempt(cls, attempt: RedemptionAttempt) -> "AttemptResponse":
        return cls(
            id=attempt.id,
            status=attempt.status.value,
            scannedAt=attempt.scanned_at,
            lastError=attempt.last_error,
            customer=CustomerCardResponse.build(attempt.profile, attempt.loyalty),
        )


class RedemptionResponse(BaseModel):
    state: str
    notice: NoticeResponse
    attempt: Optional[AttemptResponse] = None
    updatedCard: Optional[CustomerCardResponse] = None

    @classmethod
    def from_outcome(cls, outcome: RedemptionOutcome) -> "RedemptionResponse":
        attempt = outcome.attempt
        updated = None
        if outcome.loyalty is not None and attempt is not None:
            updated = CustomerCardResponse.build(attempt.profile, outcome.loyalty)
        return cls(
            state=outcome.state.value,
            notice=NoticeResponse(
                kind=outcome.notice.kind.value,
                title=outcome.notice.title,
                message=outcome.notice.message,
                isError=outcome.notice.is_error,
            ),
            attempt=AttemptResponse.from_attempt(attempt) if attempt is not None else None,
            updatedCard=updated,
        )


def _station(identity: IdentityContext, stations: StationRegistry) -> RedemptionCoordinator:
    if identity.session is None or identity.profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to use the scanner")
    return stations.station_for(identity.session, identity.profile)


def _respond(outcome: RedemptionOutcome, response: Response) -> RedemptionResponse:
    response.status_code = _STATUS_BY_NOTICE.get(outcome.notice.kind, status.HTTP_200_OK)
    return RedemptionResponse.from_outcome(outcome)


@router.get("/current", response_model=RedemptionResponse, summary="Current redemption state for this station")
async def current_redemption(
    identity: IdentityContext = Depends(require_staff),
    stations: StationRegistry = Depends(get_stations),
) -> RedemptionResponse:
    return RedemptionResponse.from_outcome(_station(identity, stations).current())


@router.post("/scan", response_model=RedemptionResponse, summary="Submit a scanned QR code")
async def submit_scan(
    payload: ScanRequest,
    response: Response,
    identity: IdentityContext = Depends(require_staff),
    stations: StationRegistry = Depends(get_stations),
) -> RedemptionResponse:
    outcome = await _station(identity, stations).submit_scan(payload.code)
    return _respond(outcome, response)


@router.post("/confirm", response_model=RedemptionResponse, summary="Confirm the pending stamp")
async def confirm_redemption(
    response: Response,
    identity: IdentityContext = Depends(require_staff),
    stations: StationRegistry = Depends(get_stations),
) -> RedemptionResponse:
    outcome = await _station(identity, stations).confirm()
    return _respond(outcome, response)


@router.post("/cancel", response_model=RedemptionResponse, summary="Cancel the pending stamp")
async def cancel_redemption(
    response: Response,
    identity: IdentityContext = Depends(require_staff),
    stations: StationRegistry = Depends(get_stations),
) -> RedemptionResponse:
    outcome = _station(identity, stations).cancel()
    return _respond(outcome, response)


@router.delete("/station", status_code=status.HTTP_204_NO_CONTENT, summary="Close this staff station")
async def close_station(
    identity: IdentityContext = Depends(require_staff),
    stations: StationRegistry = Depends(get_stations),
) -> Response:
    if identity.user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to use the scanner")
    stations.release(identity.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
