"""API endpoints for a customer's stamp card and card skin."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from nailbliss_api.api.dependencies.session import get_backend, require_customer
from nailbliss_api.services.backend import BackendAuthorizationError, BackendError, SupabaseBackend
from nailbliss_api.services.identity import IdentityContext
from nailbliss_api.services.loyalty import CardSkin, CardSkinTag, compute_progress, list_skins, resolve_skin


router = APIRouter(prefix="/loyalty", tags=["loyalty"])


class CardSkinResponse(BaseModel):
    tag: str
    name: str
    gradient: List[str]

    @classmethod
    def from_skin(cls, skin: CardSkin) -> "CardSkinResponse":
        return cls(tag=skin.tag.value, name=skin.name, gradient=list(skin.gradient))


class StampSlotResponse(BaseModel):
    index: int
    filled: bool
    isReward: bool


class LoyaltyCardResponse(BaseModel):
    customerId: str
    displayName: str
    initials: str
    points: int
    totalVisits: int
    lastVisitAt: Optional[datetime]
    stamps: int
    threshold: int
    stampsLabel: str
    stampsRemaining: int
    rewardReady: bool
    headline: str
    slots: List[StampSlotResponse]
    skin: CardSkinResponse


class SkinSelectionRequest(BaseModel):
    tag: CardSkinTag


@router.get("/card", response_model=LoyaltyCardResponse)
async def get_loyalty_card(
    identity: IdentityContext = Depends(require_customer),
    backend: SupabaseBackend = Depends(get_backend),
) -> LoyaltyCardResponse:
    """Return the signed-in customer's stamp card."""

    profile = identity.profile
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session is no longer valid")
    try:
        snapshot = await backend.fetch_loyalty_card(profile.id, access_token=identity.access_token)
    except BackendAuthorizationError as error:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session is no longer valid") from error
    except BackendError as error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Loyalty card lookup failed") from error

    progress = compute_progress(snapshot)
    return LoyaltyCardResponse(
        customerId=snapshot.customer_id,
        displayName=profile.display_name,
        initials=profile.initials,
        points=snapshot.points,
        totalVisits=snapshot.total_visits,
        lastVisitAt=snapshot.last_visit_at,
        stamps=progress.stamps,
        threshold=progress.threshold,
        stampsLabel=progress.label,
        stampsRemaining=progress.stamps_remaining,
        rewardReady=progress.reward_ready,
        headline=progress.headline,
        slots=[
            StampSlotResponse(index=slot.index, filled=slot.filled, isReward=slot.is_reward)
            for slot in progress.slots()
        ],
        skin=CardSkinResponse.from_skin(resolve_skin(profile.card_template)),
    )


@router.get("/skins", response_model=List[CardSkinResponse])
async def get_card_skins() -> List[CardSkinResponse]:
    return [CardSkinResponse.from_skin(skin) for skin in list_skins()]


@router.put("/card/skin", response_model=CardSkinResponse)
async def select_card_skin(
    payload: SkinSelectionRequest,
    identity: IdentityContext = Depends(require_customer),
    backend: SupabaseBackend = Depends(get_backend),
) -> CardSkinResponse:
    """Persist the customer's chosen card skin on their profile."""

    if identity.user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session is no longer valid")
    try:
        profile = await backend.update_card_template(
            identity.user_id,
            payload.tag.value,
            access_token=identity.access_token,
        )
    except BackendAuthorizationError as error:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session is no longer valid") from error
    except BackendError as error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not save card skin") from error
    return CardSkinResponse.from_skin(resolve_skin(profile.card_template))
