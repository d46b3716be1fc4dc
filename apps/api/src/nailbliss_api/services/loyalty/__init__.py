"""Loyalty card exports."""

from .card import (  # noqa: F401
    CardProgress,
    LoyaltyCardSnapshot,
    StampSlot,
    compute_progress,
)
from .skins import (  # noqa: F401
    CARD_SKINS,
    CardSkin,
    CardSkinTag,
    list_skins,
    resolve_skin,
)
