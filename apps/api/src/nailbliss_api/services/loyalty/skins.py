"""Card skins: a closed set of named visual variants keyed by a string tag."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CardSkinTag(str, Enum):
    PINK = "pink"
    GOLD = "gold"
    FLORAL = "floral"
    MINIMALIST = "minimalist"


@dataclass(frozen=True)
class CardSkin:
    tag: CardSkinTag
    name: str
    gradient: tuple[str, str, str]


CARD_SKINS: dict[CardSkinTag, CardSkin] = {
    CardSkinTag.PINK: CardSkin(CardSkinTag.PINK, "Rose Blush", ("#fb7185", "#ec4899", "#9333ea")),
    CardSkinTag.GOLD: CardSkin(CardSkinTag.GOLD, "Golden Hour", ("#fbbf24", "#eab308", "#ea580c")),
    CardSkinTag.FLORAL: CardSkin(CardSkinTag.FLORAL, "Ocean Breeze", ("#34d399", "#14b8a6", "#0891b2")),
    CardSkinTag.MINIMALIST: CardSkin(CardSkinTag.MINIMALIST, "Midnight", ("#4b5563", "#334155", "#1f2937")),
}

DEFAULT_SKIN = CardSkinTag.PINK


def resolve_skin(tag: str | None) -> CardSkin:
    """Look up a skin by tag; unknown or missing tags fall back to the default."""

    try:
        return CARD_SKINS[CardSkinTag(tag)]
    except ValueError:
        return CARD_SKINS[DEFAULT_SKIN]


def list_skins() -> list[CardSkin]:
    return list(CARD_SKINS.values())


__all__ = ["CARD_SKINS", "CardSkin", "CardSkinTag", "DEFAULT_SKIN", "list_skins", "resolve_skin"]
