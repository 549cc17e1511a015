from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from weekendly.errors import PayloadValidationError
from weekendly.schemas import ActivityDraft, Day, format_validation_error

Difficulty = Literal["easy", "medium", "hard"]


class CatalogItem(BaseModel):
    id: str
    title: str
    description: str = ""
    category: str
    duration_min: int = Field(..., alias="durationMin", ge=1)
    difficulty: Difficulty = "easy"
    moods: List[str] = Field(default_factory=list)
    day: Optional[Day] = None
    start: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


DEFAULT_CATALOG: list[CatalogItem] = [
    CatalogItem(id="walk-park", title="Morning Park Walk", description="A calm stroll to start the day fresh.",
                category="Relax", duration_min=45, difficulty="easy", moods=["calm", "outdoors"]),
    CatalogItem(id="roller-thrill", title="Theme Park Thrills", description="Roller coasters and adrenaline rush.",
                category="Adventure", duration_min=180, difficulty="hard", moods=["energetic", "social"]),
    CatalogItem(id="brunch", title="Family Brunch", description="Pancakes, laughs, and stories.",
                category="Family", duration_min=90, difficulty="easy", moods=["social", "cozy"]),
    CatalogItem(id="museum", title="Local Museum Visit", description="Explore art and history exhibits.",
                category="Relax", duration_min=120, difficulty="medium", moods=["curious", "indoors"]),
    CatalogItem(id="hike", title="Trail Hike", description="Scenic route with moderate climb.",
                category="Adventure", duration_min=150, difficulty="medium", moods=["outdoors", "energetic"]),
    CatalogItem(id="movie-night", title="Cozy Movie Night", description="Blankets, snacks, feel-good film.",
                category="Relax", duration_min=120, difficulty="easy", moods=["cozy", "indoors"]),
    CatalogItem(id="picnic", title="Picnic in the Meadow", description="Sun, snacks, and board games.",
                category="Family", duration_min=100, difficulty="easy", moods=["outdoors", "cheerful"]),
    CatalogItem(id="craft", title="DIY Craft Session", description="Create something fun together.",
                category="Family", duration_min=75, difficulty="medium", moods=["creative", "indoors"]),
    CatalogItem(id="coffee-crawl", title="Cafe Hop", description="Visit a few cozy cafes nearby.",
                category="Relax", duration_min=90, difficulty="easy", moods=["social", "cozy"]),
    CatalogItem(id="game-arcade", title="Arcade Hour", description="Games, tickets, and friendly rivalry.",
                category="Adventure", duration_min=60, difficulty="easy", moods=["playful", "energetic"]),
]

_CATEGORY_MAP = {
    "adventure": "outdoor",
    "family": "other",
    "relax": "home",
}


def get_catalog_item(item_id: str) -> Optional[CatalogItem]:
    for item in DEFAULT_CATALOG:
        if item.id == item_id:
            return item
    return None


def parse_catalog_item(data) -> CatalogItem:
    try:
        return CatalogItem.model_validate(data)
    except ValidationError as exc:
        raise PayloadValidationError(format_validation_error(exc)) from exc


def map_category(category: str) -> str:
    return _CATEGORY_MAP.get(str(category or "").strip().lower(), "home")


def map_mood(moods: List[str]) -> Optional[str]:
    lower = [str(m).lower() for m in moods or []]
    if any(m in {"energetic", "playful"} for m in lower):
        return "energetic"
    if "social" in lower:
        return "social"
    if any(m in {"calm", "cozy"} for m in lower):
        return "chill"
    if any(m in {"curious", "creative"} for m in lower):
        return "focus"
    return None


def floor_duration(minutes: int, slot: int = 15) -> int:
    return max(slot, minutes - (minutes % slot))


def to_draft(item: CatalogItem, slot: int = 15) -> ActivityDraft:
    return ActivityDraft(
        title=item.title,
        category=map_category(item.category),
        duration_mins=floor_duration(item.duration_min, slot),
        mood=map_mood(item.moods),
        notes=item.description or "",
    )
