# cardsync/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Iterable, List, Optional, Tuple
from datetime import datetime
from enum import Enum

class ListingEntity(BaseModel):
    """One harvested card.

    `slug` is the extraction-time surrogate id; storage is keyed by
    `identity`, i.e. `(source, link)`.
    """
    slug: str = ""
    source: str
    title: str
    price: str = ""
    link: str = ""
    image_url: str = ""
    scraped_at: datetime

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.source, self.link)

    def to_row(self, now: datetime) -> Dict:
        return {
            "slug": self.slug,
            "source": self.source,
            "title": self.title,
            "price": self.price,
            "link": self.link,
            "image_url": self.image_url,
            "first_seen_at": now,
            "last_synced_at": now,
        }


def dedupe_by_identity(entities: Iterable[ListingEntity]) -> List[ListingEntity]:
    # later occurrences replace earlier ones and move to the end
    latest: Dict[Tuple[str, str], ListingEntity] = {}
    for entity in entities:
        latest.pop(entity.identity, None)
        latest[entity.identity] = entity
    return list(latest.values())


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: Optional[str]
    source: str
    title: str
    price: Optional[str]
    link: str
    image_url: Optional[str]
    first_seen_at: Optional[datetime]
    last_synced_at: Optional[datetime]


class RunState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class SyncReport(BaseModel):
    status: RunStatus
    trigger: str = "manual"
    started_at: datetime
    finished_at: Optional[datetime] = None
    fetched: int = 0
    saved: int = 0
    notified: int = Field(0, description="cards delivered to the webhook")
    error: Optional[str] = None
    stage: Optional[RunState] = Field(None, description="stage that failed, if any")
