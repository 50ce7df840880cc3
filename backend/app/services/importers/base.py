"""
Canonical import result shared by every source adapter.

An adapter fetches a user's history from one provider and normalizes it into
an ImportResult. The orchestrator only ever sees these types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, Union

from pydantic import BaseModel

from app.schemas.imports import ImportFailedItem
from app.schemas.media import (
    CreateOrUpdateCollectionInput,
    MediaDetails,
    MetadataLot,
    MetadataSource,
)


@dataclass
class ImportItemSeen:
    id: str | None = None
    ended_on: datetime | None = None
    show_season_number: int | None = None
    show_episode_number: int | None = None
    podcast_episode_number: int | None = None


@dataclass
class ImportItemReview:
    text: str
    spoiler: bool = False
    date: datetime | None = None


@dataclass
class ImportItemRating:
    id: str | None = None
    rating: Decimal | None = None
    review: ImportItemReview | None = None


@dataclass(frozen=True)
class NeedsDetails:
    """The item only carries a provider identifier; details must be fetched."""

    identifier: str


@dataclass(frozen=True)
class AlreadyFilled:
    """Details are already filled and just need to be committed."""

    details: MediaDetails


ImportItemIdentifier = Union[NeedsDetails, AlreadyFilled]


@dataclass
class ImportItem:
    source_id: str
    lot: MetadataLot
    source: MetadataSource
    identifier: ImportItemIdentifier
    seen_history: list[ImportItemSeen] = field(default_factory=list)
    reviews: list[ImportItemRating] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    collections: list[CreateOrUpdateCollectionInput] = field(default_factory=list)
    media: list[ImportItem] = field(default_factory=list)
    failed_items: list[ImportFailedItem] = field(default_factory=list)


class SourceAdapter(Protocol):
    """Fetch-and-normalize contract implemented once per provider."""

    async def import_media(self, credentials: BaseModel) -> ImportResult:
        """Return the user's history, or raise SourceFetchError."""
        ...
