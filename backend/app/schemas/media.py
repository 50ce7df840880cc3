from datetime import date as Date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MetadataLot(str, Enum):
    """The kind of media a record describes."""

    AUDIO_BOOK = "audio_book"
    BOOK = "book"
    MOVIE = "movie"
    PODCAST = "podcast"
    SHOW = "show"
    VIDEO_GAME = "video_game"


class MetadataSource(str, Enum):
    """The provider a media record's identifier belongs to."""

    AUDIBLE = "audible"
    CUSTOM = "custom"
    GOODREADS = "goodreads"
    IGDB = "igdb"
    ITUNES = "itunes"
    OPENLIBRARY = "openlibrary"
    TMDB = "tmdb"


class MediaDetails(BaseModel):
    """Full details of a media item, ready to be committed."""

    identifier: str
    lot: MetadataLot
    source: MetadataSource
    title: str
    description: str | None = None
    creators: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    publish_year: int | None = None
    specifics: dict[str, Any] = Field(default_factory=dict)  # e.g. {"pages": 432}


class ProgressUpdateInput(BaseModel):
    metadata_id: int
    identifier: str | None = None  # external id, used to skip re-imported entries
    progress: int = Field(100, ge=0, le=100)
    date: Date | None = None
    show_season_number: int | None = None
    show_episode_number: int | None = None
    podcast_episode_number: int | None = None


class PostReviewInput(BaseModel):
    metadata_id: int
    identifier: str | None = None
    rating: Decimal | None = None
    text: str | None = None
    spoiler: bool | None = None
    date: datetime | None = None


class CreateOrUpdateCollectionInput(BaseModel):
    name: str
    description: str | None = None


class AddMediaToCollection(BaseModel):
    collection_name: str
    media_id: int
