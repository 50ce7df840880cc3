from app.schemas.imports import ImportSource
from app.services.importers.base import (
    AlreadyFilled,
    ImportItem,
    ImportItemIdentifier,
    ImportItemRating,
    ImportItemReview,
    ImportItemSeen,
    ImportResult,
    NeedsDetails,
    SourceAdapter,
)
from app.services.importers.goodreads import GoodreadsImporter
from app.services.importers.media_tracker import MediaTrackerImporter


def default_adapters() -> dict[ImportSource, SourceAdapter]:
    """One adapter per supported import source."""
    return {
        ImportSource.MEDIA_TRACKER: MediaTrackerImporter(),
        ImportSource.GOODREADS: GoodreadsImporter(),
    }


__all__ = [
    "AlreadyFilled",
    "GoodreadsImporter",
    "ImportItem",
    "ImportItemIdentifier",
    "ImportItemRating",
    "ImportItemReview",
    "ImportItemSeen",
    "ImportResult",
    "MediaTrackerImporter",
    "NeedsDetails",
    "SourceAdapter",
    "default_adapters",
]
