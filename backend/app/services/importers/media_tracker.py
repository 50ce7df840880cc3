"""
MediaTracker importer.

Talks to a self-hosted MediaTracker instance through its JSON API. Every item
is returned as NeedsDetails: MediaTracker exposes the provider ids (TMDB, Open
Library, IGDB, Audible) and the details are fetched again at commit time.
"""

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx

from app.core.config import get_settings
from app.core.exceptions import SourceFetchError
from app.core.logging import get_logger
from app.schemas.imports import DeployMediaTrackerImportInput
from app.schemas.media import CreateOrUpdateCollectionInput, MetadataLot, MetadataSource
from app.services.importers.base import (
    ImportItem,
    ImportItemRating,
    ImportItemReview,
    ImportItemSeen,
    ImportResult,
    NeedsDetails,
)

logger = get_logger(__name__)

# mediaType -> (lot, provider, key holding the provider id)
MEDIA_TYPES: dict[str, tuple[MetadataLot, MetadataSource, str]] = {
    "audiobook": (MetadataLot.AUDIO_BOOK, MetadataSource.AUDIBLE, "audibleId"),
    "book": (MetadataLot.BOOK, MetadataSource.OPENLIBRARY, "openlibraryId"),
    "movie": (MetadataLot.MOVIE, MetadataSource.TMDB, "tmdbId"),
    "tv": (MetadataLot.SHOW, MetadataSource.TMDB, "tmdbId"),
    "video_game": (MetadataLot.VIDEO_GAME, MetadataSource.IGDB, "igdbId"),
}

WATCHLIST_COLLECTION = "Watchlist"


class MediaTrackerImporter:
    """Source adapter for MediaTracker."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.transport = transport
        self.timeout = get_settings().HTTP_TIMEOUT_SECONDS

    async def import_media(self, credentials: DeployMediaTrackerImportInput) -> ImportResult:
        try:
            async with httpx.AsyncClient(
                base_url=f"{credentials.api_url}/api",
                headers={"Access-Token": credentials.api_key},
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                return await self._import(client)
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Could not fetch from MediaTracker: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise SourceFetchError(f"Unexpected response from MediaTracker: {e!r}") from e

    async def _import(self, client: httpx.AsyncClient) -> ImportResult:
        user = await self._get(client, "/user")

        collections: list[CreateOrUpdateCollectionInput] = []
        item_collections: dict[int, list[str]] = defaultdict(list)
        for media_list in await self._get(client, "/lists", params={"userId": user["id"]}):
            if media_list.get("isWatchlist"):
                name = WATCHLIST_COLLECTION
            else:
                name = media_list["name"].strip()
            collections.append(
                CreateOrUpdateCollectionInput(
                    name=name, description=media_list.get("description") or None
                )
            )
            list_items = await self._get(client, "/list/items", params={"listId": media_list["id"]})
            for entry in list_items:
                item_collections[entry["mediaItem"]["id"]].append(name)

        media: list[ImportItem] = []
        for item in await self._get(client, "/items"):
            details = await self._get(client, f"/details/{item['id']}")
            parsed = self._parse_item(details, item_collections.get(details["id"], []))
            if parsed:
                media.append(parsed)

        logger.info(f"Fetched {len(media)} items and {len(collections)} lists from MediaTracker")
        return ImportResult(collections=collections, media=media)

    @staticmethod
    async def _get(client: httpx.AsyncClient, path: str, **kwargs) -> Any:
        response = await client.get(path, **kwargs)
        response.raise_for_status()
        return response.json()

    def _parse_item(self, details: dict, collections: list[str]) -> ImportItem | None:
        media_type = details.get("mediaType")
        if media_type not in MEDIA_TYPES:
            logger.warning(f"Skipping MediaTracker item {details['id']}: unsupported type {media_type}")
            return None

        lot, source, id_key = MEDIA_TYPES[media_type]
        identifier = details.get(id_key)
        if not identifier:
            logger.warning(f"Skipping MediaTracker item {details['id']}: no {id_key}")
            return None
        identifier = str(identifier)
        if source == MetadataSource.OPENLIBRARY:
            identifier = identifier.replace("/works/", "")

        # episodeId -> (season, episode)
        episodes: dict[int, tuple[int, int]] = {}
        for season in details.get("seasons") or []:
            for episode in season.get("episodes") or []:
                episodes[episode["id"]] = (episode["seasonNumber"], episode["episodeNumber"])

        seen_history = []
        for seen in details.get("seenHistory") or []:
            season_number, episode_number = episodes.get(seen.get("episodeId"), (None, None))
            seen_history.append(
                ImportItemSeen(
                    id=str(seen["id"]),
                    ended_on=_from_millis(seen.get("date")),
                    show_season_number=season_number,
                    show_episode_number=episode_number,
                )
            )

        reviews = []
        user_rating = details.get("userRating")
        if user_rating and (user_rating.get("rating") is not None or user_rating.get("review")):
            reviews.append(
                ImportItemRating(
                    id=str(user_rating["id"]),
                    rating=_to_decimal(user_rating.get("rating")),
                    review=(
                        ImportItemReview(
                            text=user_rating["review"],
                            date=_from_millis(user_rating.get("date")),
                        )
                        if user_rating.get("review")
                        else None
                    ),
                )
            )

        return ImportItem(
            source_id=str(details["id"]),
            lot=lot,
            source=source,
            identifier=NeedsDetails(identifier),
            seen_history=seen_history,
            reviews=reviews,
            collections=list(collections),
        )


def _from_millis(value: int | None) -> datetime | None:
    """MediaTracker timestamps are epoch milliseconds."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))
