"""
Goodreads RSS importer.

Goodreads exposes a user's shelves as a paginated RSS feed (the "RSS" link on
a profile's "My Books" page). Each feed item carries enough book details to
commit the media directly, so every item is returned as AlreadyFilled.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET
import httpx

from app.core.config import get_settings
from app.core.exceptions import SourceFetchError
from app.core.logging import get_logger
from app.schemas.imports import DeployGoodreadsImportInput
from app.schemas.media import (
    CreateOrUpdateCollectionInput,
    MediaDetails,
    MetadataLot,
    MetadataSource,
)
from app.services.importers.base import (
    AlreadyFilled,
    ImportItem,
    ImportItemRating,
    ImportItemReview,
    ImportItemSeen,
    ImportResult,
)

logger = get_logger(__name__)

# Goodreads serves at most 100 items per page
MAX_PAGES = 200

READ_SHELF = "read"
SHELF_COLLECTIONS = {
    "to-read": "Watchlist",
    "currently-reading": "In Progress",
}

_TAG_RE = re.compile(r"<[^>]+>")


class GoodreadsImporter:
    """Source adapter for a Goodreads shelf RSS feed."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.transport = transport
        self.timeout = get_settings().HTTP_TIMEOUT_SECONDS

    async def import_media(self, credentials: DeployGoodreadsImportInput) -> ImportResult:
        items: list[Element] = []
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                for page in range(1, MAX_PAGES + 1):
                    page_items = await self._fetch_page(client, credentials.rss_url, page)
                    if not page_items:
                        break
                    items.extend(page_items)
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Could not fetch Goodreads feed: {e}") from e
        except (ParseError, ValueError) as e:
            # defusedxml rejects entity tricks with ValueError subclasses
            raise SourceFetchError(f"Goodreads feed is not valid XML: {e}") from e

        media: list[ImportItem] = []
        collection_names: list[str] = []
        for element in items:
            try:
                item = self._parse_item(element)
            except (KeyError, ValueError) as e:
                raise SourceFetchError(f"Unexpected Goodreads feed item: {e!r}") from e
            for name in item.collections:
                if name not in collection_names:
                    collection_names.append(name)
            media.append(item)

        logger.info(f"Fetched {len(media)} books from Goodreads")
        return ImportResult(
            collections=[CreateOrUpdateCollectionInput(name=n) for n in collection_names],
            media=media,
        )

    @staticmethod
    async def _fetch_page(client: httpx.AsyncClient, rss_url: str, page: int) -> list[Element]:
        separator = "&" if "?" in rss_url else "?"
        response = await client.get(f"{rss_url}{separator}page={page}")
        response.raise_for_status()
        root = ET.fromstring(response.content)
        return root.findall("./channel/item")

    def _parse_item(self, element: Element) -> ImportItem:
        book_id = _text(element, "book_id")
        if not book_id:
            raise KeyError("book_id")
        guid = _text(element, "guid") or book_id

        image = _text(element, "book_large_image_url") or _text(element, "book_image_url")
        num_pages = _text(element, "book/num_pages")
        details = MediaDetails(
            identifier=book_id,
            lot=MetadataLot.BOOK,
            source=MetadataSource.GOODREADS,
            title=_text(element, "title") or book_id,
            description=_strip_html(_text(element, "book_description")),
            creators=[a for a in [_text(element, "author_name")] if a],
            images=[image] if image else [],
            publish_year=_to_int(_text(element, "book_published")),
            specifics={"pages": _to_int(num_pages)} if num_pages else {},
        )

        shelves = [s.strip() for s in (_text(element, "user_shelves") or "").split(",") if s.strip()]
        read_at = _parse_date(_text(element, "user_read_at"))

        seen_history = []
        if read_at or READ_SHELF in shelves:
            seen_history.append(ImportItemSeen(id=guid, ended_on=read_at))

        reviews = []
        rating = _to_decimal(_text(element, "user_rating"))
        review_text = _strip_html(_text(element, "user_review"))
        if rating or review_text:
            reviews.append(
                ImportItemRating(
                    id=guid,
                    rating=rating or None,
                    review=(
                        ImportItemReview(
                            text=review_text,
                            date=_parse_date(_text(element, "user_date_created")),
                        )
                        if review_text
                        else None
                    ),
                )
            )

        collections = []
        for shelf in shelves:
            if shelf == READ_SHELF:
                continue
            collections.append(SHELF_COLLECTIONS.get(shelf, shelf))

        return ImportItem(
            source_id=book_id,
            lot=MetadataLot.BOOK,
            source=MetadataSource.GOODREADS,
            identifier=AlreadyFilled(details),
            seen_history=seen_history,
            reviews=reviews,
            collections=collections,
        )


def _text(element: Element, path: str) -> str | None:
    found = element.find(path)
    if found is None or found.text is None:
        return None
    value = found.text.strip()
    return value or None


def _strip_html(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = _TAG_RE.sub(" ", value)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or None


def _parse_date(value: str | None) -> datetime | None:
    """Parse an RFC 2822 date into naive UTC."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _to_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _to_decimal(value: str | None) -> Decimal | None:
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        return None
