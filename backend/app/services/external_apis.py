"""
External metadata providers.

Used by the media service to resolve an item that only carries a provider
identifier into full media details.

Supports:
- Open Library API (books)
- TMDB API (movies and shows)
"""

import re
from typing import Any, Protocol

import httpx

from app.core.config import get_settings
from app.core.exceptions import ProviderCommitError
from app.schemas.media import MediaDetails, MetadataLot, MetadataSource


class MetadataProvider(Protocol):
    async def details(self, identifier: str, lot: MetadataLot) -> MediaDetails: ...


class OpenLibraryClient:
    """Client for Open Library API."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        settings = get_settings()
        self.base_url = settings.OPEN_LIBRARY_BASE_URL
        self.covers_url = settings.OPEN_LIBRARY_COVERS_URL
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def details(self, identifier: str, lot: MetadataLot) -> MediaDetails:
        """
        Fetch a work by its Open Library id.

        Args:
            identifier: Work id, e.g. "OL27482W"
            lot: Always MetadataLot.BOOK for this provider

        Raises:
            ProviderCommitError: if the work cannot be fetched
        """
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"User-Agent": "MediaImportService/1.0"},
        ) as client:
            try:
                response = await client.get(f"/works/{identifier}.json")
                response.raise_for_status()
                data = response.json()
                creators = [
                    await self._get_author_name(client, entry["author"]["key"])
                    for entry in data.get("authors", [])
                    if entry.get("author", {}).get("key")
                ]
            except httpx.HTTPError as e:
                raise ProviderCommitError(f"Open Library lookup failed for {identifier}: {e}") from e

        covers = data.get("covers") or []
        return MediaDetails(
            identifier=identifier,
            lot=lot,
            source=MetadataSource.OPENLIBRARY,
            title=data.get("title") or identifier,
            description=self._parse_description(data.get("description")),
            creators=[c for c in creators if c],
            images=[f"{self.covers_url}/b/id/{c}-L.jpg" for c in covers[:1] if c and c > 0],
            publish_year=self._extract_year(data.get("first_publish_date", "")),
            specifics={"subjects": data.get("subjects", [])[:10]},
        )

    async def _get_author_name(self, client: httpx.AsyncClient, author_key: str) -> str | None:
        response = await client.get(f"{author_key}.json")
        if response.status_code != 200:
            return None
        return response.json().get("name")

    @staticmethod
    def _parse_description(description: Any) -> str | None:
        if isinstance(description, dict):
            return description.get("value")
        elif isinstance(description, str):
            return description
        return None

    @staticmethod
    def _extract_year(date_str: str) -> int | None:
        """Extract year from a date string."""
        if not date_str:
            return None
        match = re.search(r"\b(1[5-9]|20)\d{2}\b", date_str)
        if match:
            return int(match.group())
        return None


class TmdbClient:
    """Client for the TMDB v3 API."""

    PATHS = {
        MetadataLot.MOVIE: "movie",
        MetadataLot.SHOW: "tv",
    }

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        settings = get_settings()
        self.base_url = settings.TMDB_BASE_URL
        self.image_url = settings.TMDB_IMAGE_URL
        self.api_key = settings.TMDB_API_KEY
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def details(self, identifier: str, lot: MetadataLot) -> MediaDetails:
        if lot not in self.PATHS:
            raise ProviderCommitError(f"TMDB does not provide {lot.value} metadata")
        if not self.api_key:
            raise ProviderCommitError("TMDB_API_KEY is not configured")

        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.get(
                    f"/{self.PATHS[lot]}/{identifier}", params={"api_key": self.api_key}
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise ProviderCommitError(f"TMDB lookup failed for {identifier}: {e}") from e

        release = data.get("release_date") or data.get("first_air_date") or ""
        poster = data.get("poster_path")
        if lot == MetadataLot.MOVIE:
            specifics = {"runtime": data.get("runtime")}
        else:
            specifics = {
                "seasons": data.get("number_of_seasons"),
                "episodes": data.get("number_of_episodes"),
            }

        return MediaDetails(
            identifier=identifier,
            lot=lot,
            source=MetadataSource.TMDB,
            title=data.get("title") or data.get("name") or identifier,
            description=data.get("overview") or None,
            creators=[c["name"] for c in data.get("production_companies", []) if c.get("name")],
            images=[f"{self.image_url}{poster}"] if poster else [],
            publish_year=int(release[:4]) if release[:4].isdigit() else None,
            specifics=specifics,
        )


def default_providers() -> dict[MetadataSource, MetadataProvider]:
    return {
        MetadataSource.OPENLIBRARY: OpenLibraryClient(),
        MetadataSource.TMDB: TmdbClient(),
    }
