"""Tests for the Open Library and TMDB metadata providers."""

import asyncio

import httpx
import pytest

from app.core.exceptions import ProviderCommitError
from app.schemas.media import MetadataLot, MetadataSource
from app.services.external_apis import OpenLibraryClient, TmdbClient

OPEN_LIBRARY = {
    "/works/OL27482W.json": {
        "title": "The Hobbit",
        "description": {"type": "/type/text", "value": "A hobbit goes on an adventure."},
        "authors": [{"author": {"key": "/authors/OL26320A"}}],
        "covers": [14625765],
        "first_publish_date": "September 21, 1937",
        "subjects": ["Fantasy", "Dragons"],
    },
    "/authors/OL26320A.json": {"name": "J.R.R. Tolkien"},
}


def json_transport(responses: dict) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path not in responses:
            return httpx.Response(404)
        return httpx.Response(200, json=responses[request.url.path])

    return httpx.MockTransport(handler)


class TestOpenLibraryClient:
    def test_work_details(self):
        client = OpenLibraryClient(transport=json_transport(OPEN_LIBRARY))

        details = asyncio.run(client.details("OL27482W", MetadataLot.BOOK))

        assert details.source == MetadataSource.OPENLIBRARY
        assert details.title == "The Hobbit"
        assert details.description == "A hobbit goes on an adventure."
        assert details.creators == ["J.R.R. Tolkien"]
        assert details.images == ["https://covers.openlibrary.org/b/id/14625765-L.jpg"]
        assert details.publish_year == 1937
        assert details.specifics == {"subjects": ["Fantasy", "Dragons"]}

    def test_missing_work(self):
        client = OpenLibraryClient(transport=json_transport({}))

        with pytest.raises(ProviderCommitError, match="OL0W"):
            asyncio.run(client.details("OL0W", MetadataLot.BOOK))

    def test_extract_year(self):
        assert OpenLibraryClient._extract_year("1937") == 1937
        assert OpenLibraryClient._extract_year("circa 2015?") == 2015
        assert OpenLibraryClient._extract_year("") is None


class TestTmdbClient:
    def test_movie_details(self):
        transport = json_transport(
            {
                "/3/movie/603": {
                    "title": "The Matrix",
                    "overview": "A hacker learns the truth.",
                    "release_date": "1999-03-30",
                    "poster_path": "/poster.jpg",
                    "runtime": 136,
                    "production_companies": [{"name": "Warner Bros."}],
                }
            }
        )
        client = TmdbClient(transport=transport)
        client.api_key = "test-key"

        details = asyncio.run(client.details("603", MetadataLot.MOVIE))

        assert details.title == "The Matrix"
        assert details.publish_year == 1999
        assert details.images == ["https://image.tmdb.org/t/p/original/poster.jpg"]
        assert details.specifics == {"runtime": 136}
        assert details.creators == ["Warner Bros."]

    def test_requires_api_key(self):
        client = TmdbClient(transport=json_transport({}))
        client.api_key = ""

        with pytest.raises(ProviderCommitError, match="TMDB_API_KEY"):
            asyncio.run(client.details("603", MetadataLot.MOVIE))

    def test_unsupported_lot(self):
        client = TmdbClient(transport=json_transport({}))
        client.api_key = "test-key"

        with pytest.raises(ProviderCommitError, match="book"):
            asyncio.run(client.details("1", MetadataLot.BOOK))
