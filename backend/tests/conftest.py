"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Must be set before the app (and its engine) is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.database import Base, get_db  # noqa: E402
from app.core.exceptions import ProviderCommitError  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User  # noqa: E402
from app.schemas.imports import ImportSource  # noqa: E402
from app.schemas.media import MediaDetails, MetadataLot, MetadataSource  # noqa: E402
from app.services.import_service import ImporterService  # noqa: E402
from app.services.importers import ImportResult  # noqa: E402
from app.services.job_queue import InMemoryJobQueue  # noqa: E402
from app.services.media_service import MediaService  # noqa: E402

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    # Create all tables
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user."""
    user = User(email="test@example.com", username="testuser")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def memory_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


class FakeAdapter:
    """Source adapter returning a canned result (or raising a canned error)."""

    def __init__(self, result: ImportResult | None = None, error: Exception | None = None):
        self.result = result or ImportResult()
        self.error = error
        self.calls = []

    async def import_media(self, credentials):
        self.calls.append(credentials)
        if self.error:
            raise self.error
        return self.result


class FakeProvider:
    """Metadata provider that fails for identifiers listed in ``failing``."""

    def __init__(self, source: MetadataSource = MetadataSource.OPENLIBRARY, failing=()):
        self.source = source
        self.failing = set(failing)
        self.calls = []

    async def details(self, identifier: str, lot: MetadataLot) -> MediaDetails:
        self.calls.append(identifier)
        if identifier in self.failing:
            raise ProviderCommitError(f"{identifier} not found")
        return MediaDetails(
            identifier=identifier,
            lot=lot,
            source=self.source,
            title=f"Title {identifier}",
        )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_importer(db: Session, memory_queue: InMemoryJobQueue, fake_provider: FakeProvider):
    """Build an ImporterService wired to in-memory fakes."""

    def _make(adapter: FakeAdapter, source: ImportSource = ImportSource.MEDIA_TRACKER):
        media_service = MediaService(
            db,
            memory_queue,
            providers={
                MetadataSource.OPENLIBRARY: fake_provider,
                MetadataSource.TMDB: fake_provider,
            },
        )
        return ImporterService(db, memory_queue, media_service, adapters={source: adapter})

    return _make


# Two-item Goodreads shelf feed
SAMPLE_GOODREADS_RSS = b"""<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>testuser's bookshelf: all</title>
    <item>
      <guid><![CDATA[https://www.goodreads.com/review/show/111]]></guid>
      <title><![CDATA[The Hobbit]]></title>
      <book_id>5907</book_id>
      <book_image_url><![CDATA[https://images.example.com/hobbit-small.jpg]]></book_image_url>
      <book_large_image_url><![CDATA[https://images.example.com/hobbit-large.jpg]]></book_large_image_url>
      <book_description><![CDATA[<b>In a hole</b> in the ground]]></book_description>
      <book id="5907">
        <num_pages>366</num_pages>
      </book>
      <author_name>J.R.R. Tolkien</author_name>
      <user_rating>5</user_rating>
      <user_read_at><![CDATA[Sat, 13 Jan 2024 00:00:00 +0000]]></user_read_at>
      <user_date_created><![CDATA[Mon, 01 Jan 2024 10:00:00 -0800]]></user_date_created>
      <user_shelves>favorites</user_shelves>
      <user_review><![CDATA[Loved it]]></user_review>
      <book_published>1937</book_published>
    </item>
    <item>
      <guid><![CDATA[https://www.goodreads.com/review/show/222]]></guid>
      <title><![CDATA[Dune]]></title>
      <book_id>234225</book_id>
      <book_image_url><![CDATA[https://images.example.com/dune-small.jpg]]></book_image_url>
      <book_description></book_description>
      <author_name>Frank Herbert</author_name>
      <user_rating>0</user_rating>
      <user_read_at></user_read_at>
      <user_shelves>to-read</user_shelves>
      <user_review></user_review>
      <book_published>1965</book_published>
    </item>
  </channel>
</rss>
"""

EMPTY_GOODREADS_RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>testuser's bookshelf: all</title></channel></rss>
"""


@pytest.fixture
def sample_rss() -> bytes:
    """Return a sample Goodreads RSS page."""
    return SAMPLE_GOODREADS_RSS


# MediaTracker API responses, keyed by path
SEEN_AT_MILLIS = 1700000000000  # 2023-11-14 22:13:20 UTC

SAMPLE_MEDIA_TRACKER = {
    "/api/user": {"id": 1, "name": "testuser"},
    "/api/lists": [
        {"id": 10, "name": "Watchlist", "isWatchlist": True, "description": ""},
        {"id": 11, "name": "Favorites", "isWatchlist": False, "description": "Best of"},
    ],
    "/api/list/items?listId=10": [{"id": 100, "mediaItem": {"id": 1}}],
    "/api/list/items?listId=11": [{"id": 101, "mediaItem": {"id": 2}}],
    "/api/items": [{"id": 1}, {"id": 2}, {"id": 3}, {"id": 4}],
    "/api/details/1": {
        "id": 1,
        "mediaType": "movie",
        "tmdbId": 603,
        "seenHistory": [{"id": 5, "date": SEEN_AT_MILLIS}],
        "userRating": {"id": 7, "rating": 4.5, "review": "Great", "date": SEEN_AT_MILLIS},
    },
    "/api/details/2": {
        "id": 2,
        "mediaType": "tv",
        "tmdbId": 1399,
        "seasons": [{"episodes": [{"id": 50, "seasonNumber": 1, "episodeNumber": 2}]}],
        "seenHistory": [{"id": 6, "episodeId": 50, "date": SEEN_AT_MILLIS}],
        "userRating": None,
    },
    "/api/details/3": {
        "id": 3,
        "mediaType": "book",
        "openlibraryId": "/works/OL27482W",
        "seenHistory": [],
    },
    "/api/details/4": {"id": 4, "mediaType": "music", "seenHistory": []},
}


@pytest.fixture
def sample_media_tracker() -> dict:
    """Return canned MediaTracker API responses."""
    return SAMPLE_MEDIA_TRACKER
