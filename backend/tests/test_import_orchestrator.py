"""Tests for running an import job end to end."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

from conftest import FakeAdapter

from app.core.exceptions import SourceFetchError
from app.models.import_report import MediaImportReport
from app.models.media import Collection, Metadata, Review, Seen
from app.models.user import User
from app.schemas.imports import (
    DeployImportInput,
    DeployMediaTrackerImportInput,
    ImportSource,
)
from app.schemas.media import (
    CreateOrUpdateCollectionInput,
    MediaDetails,
    MetadataLot,
    MetadataSource,
)
from app.services.importers import (
    AlreadyFilled,
    ImportItem,
    ImportItemRating,
    ImportItemReview,
    ImportItemSeen,
    ImportResult,
    NeedsDetails,
)
from app.services.job_queue import RECALCULATE_SUMMARY
from app.services.report_store import ReportStore

INPUT = DeployImportInput(
    source=ImportSource.MEDIA_TRACKER,
    media_tracker=DeployMediaTrackerImportInput(
        api_url="https://tracker.example.com", api_key="secret"
    ),
)


def book(source_id: str, identifier: str, **kwargs) -> ImportItem:
    return ImportItem(
        source_id=source_id,
        lot=MetadataLot.BOOK,
        source=MetadataSource.OPENLIBRARY,
        identifier=NeedsDetails(identifier),
        **kwargs,
    )


def run(service, user_id: int) -> MediaImportReport:
    return asyncio.run(service.import_from_source(user_id, INPUT, job_id="job-1"))


class TestImportFromSource:
    """Test the happy path and per-item failure isolation."""

    def test_one_failing_item_does_not_abort(self, db, make_importer, fake_provider, test_user):
        """Should import the other items and record the failed one."""
        fake_provider.failing = {"OL2W"}
        adapter = FakeAdapter(
            ImportResult(
                media=[
                    book("1", "OL1W", seen_history=[ImportItemSeen(id="s1")]),
                    book("2", "OL2W", seen_history=[ImportItemSeen(id="s2")]),
                    book(
                        "3",
                        "OL3W",
                        reviews=[ImportItemRating(id="r3", rating=Decimal("3"))],
                    ),
                ]
            )
        )

        report = run(make_importer(adapter), test_user.id)

        assert report.success is True
        assert report.finished_on is not None
        assert report.job_id == "job-1"
        assert report.details["source"] == "media_tracker"
        assert report.details["import"]["total"] == 2
        assert report.details["error"] is None

        failed = report.details["failed_items"]
        assert len(failed) == 1
        assert failed[0]["step"] == "commit_to_provider"
        assert failed[0]["identifier"] == "2"
        assert failed[0]["lot"] == "book"
        assert "OL2W" in failed[0]["error"]

        assert {m.identifier for m in db.query(Metadata).all()} == {"OL1W", "OL3W"}
        assert [s.identifier for s in db.query(Seen).all()] == ["s1"]
        assert [r.identifier for r in db.query(Review).all()] == ["r3"]

    def test_already_filled_skips_provider(self, db, make_importer, fake_provider, test_user):
        """Should commit pre-filled details without a provider lookup."""
        details = MediaDetails(
            identifier="5907",
            lot=MetadataLot.BOOK,
            source=MetadataSource.GOODREADS,
            title="The Hobbit",
            creators=["J.R.R. Tolkien"],
        )
        item = ImportItem(
            source_id="5907",
            lot=MetadataLot.BOOK,
            source=MetadataSource.GOODREADS,
            identifier=AlreadyFilled(details),
        )

        report = run(make_importer(FakeAdapter(ImportResult(media=[item]))), test_user.id)

        assert report.success is True
        assert fake_provider.calls == []
        stored = db.query(Metadata).one()
        assert stored.title == "The Hobbit"
        assert stored.source == "goodreads"
        assert stored.creators == ["J.R.R. Tolkien"]

    def test_needs_details_uses_provider(self, make_importer, fake_provider, test_user):
        run(make_importer(FakeAdapter(ImportResult(media=[book("1", "OL1W")]))), test_user.id)

        assert fake_provider.calls == ["OL1W"]

    def test_replays_history_reviews_and_collections(self, db, make_importer, test_user):
        """Should store seen history, reviews and collection membership."""
        item = book(
            "1",
            "OL1W",
            seen_history=[ImportItemSeen(id="s1", ended_on=datetime(2024, 1, 13, 20, 30))],
            reviews=[
                ImportItemRating(
                    id="r1",
                    rating=Decimal("4.5"),
                    review=ImportItemReview(text="Loved it", date=datetime(2024, 1, 14)),
                )
            ],
            collections=["Favorites"],
        )

        report = run(make_importer(FakeAdapter(ImportResult(media=[item]))), test_user.id)

        assert report.success is True
        seen = db.query(Seen).one()
        assert seen.user_id == test_user.id
        assert seen.progress == 100
        assert seen.finished_on == date(2024, 1, 13)

        review = db.query(Review).one()
        assert review.rating == Decimal("4.5")
        assert review.text == "Loved it"

        collection = db.query(Collection).filter(Collection.name == "Favorites").one()
        assert [m.identifier for m in collection.media] == ["OL1W"]

    def test_padded_collection_name(self, db, make_importer, test_user):
        """Should add the media to the trimmed collection, not drop it."""
        item = book("1", "OL1W", collections=["Favorites "])

        report = run(make_importer(FakeAdapter(ImportResult(media=[item]))), test_user.id)

        assert report.success is True
        assert report.details["failed_items"] == []
        collection = db.query(Collection).one()
        assert collection.name == "Favorites"
        assert [m.identifier for m in collection.media] == ["OL1W"]

    def test_reimport_does_not_duplicate_history(self, db, make_importer, test_user):
        item = book("1", "OL1W", seen_history=[ImportItemSeen(id="s1")])

        run(make_importer(FakeAdapter(ImportResult(media=[item]))), test_user.id)
        run(make_importer(FakeAdapter(ImportResult(media=[item]))), test_user.id)

        assert db.query(Seen).count() == 1
        assert db.query(Metadata).count() == 1
        assert db.query(MediaImportReport).count() == 2

    def test_upserts_source_collections(self, db, make_importer, test_user):
        result = ImportResult(
            collections=[CreateOrUpdateCollectionInput(name="Watchlist", description="Later")]
        )

        report = run(make_importer(FakeAdapter(result)), test_user.id)

        assert report.success is True
        assert report.details["import"]["total"] == 0
        assert db.query(Collection).one().description == "Later"

    def test_deploys_summary_job(self, make_importer, memory_queue, test_user):
        """Should queue a summary recalculation for the user."""
        run(make_importer(FakeAdapter(ImportResult(media=[book("1", "OL1W")]))), test_user.id)

        jobs = memory_queue.jobs(RECALCULATE_SUMMARY)
        assert len(jobs) == 1
        assert jobs[0].payload == {"user_id": test_user.id}

    def test_touches_user_last_import(self, db, make_importer, test_user):
        run(make_importer(FakeAdapter()), test_user.id)

        db.expire_all()
        assert db.get(User, test_user.id).last_import_at is not None


class TestJobLevelFailures:
    """Test failures that abort the whole import."""

    def test_fetch_failure(self, db, make_importer, memory_queue, test_user):
        """Should finalize the report as failed with the adapter's error."""
        adapter = FakeAdapter(error=SourceFetchError("connection refused"))

        report = run(make_importer(adapter), test_user.id)

        assert report.success is False
        assert report.finished_on is not None
        assert report.details["error"] == "connection refused"
        assert report.details["import"]["total"] == 0
        assert report.details["failed_items"] == [
            {
                "lot": None,
                "step": "fetch_from_source",
                "identifier": "media_tracker",
                "error": "connection refused",
            }
        ]
        assert db.query(Metadata).count() == 0
        assert memory_queue.jobs(RECALCULATE_SUMMARY) == []

    def test_unexpected_adapter_exception(self, make_importer, test_user):
        report = run(make_importer(FakeAdapter(error=KeyError("id"))), test_user.id)

        assert report.success is False
        assert report.details["failed_items"][0]["step"] == "fetch_from_source"

    def test_missing_adapter(self, db, make_importer, test_user):
        """Should fail the report when no adapter handles the source."""
        service = make_importer(FakeAdapter(), source=ImportSource.GOODREADS)

        report = run(service, test_user.id)

        assert report.success is False
        assert "media_tracker" in report.details["error"]

    def test_collection_upsert_failure(self, db, make_importer, test_user):
        """Should abort before committing any media."""
        result = ImportResult(
            collections=[CreateOrUpdateCollectionInput(name="   ")],
            media=[book("1", "OL1W")],
        )

        report = run(make_importer(FakeAdapter(result)), test_user.id)

        assert report.success is False
        assert report.details["error"] == "Collection name cannot be empty"
        assert report.details["failed_items"] == []
        assert db.query(Metadata).count() == 0

    def test_progress_failure_aborts(self, make_importer, monkeypatch, test_user):
        """A history write failure aborts the job, keeping the count so far."""
        service = make_importer(
            FakeAdapter(
                ImportResult(
                    media=[
                        book("1", "OL1W"),
                        book("2", "OL2W", seen_history=[ImportItemSeen(id="s2")]),
                        book("3", "OL3W"),
                    ]
                )
            )
        )

        async def broken_progress_update(input, user_id):
            raise RuntimeError("disk full")

        monkeypatch.setattr(service.media_service, "progress_update", broken_progress_update)

        report = run(service, test_user.id)

        assert report.success is False
        assert report.details["error"] == "disk full"
        assert report.details["import"]["total"] == 1


class TestBestEffortSteps:
    """Test failures that are logged and otherwise ignored."""

    def test_add_to_collection_failure_swallowed(self, db, make_importer, monkeypatch, test_user):
        service = make_importer(
            FakeAdapter(ImportResult(media=[book("1", "OL1W", collections=["Favorites"])]))
        )

        async def broken_add(user_id, input):
            raise ValueError("constraint violated")

        monkeypatch.setattr(service.media_service, "add_media_to_collection", broken_add)

        report = run(service, test_user.id)

        assert report.success is True
        assert report.details["import"]["total"] == 1
        assert report.details["failed_items"] == []

    def test_summary_failure_swallowed(self, make_importer, memory_queue, monkeypatch, test_user):
        service = make_importer(FakeAdapter(ImportResult(media=[book("1", "OL1W")])))

        original_push = memory_queue.push

        def push(name, payload):
            if name == RECALCULATE_SUMMARY:
                raise RuntimeError("queue unavailable")
            return original_push(name, payload)

        monkeypatch.setattr(memory_queue, "push", push)

        report = run(service, test_user.id)

        assert report.success is True
        assert report.details["import"]["total"] == 1


class TestReportLifecycle:
    """Test report creation and the terminal transition."""

    def test_report_created_before_fetch(self, db, make_importer, test_user):
        """The running report must exist while the adapter is fetching."""
        observed = []

        class ObservingAdapter(FakeAdapter):
            async def import_media(self, credentials):
                observed.extend(
                    db.query(MediaImportReport).filter(MediaImportReport.success.is_(None)).all()
                )
                return await super().import_media(credentials)

        report = run(make_importer(ObservingAdapter()), test_user.id)

        assert [r.id for r in observed] == [report.id]

    def test_invalidated_report_not_overwritten(self, db, make_importer, test_user):
        """A report failed by the reconciler mid-run stays failed."""

        class SlowAdapter(FakeAdapter):
            async def import_media(self, credentials):
                running = (
                    db.query(MediaImportReport).filter(MediaImportReport.success.is_(None)).one()
                )
                ReportStore(db).mark_failed_if_running(running.id)
                return await super().import_media(credentials)

        report = run(
            make_importer(SlowAdapter(ImportResult(media=[book("1", "OL1W")]))), test_user.id
        )

        assert report.success is False
        assert report.details is None
