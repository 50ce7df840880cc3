"""
Media service.

The store the import pipeline commits into: media records, seen history,
reviews, collections and import reports. Every write commits its own
transaction and rolls back on database errors so a failing item leaves the
session usable for the next one.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import CollectionUpsertError, ProviderCommitError
from app.core.logging import get_logger
from app.models.import_report import MediaImportReport
from app.models.media import Collection, Metadata, Review, Seen
from app.schemas.imports import ImportResultResponse, ImportSource
from app.schemas.media import (
    AddMediaToCollection,
    CreateOrUpdateCollectionInput,
    MediaDetails,
    MetadataLot,
    MetadataSource,
    PostReviewInput,
    ProgressUpdateInput,
)
from app.services.external_apis import MetadataProvider, default_providers
from app.services.job_queue import RECALCULATE_SUMMARY, JobQueue
from app.services.report_store import ReportStore

logger = get_logger(__name__)


class MediaService:
    def __init__(
        self,
        db: Session,
        queue: JobQueue,
        providers: dict[MetadataSource, MetadataProvider] | None = None,
    ):
        self.db = db
        self.queue = queue
        self.providers = default_providers() if providers is None else providers
        self.reports = ReportStore(db)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # Import reports

    async def start_import_job(
        self, user_id: int, source: ImportSource, job_id: str | None = None
    ) -> MediaImportReport:
        return self.reports.create(user_id, source.value, job_id=job_id)

    async def finish_import_job(
        self,
        report: MediaImportReport,
        details: ImportResultResponse,
        success: bool = True,
    ) -> bool:
        """Finalize a report. Returns False if it had already been finalized."""
        return self.reports.finalize(
            report.id, success, details.model_dump(mode="json", by_alias=True)
        )

    async def media_import_reports(self, user_id: int) -> list[MediaImportReport]:
        return self.reports.list_by_user(user_id)

    # Media

    def _find_metadata(
        self, lot: MetadataLot, source: MetadataSource, identifier: str
    ) -> Metadata | None:
        return (
            self.db.query(Metadata)
            .filter(
                Metadata.lot == lot.value,
                Metadata.source == source.value,
                Metadata.identifier == identifier,
            )
            .first()
        )

    async def commit_media(
        self, lot: MetadataLot, source: MetadataSource, identifier: str
    ) -> Metadata:
        """Return the stored media for an identifier, fetching it from its provider if new."""
        existing = self._find_metadata(lot, source, identifier)
        if existing:
            return existing

        provider = self.providers.get(source)
        if provider is None:
            raise ProviderCommitError(f"No metadata provider configured for {source.value}")

        details = await provider.details(identifier, lot)
        return await self.commit_media_internal(details)

    async def commit_media_internal(self, details: MediaDetails) -> Metadata:
        """Create or refresh a media record from already-fetched details."""
        metadata = self._find_metadata(details.lot, details.source, details.identifier)
        if metadata is None:
            metadata = Metadata(
                lot=details.lot.value,
                source=details.source.value,
                identifier=details.identifier,
            )
            self.db.add(metadata)

        metadata.title = details.title
        metadata.description = details.description
        metadata.creators = list(details.creators)
        metadata.images = list(details.images)
        metadata.publish_year = details.publish_year
        metadata.specifics = dict(details.specifics)

        try:
            self._commit()
        except SQLAlchemyError as e:
            raise ProviderCommitError(f"Could not store {details.identifier}: {e}") from e
        self.db.refresh(metadata)
        return metadata

    # History

    async def progress_update(self, input: ProgressUpdateInput, user_id: int) -> Seen:
        if input.identifier:
            existing = (
                self.db.query(Seen)
                .filter(
                    Seen.user_id == user_id,
                    Seen.metadata_id == input.metadata_id,
                    Seen.identifier == input.identifier,
                )
                .first()
            )
            if existing:
                return existing

        seen = Seen(
            user_id=user_id,
            metadata_id=input.metadata_id,
            identifier=input.identifier,
            progress=input.progress,
            finished_on=input.date if input.progress == 100 else None,
            show_season_number=input.show_season_number,
            show_episode_number=input.show_episode_number,
            podcast_episode_number=input.podcast_episode_number,
        )
        self.db.add(seen)
        self._commit()
        return seen

    async def post_review(self, user_id: int, input: PostReviewInput) -> Review:
        review = None
        if input.identifier:
            review = (
                self.db.query(Review)
                .filter(
                    Review.user_id == user_id,
                    Review.metadata_id == input.metadata_id,
                    Review.identifier == input.identifier,
                )
                .first()
            )
        if review is None:
            review = Review(
                user_id=user_id, metadata_id=input.metadata_id, identifier=input.identifier
            )
            self.db.add(review)

        review.rating = input.rating
        review.text = input.text
        review.spoiler = bool(input.spoiler)
        if input.date:
            review.posted_on = input.date

        self._commit()
        return review

    # Collections

    async def create_or_update_collection(
        self, user_id: int, input: CreateOrUpdateCollectionInput
    ) -> Collection:
        name = input.name.strip()
        if not name:
            raise CollectionUpsertError("Collection name cannot be empty")

        collection = (
            self.db.query(Collection)
            .filter(Collection.user_id == user_id, Collection.name == name)
            .first()
        )
        if collection is None:
            collection = Collection(user_id=user_id, name=name)
            self.db.add(collection)
        if input.description is not None:
            collection.description = input.description

        try:
            self._commit()
        except SQLAlchemyError as e:
            raise CollectionUpsertError(f"Could not save collection {name!r}: {e}") from e
        return collection

    async def add_media_to_collection(self, user_id: int, input: AddMediaToCollection) -> bool:
        """Add media to an existing collection. Returns False if it was already there."""
        name = input.collection_name.strip()
        collection = (
            self.db.query(Collection)
            .filter(Collection.user_id == user_id, Collection.name == name)
            .first()
        )
        if collection is None:
            raise ValueError(f"Collection {name!r} does not exist")

        metadata = self.db.get(Metadata, input.media_id)
        if metadata is None:
            raise ValueError(f"Media {input.media_id} does not exist")

        if metadata in collection.media:
            return False
        collection.media.append(metadata)
        self._commit()
        return True

    # Background jobs

    async def deploy_recalculate_summary_job(self, user_id: int) -> str:
        job_id = self.queue.push(RECALCULATE_SUMMARY, {"user_id": user_id})
        logger.debug(f"Queued summary recalculation {job_id} for user {user_id}")
        return job_id
