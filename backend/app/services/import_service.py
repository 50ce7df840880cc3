"""
Media import service.

Handles the full import lifecycle:
1. Validate and enqueue a submission (intake)
2. Create the report, fetch from the source adapter
3. Upsert collections
4. Commit each item and replay its history, reviews and collections
5. Trigger summary recalculation
6. Finalize the report

Plus the reconciliation sweep that fails reports whose worker died.
"""

from datetime import datetime, timedelta
from typing import Awaitable

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    BestEffortError,
    CollectionUpsertError,
    SourceFetchError,
    ValidationError,
)
from app.core.logging import LoggerAdapter, get_context_logger, get_logger
from app.models.import_report import MediaImportReport
from app.models.media import Metadata
from app.models.user import User
from app.schemas.imports import (
    DeployImportInput,
    ImportDetails,
    ImportFailedItem,
    ImportFailStep,
    ImportJob,
    ImportReportResponse,
    ImportResultResponse,
    ImportSource,
)
from app.schemas.media import (
    AddMediaToCollection,
    CreateOrUpdateCollectionInput,
    PostReviewInput,
    ProgressUpdateInput,
)
from app.services.importers import (
    AlreadyFilled,
    ImportItem,
    NeedsDetails,
    SourceAdapter,
    default_adapters,
)
from app.services.job_queue import IMPORT_MEDIA, JobQueue, SqlJobQueue
from app.services.media_service import MediaService
from app.services.report_store import ReportStore

logger = get_logger(__name__)

# Which payload field each source reads its credentials from
PAYLOAD_FIELDS: dict[ImportSource, str] = {
    ImportSource.MEDIA_TRACKER: "media_tracker",
    ImportSource.GOODREADS: "goodreads",
}


def normalize_import_input(input: DeployImportInput) -> DeployImportInput:
    """
    Check that exactly the payload matching ``source`` is present, and trim
    trailing slashes from provider URLs.

    Raises:
        ValidationError: on any mismatch
    """
    present = [name for name in PAYLOAD_FIELDS.values() if getattr(input, name) is not None]
    expected = PAYLOAD_FIELDS[input.source]
    if present != [expected]:
        raise ValidationError(
            f"Source '{input.source.value}' requires exactly the '{expected}' payload "
            f"(got: {', '.join(present) or 'none'})"
        )

    normalized = DeployImportInput(source=input.source)
    if input.media_tracker is not None:
        normalized.media_tracker = input.media_tracker.model_copy(
            update={"api_url": _normalize_url(input.media_tracker.api_url, "api_url")}
        )
    if input.goodreads is not None:
        normalized.goodreads = input.goodreads.model_copy(
            update={"rss_url": _normalize_url(input.goodreads.rss_url, "rss_url")}
        )
    return normalized


def _normalize_url(url: str, field: str) -> str:
    url = url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        raise ValidationError(f"{field} must be an http(s) URL")
    return url


def _message(error: Exception) -> str:
    return str(error) or error.__class__.__name__


class ImporterService:
    def __init__(
        self,
        db: Session,
        queue: JobQueue,
        media_service: MediaService | None = None,
        adapters: dict[ImportSource, SourceAdapter] | None = None,
    ):
        self.db = db
        self.queue = queue
        self.media_service = media_service or MediaService(db, queue)
        self.adapters = default_adapters() if adapters is None else adapters
        self.reports = ReportStore(db)
        self.stale_after = timedelta(hours=get_settings().IMPORT_STALE_AFTER_HOURS)

    def deploy_import(self, user_id: int, input: DeployImportInput) -> str:
        """
        Validate a submission and put it on the queue.

        Returns the job id. Does not wait for the import to run.
        """
        job = ImportJob(user_id=user_id, input=normalize_import_input(input))
        job_id = self.queue.push(IMPORT_MEDIA, job.model_dump(mode="json"))
        logger.info(f"Queued {input.source.value} import {job_id} for user {user_id}")
        return job_id

    async def import_from_source(
        self, user_id: int, input: DeployImportInput, job_id: str | None = None
    ) -> MediaImportReport:
        """Run one import job to completion and return its finalized report."""
        media_service = self.media_service

        # Must exist before any I/O
        report = await media_service.start_import_job(user_id, input.source, job_id=job_id)
        log = get_context_logger(
            __name__, user_id=user_id, source=input.source.value, report_id=report.id
        )

        try:
            result = await self._fetch(input)
        except Exception as e:
            log.error(f"Fetching from {input.source.value} failed: {e}", exc_info=True)
            failed = ImportFailedItem(
                step=ImportFailStep.FETCH_FROM_SOURCE,
                identifier=input.source.value,
                error=_message(e),
            )
            return await self._abort(report, input.source, _message(e), [failed], 0, log)

        try:
            for collection in result.collections:
                await media_service.create_or_update_collection(user_id, collection)
        except Exception as e:
            error = e if isinstance(e, CollectionUpsertError) else CollectionUpsertError(_message(e))
            log.error(f"Upserting collections failed: {error}")
            return await self._abort(report, input.source, error.message, [], 0, log)

        imported = 0
        for idx, item in enumerate(result.media):
            log.debug(f"Importing media with identifier = {item.source_id}")
            try:
                metadata = await self._commit_item(item)
            except Exception as e:
                log.error(f"Could not commit {item.source_id}: {e}")
                result.failed_items.append(
                    ImportFailedItem(
                        lot=item.lot,
                        step=ImportFailStep.COMMIT_TO_PROVIDER,
                        identifier=item.source_id,
                        error=_message(e),
                    )
                )
                continue

            try:
                await self._replay_item(user_id, item, metadata, log)
            except Exception as e:
                log.error(f"Replaying history for {item.source_id} failed: {e}", exc_info=True)
                return await self._abort(
                    report, input.source, _message(e), result.failed_items, imported, log
                )

            imported += 1
            log.debug(
                f"Imported item: {idx}, lot: {item.lot.value}, "
                f"history count: {len(item.seen_history)}, reviews count: {len(item.reviews)}"
            )

        await self._best_effort(
            media_service.deploy_recalculate_summary_job(user_id), "Summary recalculation", log
        )

        details = ImportResultResponse(
            source=input.source,
            import_=ImportDetails(total=len(result.media) - len(result.failed_items)),
            failed_items=result.failed_items,
        )
        if not await media_service.finish_import_job(report, details, success=True):
            log.warning("Report was already finalized (invalidated as stale); leaving it as is")
        else:
            self._touch_user(user_id)

        log.info(
            f"Imported {details.import_.total} media items from {input.source.value} "
            f"({len(result.failed_items)} failed)"
        )
        self.db.refresh(report)
        return report

    async def _fetch(self, input: DeployImportInput):
        adapter = self.adapters.get(input.source)
        if adapter is None:
            raise SourceFetchError(f"No importer registered for {input.source.value}")
        credentials = getattr(input, PAYLOAD_FIELDS[input.source])
        if credentials is None:
            raise SourceFetchError(f"Missing {PAYLOAD_FIELDS[input.source]} credentials")
        return await adapter.import_media(credentials)

    async def _commit_item(self, item: ImportItem) -> Metadata:
        identifier = item.identifier
        if isinstance(identifier, NeedsDetails):
            return await self.media_service.commit_media(
                item.lot, item.source, identifier.identifier
            )
        if isinstance(identifier, AlreadyFilled):
            return await self.media_service.commit_media_internal(identifier.details)
        raise TypeError(f"Unknown identifier variant: {identifier!r}")

    async def _replay_item(
        self, user_id: int, item: ImportItem, metadata: Metadata, log: LoggerAdapter
    ) -> None:
        """Replay seen history, reviews and collection membership for a committed item."""
        media_service = self.media_service

        for seen in item.seen_history:
            await media_service.progress_update(
                ProgressUpdateInput(
                    metadata_id=metadata.id,
                    identifier=seen.id,
                    progress=100,
                    date=seen.ended_on.date() if seen.ended_on else None,
                    show_season_number=seen.show_season_number,
                    show_episode_number=seen.show_episode_number,
                    podcast_episode_number=seen.podcast_episode_number,
                ),
                user_id,
            )

        for rating in item.reviews:
            review = rating.review
            await media_service.post_review(
                user_id,
                PostReviewInput(
                    metadata_id=metadata.id,
                    identifier=rating.id,
                    rating=rating.rating,
                    text=review.text if review else None,
                    spoiler=review.spoiler if review else None,
                    date=review.date if review else None,
                ),
            )

        for name in item.collections:
            await media_service.create_or_update_collection(
                user_id, CreateOrUpdateCollectionInput(name=name)
            )
            await self._best_effort(
                media_service.add_media_to_collection(
                    user_id, AddMediaToCollection(collection_name=name, media_id=metadata.id)
                ),
                f"Adding {item.source_id} to collection {name!r}",
                log,
            )

    @staticmethod
    async def _best_effort(
        operation: Awaitable, description: str, log: LoggerAdapter
    ) -> BestEffortError | None:
        """Await an optional step; a failure is logged and returned, never raised."""
        try:
            await operation
        except Exception as e:
            error = BestEffortError(f"{description} failed: {_message(e)}")
            log.warning(error.message)
            return error
        return None

    async def _abort(
        self,
        report: MediaImportReport,
        source: ImportSource,
        error: str,
        failed_items: list[ImportFailedItem],
        imported: int,
        log: LoggerAdapter,
    ) -> MediaImportReport:
        details = ImportResultResponse(
            source=source,
            import_=ImportDetails(total=imported),
            failed_items=failed_items,
            error=error,
        )
        if not await self.media_service.finish_import_job(report, details, success=False):
            log.warning("Report was already finalized; leaving it as is")
        self.db.refresh(report)
        return report

    def _touch_user(self, user_id: int) -> None:
        user = self.db.get(User, user_id)
        if user:
            user.last_import_at = datetime.utcnow()
            self.db.commit()

    async def media_import_reports(self, user_id: int) -> list[ImportReportResponse]:
        """Get the user's import reports, newest first."""
        reports = await self.media_service.media_import_reports(user_id)
        return [report_to_response(report) for report in reports]

    def invalidate_import_jobs(self, now: datetime | None = None) -> int:
        """
        Mark reports that have been running for longer than the staleness
        threshold as failed. Returns how many were invalidated.
        """
        stale_ids = [r.id for r in self.reports.find_stale(self.stale_after, now=now)]
        invalidated = 0
        for report_id in stale_ids:
            if self.reports.mark_failed_if_running(report_id):
                logger.info(f"Invalidating job with id = {report_id}")
                invalidated += 1
        return invalidated


def report_to_response(report: MediaImportReport) -> ImportReportResponse:
    details = (
        ImportResultResponse.model_validate(report.details)
        if report.details
        else ImportResultResponse(source=ImportSource(report.source))
    )
    return ImportReportResponse(
        id=report.id,
        source=ImportSource(report.source),
        started_on=report.started_on,
        finished_on=report.finished_on,
        success=report.success,
        total_imported=details.import_.total,
        failed_items=details.failed_items,
        error=details.error,
    )


def build_importer_service(db: Session) -> ImporterService:
    """Wire an ImporterService against the database-backed queue."""
    return ImporterService(db, SqlJobQueue(db))
