"""
Import worker process.

Runs a pool of queue consumers and, on an APScheduler interval, the
reconciliation sweep that fails reports whose worker died and redelivers
queue jobs that were claimed but never acknowledged.

Usage:
    python -m app.worker
    python -m app.worker --concurrency 4
    python -m app.worker --reconcile-only
"""

import argparse
import asyncio
import signal
import socket
import uuid
from datetime import timedelta
from typing import Callable

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.logging import get_logger, setup_logging
from app.schemas.imports import ImportJob, ImportSource
from app.schemas.media import MetadataSource
from app.services.external_apis import MetadataProvider
from app.services.import_service import ImporterService
from app.services.importers import SourceAdapter
from app.services.job_queue import IMPORT_MEDIA, RECALCULATE_SUMMARY, Job, SqlJobQueue
from app.services.media_service import MediaService
from app.services.summary_service import SummaryService

logger = get_logger(__name__)


class ImportWorker:
    """One queue consumer. Each job runs in its own database session.

    Several consumers may share an event loop; see ``run_workers``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        worker_id: str | None = None,
        adapters: dict[ImportSource, SourceAdapter] | None = None,
        providers: dict[MetadataSource, MetadataProvider] | None = None,
        poll_interval: float | None = None,
    ):
        self.session_factory = session_factory
        self.worker_id = worker_id or f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"
        self.adapters = adapters
        self.providers = providers
        self.poll_interval = (
            get_settings().IMPORT_WORKER_POLL_INTERVAL if poll_interval is None else poll_interval
        )

    async def run_once(self) -> bool:
        """Process a single job. Returns False if the queue was empty."""
        db = self.session_factory()
        try:
            queue = SqlJobQueue(db)
            job = queue.pop(self.worker_id)
            if job is None:
                return False

            logger.info(f"Worker {self.worker_id} picked up {job.name} job {job.id}")
            try:
                await self._handle(db, queue, job)
            except Exception as e:
                db.rollback()
                logger.exception(f"Job {job.id} ({job.name}) crashed")
                queue.fail(job.id, str(e) or e.__class__.__name__)
            else:
                queue.ack(job.id)
            return True
        finally:
            db.close()

    async def _handle(self, db: Session, queue: SqlJobQueue, job: Job) -> None:
        if job.name == IMPORT_MEDIA:
            envelope = ImportJob.model_validate(job.payload)
            media_service = MediaService(db, queue, providers=self.providers)
            service = ImporterService(db, queue, media_service, adapters=self.adapters)
            await service.import_from_source(envelope.user_id, envelope.input, job_id=job.id)
        elif job.name == RECALCULATE_SUMMARY:
            SummaryService(db).recalculate(int(job.payload["user_id"]))
        else:
            raise ValueError(f"Unknown job type: {job.name}")

    async def run(self, stop: asyncio.Event) -> None:
        """Poll the queue until ``stop`` is set."""
        logger.info(f"Worker {self.worker_id} started")
        while not stop.is_set():
            if await self.run_once():
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info(f"Worker {self.worker_id} stopped")


def reconcile(session_factory: Callable[[], Session] = SessionLocal) -> dict[str, int]:
    """Invalidate stale reports and redeliver abandoned queue jobs."""
    settings = get_settings()
    db = session_factory()
    try:
        queue = SqlJobQueue(db)
        invalidated = ImporterService(db, queue, adapters={}).invalidate_import_jobs()
        redelivered = queue.requeue_expired(
            timedelta(minutes=settings.JOB_VISIBILITY_TIMEOUT_MINUTES)
        )
    finally:
        db.close()

    if invalidated or redelivered:
        logger.info(f"Reconciled: {invalidated} report(s) invalidated, {redelivered} job(s) redelivered")
    return {"invalidated": invalidated, "redelivered": redelivered}


def _on_job_event(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error(f"[Scheduler] Job {event.job_id} failed: {event.exception}")
    else:
        logger.debug(f"[Scheduler] Job {event.job_id} executed OK")


def create_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    interval = max(1, settings.RECONCILER_INTERVAL_MINUTES)
    scheduler.add_job(
        reconcile,
        trigger="interval",
        minutes=interval,
        id="invalidate_import_jobs",
        name=f"Invalidate stale imports (every {interval}min)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def run_workers(concurrency: int) -> None:
    """Run ``concurrency`` consumers and the reconciler on one event loop until signalled.

    Consumers are coroutines, not threads. Database calls are synchronous and
    hold the loop while they run, so jobs only overlap while a consumer awaits
    source or provider HTTP. For database-bound throughput run more worker
    processes; the queue claim keeps them from taking the same job.
    """
    settings = get_settings()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = create_scheduler()
        scheduler.start()
        logger.info("[Scheduler] Started")

    workers = [ImportWorker() for _ in range(max(1, concurrency))]
    try:
        await asyncio.gather(*(worker.run(stop) for worker in workers))
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            logger.info("[Scheduler] Stopped")


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run media import workers")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.IMPORT_WORKER_CONCURRENCY,
        help="Number of concurrent queue consumers",
    )
    parser.add_argument(
        "--reconcile-only",
        action="store_true",
        help="Run the reconciliation sweep once and exit",
    )
    args = parser.parse_args()

    setup_logging()

    if args.reconcile_only:
        result = reconcile()
        print(f"Invalidated {result['invalidated']} report(s), redelivered {result['redelivered']} job(s)")
        return

    asyncio.run(run_workers(args.concurrency))


if __name__ == "__main__":
    main()
