from app.services.external_apis import MetadataProvider, OpenLibraryClient, TmdbClient
from app.services.import_service import (
    ImporterService,
    build_importer_service,
    normalize_import_input,
)
from app.services.job_queue import InMemoryJobQueue, JobQueue, SqlJobQueue
from app.services.media_service import MediaService
from app.services.report_store import ReportStore
from app.services.summary_service import SummaryService

__all__ = [
    # Orchestration
    "ImporterService",
    "build_importer_service",
    "normalize_import_input",
    # Queue
    "JobQueue",
    "SqlJobQueue",
    "InMemoryJobQueue",
    # Stores
    "MediaService",
    "ReportStore",
    "SummaryService",
    # External APIs
    "MetadataProvider",
    "OpenLibraryClient",
    "TmdbClient",
]
