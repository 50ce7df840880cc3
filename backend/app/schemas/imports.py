from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from app.schemas.media import MetadataLot


class ImportSource(str, Enum):
    MEDIA_TRACKER = "media_tracker"
    GOODREADS = "goodreads"


class DeployMediaTrackerImportInput(BaseModel):
    api_url: str = Field(..., description="The base url where the resource is present at")
    api_key: str = Field(..., description="An application token generated by an admin")


class DeployGoodreadsImportInput(BaseModel):
    rss_url: str = Field(..., description="The RSS url found on the user's profile")


class DeployImportInput(BaseModel):
    source: ImportSource
    media_tracker: DeployMediaTrackerImportInput | None = None
    goodreads: DeployGoodreadsImportInput | None = None


class ImportJob(BaseModel):
    """The envelope pushed onto the job queue."""

    user_id: int
    input: DeployImportInput


class ImportFailStep(str, Enum):
    # Failed to get details from the source itself (MediaTracker, Goodreads etc.)
    FETCH_FROM_SOURCE = "fetch_from_source"
    # Failed to resolve or commit the media (Open Library, TMDB etc.)
    COMMIT_TO_PROVIDER = "commit_to_provider"


class ImportFailedItem(BaseModel):
    lot: MetadataLot | None = None
    step: ImportFailStep
    identifier: str
    error: str | None = None


class ImportDetails(BaseModel):
    total: int = Field(0, ge=0)


class ImportResultResponse(BaseModel):
    """Stored in the ``details`` column of a finalized report."""

    source: ImportSource
    import_: ImportDetails = Field(default_factory=ImportDetails, alias="import")
    failed_items: list[ImportFailedItem] = Field(default_factory=list)
    error: str | None = None

    model_config = {"populate_by_name": True}


# API request/response models


class DeployImportRequest(DeployImportInput):
    user_id: int


class DeployImportResponse(BaseModel):
    job_id: str


class ImportReportResponse(BaseModel):
    id: int
    source: ImportSource
    started_on: datetime
    finished_on: datetime | None
    success: bool | None  # None while the import is still running
    total_imported: int
    failed_items: list[ImportFailedItem]
    error: str | None = None


class InvalidateImportsResponse(BaseModel):
    invalidated: int
