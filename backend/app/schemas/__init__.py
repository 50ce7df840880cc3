from app.schemas.imports import (
    DeployGoodreadsImportInput,
    DeployImportInput,
    DeployImportRequest,
    DeployImportResponse,
    DeployMediaTrackerImportInput,
    ImportDetails,
    ImportFailedItem,
    ImportFailStep,
    ImportJob,
    ImportReportResponse,
    ImportResultResponse,
    ImportSource,
    InvalidateImportsResponse,
)
from app.schemas.media import (
    AddMediaToCollection,
    CreateOrUpdateCollectionInput,
    MediaDetails,
    MetadataLot,
    MetadataSource,
    PostReviewInput,
    ProgressUpdateInput,
)

__all__ = [
    "ImportSource",
    "DeployImportInput",
    "DeployMediaTrackerImportInput",
    "DeployGoodreadsImportInput",
    "DeployImportRequest",
    "DeployImportResponse",
    "ImportJob",
    "ImportFailStep",
    "ImportFailedItem",
    "ImportDetails",
    "ImportResultResponse",
    "ImportReportResponse",
    "InvalidateImportsResponse",
    "MetadataLot",
    "MetadataSource",
    "MediaDetails",
    "ProgressUpdateInput",
    "PostReviewInput",
    "CreateOrUpdateCollectionInput",
    "AddMediaToCollection",
]
