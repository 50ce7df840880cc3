from app.models.import_report import MediaImportReport
from app.models.job import QueuedJob
from app.models.media import Collection, Metadata, Review, Seen, UserSummary
from app.models.user import User

__all__ = [
    "User",
    "Metadata",
    "Seen",
    "Review",
    "Collection",
    "UserSummary",
    "MediaImportReport",
    "QueuedJob",
]
