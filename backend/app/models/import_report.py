from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class MediaImportReport(Base):
    """
    Lifecycle and outcome of one import job.

    ``success`` is tri-state: NULL while running, True once completed,
    False when the job aborted or was invalidated as stale.
    """

    __tablename__ = "media_import_reports"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    source: Mapped[str] = mapped_column(String(50))  # media_tracker, goodreads

    started_on: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    finished_on: Mapped[datetime | None] = mapped_column(DateTime)
    success: Mapped[bool | None] = mapped_column(Boolean, index=True)

    # ImportResultResponse, stored once the job finishes
    details: Mapped[dict | None] = mapped_column(JSON)

    # Queue job that produced this report (not unique: redelivery is possible)
    job_id: Mapped[str | None] = mapped_column(String(36), index=True)

    user: Mapped["User"] = relationship(back_populates="import_reports")


# Forward references
from app.models.user import User  # noqa: E402, F811
