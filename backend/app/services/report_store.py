"""
Import report ledger.

Each import job owns exactly one row. The terminal transition of ``success``
(NULL -> True/False) is a conditional UPDATE, so the orchestrator and the
reconciler can never both finalize the same report.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.import_report import MediaImportReport


class ReportStore:
    """Persistence for MediaImportReport rows."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: int,
        source: str,
        job_id: str | None = None,
        started_on: datetime | None = None,
    ) -> MediaImportReport:
        """Insert a running report (success unset) and commit it immediately."""
        report = MediaImportReport(
            user_id=user_id,
            source=source,
            job_id=job_id,
            started_on=started_on or datetime.utcnow(),
            success=None,
        )
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)
        return report

    def get(self, report_id: int) -> MediaImportReport | None:
        return self.db.query(MediaImportReport).filter(MediaImportReport.id == report_id).first()

    def update(self, report: MediaImportReport) -> MediaImportReport:
        """Persist changes to a report while holding its row lock."""
        (
            self.db.query(MediaImportReport.id)
            .filter(MediaImportReport.id == report.id)
            .with_for_update()
            .one()
        )
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)
        return report

    def finalize(
        self,
        report_id: int,
        success: bool,
        details: dict[str, Any] | None,
        finished_on: datetime | None = None,
    ) -> bool:
        """
        Move a running report to a terminal state.

        Returns False (and changes nothing) if the report was already terminal.
        """
        return self._set_terminal(
            report_id,
            success=success,
            details=details,
            finished_on=finished_on or datetime.utcnow(),
        )

    def mark_failed_if_running(self, report_id: int) -> bool:
        """Flip a still-running report to failed. Used by the reconciler."""
        return self._set_terminal(report_id, success=False)

    def _set_terminal(self, report_id: int, **values: Any) -> bool:
        result = self.db.execute(
            update(MediaImportReport)
            .where(
                MediaImportReport.id == report_id,
                MediaImportReport.success.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def list_by_user(self, user_id: int) -> list[MediaImportReport]:
        """All reports for a user, newest first."""
        return (
            self.db.query(MediaImportReport)
            .filter(MediaImportReport.user_id == user_id)
            .order_by(MediaImportReport.started_on.desc(), MediaImportReport.id.desc())
            .all()
        )

    def find_stale(
        self, threshold: timedelta, now: datetime | None = None
    ) -> list[MediaImportReport]:
        """Reports still running (success unset) that started more than ``threshold`` ago."""
        cutoff = (now or datetime.utcnow()) - threshold
        return (
            self.db.query(MediaImportReport)
            .filter(
                MediaImportReport.success.is_(None),
                MediaImportReport.started_on < cutoff,
            )
            .order_by(MediaImportReport.started_on)
            .all()
        )
