"""
Admin API endpoints for the import pipeline.

These endpoints are for administrative use and should be protected
in production.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.imports import get_importer_service
from app.core.database import get_db
from app.models.import_report import MediaImportReport
from app.models.job import QueuedJob
from app.schemas.imports import InvalidateImportsResponse
from app.services.import_service import ImporterService

router = APIRouter()


@router.get("/stats")
async def get_stats(db: Session = Depends(get_db)):
    """
    Get queue and report statistics.

    Returns job counts by status and report counts by outcome.
    """
    jobs = dict(db.query(QueuedJob.status, func.count(QueuedJob.id)).group_by(QueuedJob.status).all())
    reports = {
        "running": db.query(MediaImportReport).filter(MediaImportReport.success.is_(None)).count(),
        "completed": db.query(MediaImportReport).filter(MediaImportReport.success.is_(True)).count(),
        "failed": db.query(MediaImportReport).filter(MediaImportReport.success.is_(False)).count(),
    }
    return {"jobs": jobs, "reports": reports}


@router.post("/imports/invalidate", response_model=InvalidateImportsResponse)
async def invalidate_import_jobs(service: ImporterService = Depends(get_importer_service)):
    """
    Mark imports that have been running for more than the staleness threshold
    (24 hours by default) as failed.

    The worker process runs this on a schedule; this endpoint triggers it on demand.
    """
    return InvalidateImportsResponse(invalidated=service.invalidate_import_jobs())
