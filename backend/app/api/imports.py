from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.schemas.imports import (
    DeployImportInput,
    DeployImportRequest,
    DeployImportResponse,
    ImportReportResponse,
)
from app.services.import_service import ImporterService, build_importer_service

router = APIRouter()


def get_importer_service(db: Session = Depends(get_db)) -> ImporterService:
    return build_importer_service(db)


@router.post("", response_model=DeployImportResponse, status_code=status.HTTP_202_ACCEPTED)
async def deploy_import(
    request: DeployImportRequest,
    service: ImporterService = Depends(get_importer_service),
):
    """
    Queue an import of a user's history from an external source.

    Exactly one provider payload must be supplied, matching `source`:

    **MediaTracker:** `{"source": "media_tracker", "media_tracker": {"api_url": ..., "api_key": ...}}`

    **Goodreads:** `{"source": "goodreads", "goodreads": {"rss_url": ...}}`

    The import runs in the background; poll `/imports/reports` for its outcome.
    """
    input = DeployImportInput(
        source=request.source,
        media_tracker=request.media_tracker,
        goodreads=request.goodreads,
    )
    try:
        job_id = service.deploy_import(request.user_id, input)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return DeployImportResponse(job_id=job_id)


@router.get("/reports", response_model=list[ImportReportResponse])
async def get_import_reports(
    user_id: int = Query(..., description="Owner of the reports"),
    service: ImporterService = Depends(get_importer_service),
):
    """Get all import reports for a user, newest first."""
    return await service.media_import_reports(user_id)
