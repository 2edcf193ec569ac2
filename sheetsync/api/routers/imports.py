"""
Spreadsheet upload and staged batch endpoints.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile

from sheetsync.api.dependencies import (
    ensure_spreadsheet_filename,
    get_batch_store,
    get_log_store,
    get_orchestrator,
    require_entity_type,
)
from sheetsync.api.schemas.shared import ApiLogRecord, BatchInfo, BatchListResponse, UploadResponse
from sheetsync.core.config import settings
from sheetsync.domain.imports.batches import BatchStore
from sheetsync.domain.imports.errors import ImportValidationError, ParseError
from sheetsync.domain.imports.history import ApiLogStore
from sheetsync.domain.imports.orchestrator import ImportOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["imports"])

MAX_UPLOAD_BYTES = settings.upload_max_file_size_mb * 1024 * 1024


def _ensure_within_size_limit(file_size: int, file_name: str) -> None:
    """Raise an HTTPException if a file exceeds the configured upload limit."""
    if file_size > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=(
                f"{file_name} is too large. "
                f"Maximum allowed upload size is {settings.upload_max_file_size_mb}MB."
            ),
        )


@router.post("/upload-excel", response_model=UploadResponse)
async def upload_excel(
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None),
    module: Optional[str] = Form(None),
    use_field_mapping: bool = Form(True),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Validate a spreadsheet and stage it as a batch for ERPNext.

    Parameters:
    - file: .xlsx/.xls workbook; only the first sheet is read
    - module: entity type the rows describe (e.g. "Item", "Sales Order")
    - use_field_mapping: translate human-readable headers to ERPNext fields

    Returns:
    - staging_id of the batch; rows are sent to ERPNext in the background
    """
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not module:
        raise HTTPException(status_code=400, detail="Module is required")

    filename = ensure_spreadsheet_filename(file.filename)
    entity_type = require_entity_type(module).value

    file_content = await file.read()
    _ensure_within_size_limit(len(file_content), filename)

    try:
        staged = orchestrator.stage_upload(
            filename=filename,
            file_content=file_content,
            entity_type=entity_type,
            use_field_mapping=use_field_mapping,
        )
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImportValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": "Validation failed", "errors": e.errors, "warnings": e.warnings},
        )
    except Exception as e:
        logger.exception("Upload of %s failed", filename)
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    background_tasks.add_task(orchestrator.run_batch, staged.batch_id)

    return UploadResponse(
        message="File uploaded successfully",
        staging_id=staged.batch_id,
        record_count=staged.record_count,
        warnings=staged.warnings,
    )


@router.get("/staging", response_model=BatchListResponse)
async def list_staged_batches(
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    batches: BatchStore = Depends(get_batch_store),
):
    records = batches.list_batches(status=status, limit=limit, offset=offset)
    return BatchListResponse(
        success=True,
        batches=[BatchInfo(**record) for record in records],
        total_count=batches.count_batches(status=status),
        limit=limit,
        offset=offset,
    )


@router.get("/staging/{batch_id}", response_model=BatchInfo)
async def get_staged_batch(batch_id: str, batches: BatchStore = Depends(get_batch_store)):
    batch = batches.get_batch(batch_id)
    if not batch:
        raise HTTPException(status_code=404, detail="Import not found")
    return BatchInfo(**batch)


@router.get("/staging/{batch_id}/logs", response_model=List[ApiLogRecord])
async def get_batch_logs(
    batch_id: str,
    batches: BatchStore = Depends(get_batch_store),
    logs: ApiLogStore = Depends(get_log_store),
):
    """Per-row outcomes of one batch in row order, summary entry last."""
    if not batches.get_batch(batch_id, include_rows=False):
        raise HTTPException(status_code=404, detail="Import not found")
    return [ApiLogRecord(**record) for record in logs.list_logs_for_batch(batch_id)]
