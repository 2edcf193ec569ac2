"""
API log and dashboard statistics endpoints.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from sheetsync.api.dependencies import get_log_store
from sheetsync.api.schemas.shared import ApiLogRecord, ImportStatsResponse
from sheetsync.domain.imports.history import LOG_STATUSES, ApiLogStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["logs"])

ALL_LOGS_LIMIT = 100


@router.get("/logs", response_model=List[ApiLogRecord])
async def list_logs(
    status: Optional[str] = None,
    limit: int = 50,
    logs: ApiLogStore = Depends(get_log_store),
):
    """
    Latest log entries, newest first.

    Parameters:
    - status: 'success', 'failed' or 'processing'
    - limit: maximum number of entries (default: 50)
    """
    if status and status not in LOG_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    try:
        return [ApiLogRecord(**record) for record in logs.list_logs(status=status, limit=limit)]
    except Exception as e:
        logger.exception("Failed to list logs")
        raise HTTPException(status_code=500, detail=f"Failed to retrieve logs: {str(e)}")


@router.get("/logs/all", response_model=List[ApiLogRecord])
async def list_all_logs(logs: ApiLogStore = Depends(get_log_store)):
    return [ApiLogRecord(**record) for record in logs.list_logs(limit=ALL_LOGS_LIMIT)]


@router.get("/stats", response_model=ImportStatsResponse)
async def get_stats(logs: ApiLogStore = Depends(get_log_store)):
    """Counts by status and success rate over the latest log entries."""
    try:
        return ImportStatsResponse(**logs.compute_stats())
    except Exception as e:
        logger.exception("Failed to compute stats")
        raise HTTPException(status_code=500, detail=f"Failed to compute statistics: {str(e)}")
