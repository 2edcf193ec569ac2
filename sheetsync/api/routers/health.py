"""
Connectivity probes for ERPNext and the database.
"""
import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from sheetsync.api.dependencies import get_client
from sheetsync.api.schemas.shared import DatabaseHealthResponse, RemoteHealthResponse
from sheetsync.db.models import ApiLog, Configuration, ImportBatch
from sheetsync.db.session import get_db
from sheetsync.integrations.erpnext import ERPNextClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/erpnext", response_model=RemoteHealthResponse)
async def erpnext_health(client: ERPNextClient = Depends(get_client)):
    result = client.check_health()
    if not result.success:
        logger.warning("ERPNext health check failed: %s", result.error)
    return RemoteHealthResponse(**result.to_dict())


@router.get("/database", response_model=DatabaseHealthResponse)
async def database_health(db: Session = Depends(get_db)):
    """Run a trivial query and touch every table the importer uses."""
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
        for model in (Configuration, ImportBatch, ApiLog):
            db.query(model).limit(1).all()
    except Exception as e:
        logger.exception("Database health check failed")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": str(e) or "Database connection failed",
                "response_time_ms": 0,
                "tables_accessible": False,
            },
        )

    return DatabaseHealthResponse(
        success=True,
        message="Database connection successful",
        response_time_ms=int(round((time.perf_counter() - started) * 1000)),
        tables_accessible=True,
    )
