"""
Append-only API log for row outcomes and batch summaries.

Every ERPNext attempt the orchestrator makes ends up here, one entry per
row plus one summary entry per batch. Dashboards only ever read this table.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from sheetsync.db.models import ApiLog

logger = logging.getLogger(__name__)

LOG_SUCCESS = "success"
LOG_FAILED = "failed"
LOG_PROCESSING = "processing"

LOG_STATUSES = (LOG_SUCCESS, LOG_FAILED, LOG_PROCESSING)

STATS_SAMPLE_SIZE = 1000


def _row_to_log(row: ApiLog) -> Dict[str, Any]:
    return {
        "id": row.id,
        "batch_id": row.batch_id,
        "filename": row.filename,
        "entity_type": row.entity_type,
        "endpoint": row.endpoint,
        "method": row.method,
        "record_count": row.record_count,
        "success_count": row.success_count,
        "failure_count": row.failure_count,
        "status": row.status,
        "remote_response": row.remote_response,
        "errors": row.errors,
        "response_time_ms": row.response_time_ms,
        "created_at": row.created_at,
    }


class ApiLogStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create_log(
        self,
        *,
        batch_id: Optional[str],
        filename: str,
        entity_type: str,
        endpoint: str,
        method: str,
        record_count: int,
        success_count: int,
        failure_count: int,
        status: str,
        remote_response: Any = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        response_time_ms: int = 0,
    ) -> Dict[str, Any]:
        """
        Insert one log entry.

        Raises:
            ValueError: if the counts do not add up or the status is unknown.
        """
        if success_count + failure_count != record_count:
            raise ValueError(
                f"Log counts do not add up: {success_count} succeeded + {failure_count} failed != {record_count} records"
            )
        if status not in LOG_STATUSES:
            raise ValueError(f"Unknown log status: {status}")

        with self._session_factory() as db:
            entry = ApiLog(
                batch_id=batch_id,
                filename=filename,
                entity_type=entity_type,
                endpoint=endpoint,
                method=method,
                record_count=record_count,
                success_count=success_count,
                failure_count=failure_count,
                status=status,
                remote_response=remote_response,
                errors=errors or None,
                response_time_ms=int(response_time_ms or 0),
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return _row_to_log(entry)

    def list_logs(self, *, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest first."""
        with self._session_factory() as db:
            query = db.query(ApiLog)
            if status:
                query = query.filter(ApiLog.status == status)
            rows = query.order_by(ApiLog.id.desc()).limit(limit).all()
            return [_row_to_log(row) for row in rows]

    def list_logs_for_batch(self, batch_id: str) -> List[Dict[str, Any]]:
        """Oldest first, i.e. in row order with the summary last."""
        with self._session_factory() as db:
            rows = (
                db.query(ApiLog)
                .filter(ApiLog.batch_id == batch_id)
                .order_by(ApiLog.id.asc())
                .all()
            )
            return [_row_to_log(row) for row in rows]

    def compute_stats(self, sample_size: int = STATS_SAMPLE_SIZE) -> Dict[str, Any]:
        """Counts by status and success rate over the latest ``sample_size`` entries."""
        with self._session_factory() as db:
            statuses = [
                row.status
                for row in db.query(ApiLog.status).order_by(ApiLog.id.desc()).limit(sample_size).all()
            ]

        total = len(statuses)
        successful = sum(1 for status in statuses if status == LOG_SUCCESS)
        failed = sum(1 for status in statuses if status == LOG_FAILED)
        processing = sum(1 for status in statuses if status == LOG_PROCESSING)
        success_rate = round(successful / total * 100, 1) if total else 0.0

        return {
            "total_imports": total,
            "successful_imports": successful,
            "failed_imports": failed,
            "processing_imports": processing,
            "success_rate": success_rate,
        }
