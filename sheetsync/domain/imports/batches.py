"""
Persistent tracking for staged import batches.

A batch is created ``pending`` at upload time and only the import
orchestrator moves it through ``processing`` to ``completed`` or ``failed``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from sheetsync.db.models import ImportBatch

from .entities import RowMap

logger = logging.getLogger(__name__)

BATCH_PENDING = "pending"
BATCH_PROCESSING = "processing"
BATCH_COMPLETED = "completed"
BATCH_FAILED = "failed"

BATCH_STATUSES = (BATCH_PENDING, BATCH_PROCESSING, BATCH_COMPLETED, BATCH_FAILED)


def _row_to_batch(row: ImportBatch, include_rows: bool = True) -> Dict[str, Any]:
    batch = {
        "id": row.id,
        "filename": row.filename,
        "entity_type": row.entity_type,
        "record_count": row.record_count,
        "status": row.status,
        "created_at": row.created_at,
        "started_at": row.started_at,
        "completed_at": row.completed_at,
    }
    if include_rows:
        batch["rows"] = row.rows
    return batch


class BatchStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create_batch(self, *, filename: str, entity_type: str, rows: List[RowMap]) -> Dict[str, Any]:
        """Persist a new ``pending`` batch holding every staged row."""
        with self._session_factory() as db:
            batch = ImportBatch(
                filename=filename,
                entity_type=entity_type,
                record_count=len(rows),
                rows=rows,
                status=BATCH_PENDING,
            )
            db.add(batch)
            db.commit()
            db.refresh(batch)
            logger.info("Staged batch %s: %s (%s, %d rows)", batch.id, filename, entity_type, len(rows))
            return _row_to_batch(batch)

    def get_batch(self, batch_id: str, *, include_rows: bool = True) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            batch = db.get(ImportBatch, batch_id)
            return _row_to_batch(batch, include_rows=include_rows) if batch else None

    def update_status(
        self,
        batch_id: str,
        status: str,
        *,
        completed: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Move a batch to ``status``; ``completed=True`` stamps ``completed_at``."""
        if status not in BATCH_STATUSES:
            raise ValueError(f"Unknown batch status: {status}")

        with self._session_factory() as db:
            batch = db.get(ImportBatch, batch_id)
            if batch is None:
                return None
            batch.status = status
            if completed:
                batch.completed_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(batch)
            return _row_to_batch(batch, include_rows=False)

    def claim_batch(self, batch_id: str) -> bool:
        """
        Move a batch from ``pending`` to ``processing`` in one conditional UPDATE.

        Returns False when the batch is missing or another worker already
        claimed it, in which case the caller must not touch its rows.
        """
        with self._session_factory() as db:
            claimed = (
                db.query(ImportBatch)
                .filter(ImportBatch.id == batch_id, ImportBatch.status == BATCH_PENDING)
                .update(
                    {ImportBatch.status: BATCH_PROCESSING, ImportBatch.started_at: datetime.now(timezone.utc)},
                    synchronize_session=False,
                )
            )
            db.commit()
        return claimed == 1

    def fail_if_processing(self, batch_id: str) -> bool:
        """Mark a ``processing`` batch ``failed``; False if it already finished."""
        with self._session_factory() as db:
            updated = (
                db.query(ImportBatch)
                .filter(ImportBatch.id == batch_id, ImportBatch.status == BATCH_PROCESSING)
                .update(
                    {ImportBatch.status: BATCH_FAILED, ImportBatch.completed_at: datetime.now(timezone.utc)},
                    synchronize_session=False,
                )
            )
            db.commit()
        return updated == 1

    def list_batches(
        self,
        *,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        with self._session_factory() as db:
            query = db.query(ImportBatch)
            if status:
                query = query.filter(ImportBatch.status == status)
            batches = query.order_by(ImportBatch.created_at.desc()).offset(offset).limit(limit).all()
            return [_row_to_batch(batch, include_rows=False) for batch in batches]

    def list_pending_batch_ids(self) -> List[str]:
        """Oldest first, so resumed batches run in upload order."""
        with self._session_factory() as db:
            rows = (
                db.query(ImportBatch.id)
                .filter(ImportBatch.status == BATCH_PENDING)
                .order_by(ImportBatch.created_at.asc())
                .all()
            )
            return [row.id for row in rows]

    def count_batches(self, *, status: Optional[str] = None) -> int:
        with self._session_factory() as db:
            query = db.query(ImportBatch)
            if status:
                query = query.filter(ImportBatch.status == status)
            return query.count()

    def list_stalled_batch_ids(self, started_before: datetime) -> List[str]:
        """Batches claimed before ``started_before`` that never reached a final status."""
        with self._session_factory() as db:
            rows = (
                db.query(ImportBatch.id)
                .filter(
                    ImportBatch.status == BATCH_PROCESSING,
                    ImportBatch.started_at <= started_before,
                )
                .order_by(ImportBatch.started_at.asc())
                .all()
            )
            return [row.id for row in rows]
