"""
Import orchestration layer.

Upload handling (parse, map, validate, stage) runs inside the request and
either rejects the file or leaves a ``pending`` batch behind. ``run_batch``
then replays the staged rows against ERPNext one at a time, routing every
rejection through the auto-fix middleware, and records each outcome plus a
batch summary in the API log.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sheetsync.core.config import settings

from .autofix import AutoFixMiddleware
from .batches import (
    BATCH_COMPLETED,
    BATCH_FAILED,
    BatchStore,
)
from .entities import RowMap, resolve_entity_type, resource_endpoint
from .errors import ImportValidationError
from .history import LOG_FAILED, LOG_SUCCESS, ApiLogStore
from .mapper import FieldMapper
from .processors.excel_processor import parse_spreadsheet
from .validators import HEADER_ROW_OFFSET, SchemaValidator, ValidationResult

logger = logging.getLogger(__name__)

CREATE_METHOD = "POST"


@dataclass
class StagedImport:
    batch_id: str
    record_count: int
    warnings: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class BatchSummary:
    batch_id: str
    status: str
    record_count: int
    success_count: int = 0
    failure_count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class _RowOutcome:
    success: bool
    remote_response: Any = None
    error: Optional[str] = None
    fixes_applied: List[str] = field(default_factory=list)
    auto_fix_attempted: bool = False
    response_time_ms: int = 0


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


class ImportOrchestrator:
    """
    Drive a spreadsheet from upload to ERPNext.

    Rows inside one batch are strictly sequential; separate batches share
    nothing but the client and the stores, so they may run concurrently.
    """

    def __init__(
        self,
        *,
        client: Any,
        batches: BatchStore,
        logs: ApiLogStore,
        auto_fix: Optional[AutoFixMiddleware] = None,
        mapper: Optional[FieldMapper] = None,
        validator: Optional[SchemaValidator] = None,
        max_retries: Optional[int] = None,
        auto_fix_enabled: Optional[bool] = None,
    ):
        self.client = client
        self.batches = batches
        self.logs = logs
        self.auto_fix = auto_fix if auto_fix is not None else AutoFixMiddleware(client)
        self.mapper = mapper or FieldMapper()
        self.validator = validator or SchemaValidator()
        self.max_retries = max_retries if max_retries is not None else settings.auto_fix_max_retries
        self.auto_fix_enabled = settings.auto_fix_enabled if auto_fix_enabled is None else auto_fix_enabled

    def prepare_rows(
        self,
        file_content: bytes,
        entity_type: str,
        *,
        use_field_mapping: bool = True,
    ) -> Tuple[List[RowMap], ValidationResult, List[Dict[str, Any]]]:
        """
        Parse, map and validate an upload without persisting anything.

        Returns:
            Tuple of (rows, validation_result, mapping_warnings).
        """
        parsed = parse_spreadsheet(file_content)

        rows: List[RowMap] = parsed.rows
        mapping_warnings: List[Dict[str, Any]] = []
        if use_field_mapping and self.mapper.supports(entity_type):
            for column in self.mapper.unmapped_columns(entity_type, parsed.columns):
                mapping_warnings.append(
                    {
                        "field": column,
                        "message": f"Column '{column}' does not match any {entity_type} field and will be ignored",
                    }
                )
            rows = self.mapper.map_rows(entity_type, parsed.rows)

        validation = self.validator.validate(entity_type, rows)
        return rows, validation, mapping_warnings

    def stage_upload(
        self,
        *,
        filename: str,
        file_content: bytes,
        entity_type: str,
        use_field_mapping: bool = True,
    ) -> StagedImport:
        """
        Validate an upload and persist it as a ``pending`` batch.

        Raises:
            ParseError: the file is not a readable spreadsheet.
            ImportValidationError: any schema violation; nothing is persisted.
        """
        rows, validation, mapping_warnings = self.prepare_rows(
            file_content,
            entity_type,
            use_field_mapping=use_field_mapping,
        )
        warnings = mapping_warnings + validation.warnings

        if not validation.is_valid:
            logger.info(
                "Rejected upload '%s' for %s: %d validation error(s)",
                filename,
                entity_type,
                len(validation.errors),
            )
            raise ImportValidationError(validation.errors, warnings)

        batch = self.batches.create_batch(filename=filename, entity_type=entity_type, rows=rows)
        return StagedImport(batch_id=batch["id"], record_count=batch["record_count"], warnings=warnings)

    def run_batch(self, batch_id: str) -> Optional[BatchSummary]:
        """
        Send every staged row of a batch to ERPNext and finalize the batch.

        Returns None without sending anything when the batch is missing or
        no longer ``pending``. A fault outside the per-row boundary marks the
        batch ``failed`` with a synthetic summary.
        """
        batch = self.batches.get_batch(batch_id)
        if batch is None:
            logger.error("Batch %s not found; nothing to process", batch_id)
            return None
        if not self.batches.claim_batch(batch_id):
            logger.info("Batch %s is already %s; skipping", batch_id, batch["status"])
            return None

        filename = batch["filename"]
        entity_type = batch["entity_type"]
        rows: List[RowMap] = batch["rows"] or []
        endpoint = resource_endpoint(entity_type)

        try:
            return self._process_rows(batch_id, filename, entity_type, endpoint, rows)
        except Exception as exc:
            logger.exception("Fatal error while processing batch %s: %s", batch_id, exc)
            return self._fail_batch(batch_id, filename, entity_type, endpoint, rows, exc)

    def resume_pending(self) -> List[BatchSummary]:
        """Run every batch still waiting in ``pending``, oldest first."""
        summaries = []
        for batch_id in self.batches.list_pending_batch_ids():
            logger.info("Resuming pending batch %s", batch_id)
            summary = self.run_batch(batch_id)
            if summary is not None:
                summaries.append(summary)
        return summaries

    def fail_stalled_batches(self, stale_after: Optional[timedelta] = None) -> List[BatchSummary]:
        """
        Fail batches stuck in ``processing`` longer than ``stale_after``.

        Rows already logged keep their per-row outcome; the summary counts
        every row without a success entry as failed.
        """
        if stale_after is None:
            stale_after = timedelta(minutes=settings.batch_stall_timeout_minutes)
        cutoff = datetime.now(timezone.utc) - stale_after

        summaries = []
        for batch_id in self.batches.list_stalled_batch_ids(cutoff):
            if not self.batches.fail_if_processing(batch_id):
                continue
            batch = self.batches.get_batch(batch_id, include_rows=False)
            record_count = batch["record_count"]
            success_count = sum(
                entry["success_count"]
                for entry in self.logs.list_logs_for_batch(batch_id)
                if entry["record_count"] == 1
            )
            errors = [{"message": "Processing was interrupted before the batch finished"}]
            self.logs.create_log(
                batch_id=batch_id,
                filename=batch["filename"],
                entity_type=batch["entity_type"],
                endpoint=resource_endpoint(batch["entity_type"]),
                method=CREATE_METHOD,
                record_count=record_count,
                success_count=success_count,
                failure_count=record_count - success_count,
                status=LOG_FAILED,
                remote_response=None,
                errors=errors,
                response_time_ms=0,
            )
            logger.warning("Batch %s was left processing; marked failed", batch_id)
            summaries.append(
                BatchSummary(
                    batch_id=batch_id,
                    status=BATCH_FAILED,
                    record_count=record_count,
                    success_count=success_count,
                    failure_count=record_count - success_count,
                    errors=errors,
                )
            )
        return summaries

    def _process_rows(
        self,
        batch_id: str,
        filename: str,
        entity_type: str,
        endpoint: str,
        rows: List[RowMap],
    ) -> BatchSummary:
        logger.info("Processing batch %s: %d %s rows", batch_id, len(rows), entity_type)

        if resolve_entity_type(entity_type) is None:
            raise ValueError(f"Unsupported entity type: {entity_type}")

        success_count = 0
        failure_count = 0
        errors: List[Dict[str, Any]] = []

        for index, row in enumerate(rows):
            row_number = index + HEADER_ROW_OFFSET
            try:
                outcome = self._submit_row(entity_type, row)
            except Exception as exc:
                logger.exception("Unexpected error on row %d of batch %s", row_number, batch_id)
                outcome = _RowOutcome(success=False, error=str(exc) or "Unknown error during record processing")

            if outcome.success:
                success_count += 1
                row_errors = None
                if outcome.fixes_applied:
                    # Kept for audit even though the row went through.
                    row_errors = [
                        {
                            "row": row_number,
                            "message": "Record created after auto-fix",
                            "auto_fix_attempted": True,
                            "fixes_applied": outcome.fixes_applied,
                        }
                    ]
                logger.info("Row %d of batch %s created", row_number, batch_id)
            else:
                failure_count += 1
                errors.append(
                    {
                        "row": row_number,
                        "data": row,
                        "error": outcome.error,
                        "auto_fix_attempted": outcome.auto_fix_attempted,
                        "fixes_applied": outcome.fixes_applied,
                    }
                )
                row_errors = [
                    {
                        "row": row_number,
                        "message": outcome.error,
                        "auto_fix_attempted": outcome.auto_fix_attempted,
                        "fixes_applied": outcome.fixes_applied,
                    }
                ]
                logger.warning("Row %d of batch %s failed: %s", row_number, batch_id, outcome.error)

            self.logs.create_log(
                batch_id=batch_id,
                filename=filename,
                entity_type=entity_type,
                endpoint=endpoint,
                method=CREATE_METHOD,
                record_count=1,
                success_count=1 if outcome.success else 0,
                failure_count=0 if outcome.success else 1,
                status=LOG_SUCCESS if outcome.success else LOG_FAILED,
                remote_response=outcome.remote_response,
                errors=row_errors,
                response_time_ms=outcome.response_time_ms,
            )

        final_status = BATCH_COMPLETED if failure_count == 0 else BATCH_FAILED
        self.batches.update_status(batch_id, final_status, completed=True)

        self.logs.create_log(
            batch_id=batch_id,
            filename=filename,
            entity_type=entity_type,
            endpoint=endpoint,
            method=CREATE_METHOD,
            record_count=len(rows),
            success_count=success_count,
            failure_count=failure_count,
            status=LOG_SUCCESS if failure_count == 0 else LOG_FAILED,
            remote_response={"summary": f"Processed {len(rows)} records"},
            errors=errors,
            response_time_ms=0,
        )

        logger.info(
            "Batch %s finished as %s: %d succeeded, %d failed",
            batch_id,
            final_status,
            success_count,
            failure_count,
        )
        return BatchSummary(
            batch_id=batch_id,
            status=final_status,
            record_count=len(rows),
            success_count=success_count,
            failure_count=failure_count,
            errors=errors,
        )

    def _submit_row(self, entity_type: str, row: RowMap) -> _RowOutcome:
        started = time.perf_counter()
        response = self.client.create_record(entity_type, row)
        if response.success:
            return _RowOutcome(
                success=True,
                remote_response=response.data,
                response_time_ms=response.response_time_ms,
            )

        if not self.auto_fix_enabled:
            return _RowOutcome(
                success=False,
                error=response.error,
                response_time_ms=response.response_time_ms,
            )

        fixed = self.auto_fix.process_record(entity_type, row, response.error or "", self.max_retries)
        return _RowOutcome(
            success=fixed.success,
            remote_response=fixed.data,
            error=fixed.error,
            fixes_applied=list(fixed.fixes_applied),
            auto_fix_attempted=True,
            response_time_ms=_elapsed_ms(started),
        )

    def _fail_batch(
        self,
        batch_id: str,
        filename: str,
        entity_type: str,
        endpoint: str,
        rows: List[RowMap],
        exc: Exception,
    ) -> BatchSummary:
        message = f"Overall processing failed: {exc or 'Unknown error'}"
        errors = [{"message": message}]
        try:
            self.batches.update_status(batch_id, BATCH_FAILED, completed=True)
            self.logs.create_log(
                batch_id=batch_id,
                filename=filename,
                entity_type=entity_type,
                endpoint=endpoint,
                method=CREATE_METHOD,
                record_count=len(rows),
                success_count=0,
                failure_count=len(rows),
                status=LOG_FAILED,
                remote_response=None,
                errors=errors,
                response_time_ms=0,
            )
        except Exception:
            logger.exception("Could not record failure of batch %s", batch_id)
            raise
        return BatchSummary(
            batch_id=batch_id,
            status=BATCH_FAILED,
            record_count=len(rows),
            success_count=0,
            failure_count=len(rows),
            errors=errors,
        )
