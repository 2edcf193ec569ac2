"""
ORM models for staged import batches, API logs and runtime configuration.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from sheetsync.db.session import Base


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ImportBatch(Base):
    """One uploaded spreadsheet, staged before its rows are sent to ERPNext."""
    __tablename__ = "import_batches"

    id = Column(String(36), primary_key=True, default=_new_id)
    filename = Column(String(500), nullable=False)
    entity_type = Column(String(100), nullable=False, index=True)
    record_count = Column(Integer, nullable=False)
    rows = Column(JSON, nullable=False)  # List of row-maps as staged
    status = Column(String(50), nullable=False, default="pending", index=True)  # pending, processing, completed, failed
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)  # set when a worker claims the batch
    completed_at = Column(DateTime(timezone=True), nullable=True)


class ApiLog(Base):
    """Append-only outcome of one row attempt or of a whole batch."""
    __tablename__ = "api_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)  # insertion order
    batch_id = Column(String(36), ForeignKey("import_batches.id"), nullable=True, index=True)
    filename = Column(String(500), nullable=False)
    entity_type = Column(String(100), nullable=False)
    endpoint = Column(Text, nullable=False)
    method = Column(String(10), nullable=False)
    record_count = Column(Integer, nullable=False)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    status = Column(String(50), nullable=False, index=True)
    remote_response = Column(JSON, nullable=True)
    errors = Column(JSON, nullable=True)  # [{row, field, message, fixes_applied, ...}]
    response_time_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)


class Configuration(Base):
    """Key/value settings editable at runtime (ERPNext credentials)."""
    __tablename__ = "configuration"

    id = Column(String(36), primary_key=True, default=_new_id)
    key = Column(String(255), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
