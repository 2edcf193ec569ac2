from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ValidationIssue(BaseModel):
    """One validation error or warning surfaced to the operator."""
    field: str
    message: str
    row: Optional[int] = None
    value: Optional[Any] = None
    expected_type: Optional[str] = None


class UploadResponse(BaseModel):
    message: str
    staging_id: str
    record_count: int
    warnings: List[ValidationIssue] = Field(default_factory=list)


class BatchInfo(BaseModel):
    id: str
    filename: str
    entity_type: str
    record_count: int
    status: str
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rows: Optional[List[Dict[str, Any]]] = None


class BatchListResponse(BaseModel):
    success: bool
    batches: List[BatchInfo]
    total_count: int
    limit: int
    offset: int


class ApiLogRecord(BaseModel):
    id: int
    batch_id: Optional[str] = None
    filename: str
    entity_type: str
    endpoint: str
    method: str
    record_count: int
    success_count: int
    failure_count: int
    status: str
    remote_response: Optional[Any] = None
    errors: Optional[List[Dict[str, Any]]] = None
    response_time_ms: int = 0
    created_at: Optional[datetime] = None


class ImportStatsResponse(BaseModel):
    total_imports: int
    successful_imports: int
    failed_imports: int
    processing_imports: int
    success_rate: float


class FieldMappingInfo(BaseModel):
    field: str
    headers: List[str]
    transform: Optional[str] = None


class FieldMappingsResponse(BaseModel):
    entity_type: str
    mappings: List[FieldMappingInfo]


class TemplateInfo(BaseModel):
    entity_type: str
    template_name: str
    columns: List[str]


class ERPNextConfigRequest(BaseModel):
    base_url: str
    api_key: str
    api_secret: str

    @field_validator("base_url", "api_key", "api_secret")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class ERPNextConfigResponse(BaseModel):
    """Current credentials; the secret itself is never echoed back."""
    base_url: str = ""
    api_key: str = ""
    has_api_secret: bool = False
    configured: bool = False


class ConfigSavedResponse(BaseModel):
    success: bool
    message: str


class RemoteHealthResponse(BaseModel):
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    status_code: int
    response_time_ms: int


class DatabaseHealthResponse(BaseModel):
    success: bool
    message: str
    response_time_ms: int = 0
    tables_accessible: bool
