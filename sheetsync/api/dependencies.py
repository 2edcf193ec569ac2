"""
Shared dependencies for the API.

Stores, the ERPNext client and the orchestrator are process-wide singletons
built lazily on first use. Routers receive them through ``Depends`` so tests
can swap them with ``app.dependency_overrides``.
"""
from typing import Optional

from fastapi import HTTPException

from sheetsync.db.session import get_session_local
from sheetsync.domain.configuration import ConfigurationStore, load_remote_credentials
from sheetsync.domain.imports.batches import BatchStore
from sheetsync.domain.imports.entities import EntityType, resolve_entity_type
from sheetsync.domain.imports.history import ApiLogStore
from sheetsync.domain.imports.orchestrator import ImportOrchestrator
from sheetsync.integrations.erpnext import ERPNextClient

SUPPORTED_EXTENSIONS = (".xlsx", ".xls")

_config_store: Optional[ConfigurationStore] = None
_batch_store: Optional[BatchStore] = None
_log_store: Optional[ApiLogStore] = None
_client: Optional[ERPNextClient] = None
_orchestrator: Optional[ImportOrchestrator] = None


def get_config_store() -> ConfigurationStore:
    global _config_store
    if _config_store is None:
        _config_store = ConfigurationStore(get_session_local())
    return _config_store


def get_batch_store() -> BatchStore:
    global _batch_store
    if _batch_store is None:
        _batch_store = BatchStore(get_session_local())
    return _batch_store


def get_log_store() -> ApiLogStore:
    global _log_store
    if _log_store is None:
        _log_store = ApiLogStore(get_session_local())
    return _log_store


def get_client() -> ERPNextClient:
    global _client
    if _client is None:
        _client = ERPNextClient(lambda: load_remote_credentials(get_config_store()))
    return _client


def get_orchestrator() -> ImportOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ImportOrchestrator(
            client=get_client(),
            batches=get_batch_store(),
            logs=get_log_store(),
        )
    return _orchestrator


def require_entity_type(module: str) -> EntityType:
    """
    Resolve a ``module`` path or form value to a supported entity type.

    Raises:
    - HTTPException(400): unknown entity type
    """
    entity = resolve_entity_type(module)
    if entity is None:
        raise HTTPException(status_code=400, detail=f"Unsupported entity type: {module}")
    return entity


def ensure_spreadsheet_filename(filename: Optional[str]) -> str:
    """
    Only Excel workbooks are accepted.

    Raises:
    - HTTPException(400): missing name or unsupported extension
    """
    if not filename or not filename.lower().endswith(SUPPORTED_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Only Excel files (.xlsx, .xls) are allowed")
    return filename
