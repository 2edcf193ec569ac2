"""
Pytest configuration and fixtures for SheetSync tests.

Every test gets its own in-memory SQLite database, and the ERPNext client is
replaced by a scripted fake unless a test exercises the real one.
"""

import io
import os

# Keep the app lifespan from touching a real database during import.
os.environ["SKIP_DB_INIT"] = "1"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sheetsync.db.session import init_db
from sheetsync.domain.configuration import ConfigurationStore
from sheetsync.domain.imports.autofix import AutoFixMiddleware
from sheetsync.domain.imports.batches import BatchStore
from sheetsync.domain.imports.history import ApiLogStore
from sheetsync.domain.imports.orchestrator import ImportOrchestrator
from sheetsync.integrations.erpnext import RemoteResult


class ScriptedClient:
    """
    Stand-in for ERPNextClient.

    ``responses`` are consumed one per create call; each is a RemoteResult or
    a callable ``(entity_type, data) -> RemoteResult``. Once exhausted, every
    call succeeds.
    """

    def __init__(self, responses=None, health=None):
        self.responses = list(responses or [])
        self.health = health or RemoteResult(success=True, data={"message": "pong"}, status_code=200)
        self.calls = []
        self.reinit_count = 0

    def create_record(self, entity_type, data):
        self.calls.append((entity_type, dict(data)))
        if self.responses:
            response = self.responses.pop(0)
            return response(entity_type, data) if callable(response) else response
        return RemoteResult(success=True, data={"data": {"name": f"DOC-{len(self.calls):04d}"}}, status_code=200)

    def check_health(self):
        return self.health

    def force_reinit(self):
        self.reinit_count += 1


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def batch_store(session_factory):
    return BatchStore(session_factory)


@pytest.fixture
def log_store(session_factory):
    return ApiLogStore(session_factory)


@pytest.fixture
def config_store(session_factory):
    return ConfigurationStore(session_factory)


@pytest.fixture
def make_client():
    return ScriptedClient


@pytest.fixture
def make_orchestrator(batch_store, log_store):
    """Build an orchestrator around a ScriptedClient primed with ``responses``."""

    def _build(responses=None, **kwargs):
        client = ScriptedClient(responses)
        kwargs.setdefault("max_retries", 3)
        kwargs.setdefault("auto_fix_enabled", True)
        orchestrator = ImportOrchestrator(
            client=client,
            batches=batch_store,
            logs=log_store,
            auto_fix=AutoFixMiddleware(client),
            **kwargs,
        )
        return orchestrator, client

    return _build


@pytest.fixture
def make_workbook():
    """Return a function that renders headers + rows to xlsx bytes."""

    def _build(headers, rows, sheet_title="Sheet1", extra_sheets=None):
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = sheet_title
        sheet.append(list(headers))
        for row in rows:
            sheet.append(list(row))
        for title, sheet_rows in (extra_sheets or {}).items():
            extra = workbook.create_sheet(title)
            for row in sheet_rows:
                extra.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    return _build
