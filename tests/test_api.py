import io
import os

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

os.environ["SKIP_DB_INIT"] = "1"
from sheetsync.api.dependencies import (
    get_batch_store,
    get_client,
    get_config_store,
    get_log_store,
    get_orchestrator,
)
from sheetsync.db.session import get_db
from sheetsync.domain.imports.autofix import AutoFixMiddleware
from sheetsync.domain.imports.orchestrator import ImportOrchestrator
from sheetsync.integrations.erpnext import RemoteResult
from sheetsync.main import app

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ITEM_HEADERS = ["Item Code", "Item Name", "Item Group", "Default Unit of Measure"]


@pytest.fixture
def remote(make_client):
    return make_client()


@pytest.fixture
def client(remote, batch_store, log_store, config_store, session_factory):
    orchestrator = ImportOrchestrator(
        client=remote,
        batches=batch_store,
        logs=log_store,
        auto_fix=AutoFixMiddleware(remote),
        max_retries=3,
        auto_fix_enabled=True,
    )

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_batch_store] = lambda: batch_store
    app.dependency_overrides[get_log_store] = lambda: log_store
    app.dependency_overrides[get_config_store] = lambda: config_store
    app.dependency_overrides[get_client] = lambda: remote
    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _upload(client, content, module="Item", filename="items.xlsx", **data):
    return client.post(
        "/api/upload-excel",
        files={"file": (filename, content, XLSX)},
        data={"module": module, **data},
    )


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "SheetSync API", "version": "1.0.0"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_upload_stages_and_processes_batch(client, remote, make_workbook):
    content = make_workbook(ITEM_HEADERS, [["ITEM-001", "Widget", "Products", "Nos"]])

    response = _upload(client, content)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "File uploaded successfully"
    assert body["record_count"] == 1
    assert body["warnings"] == []

    # TestClient runs background tasks before returning
    batch = client.get(f"/api/staging/{body['staging_id']}").json()
    assert batch["status"] == "completed"
    assert batch["rows"][0]["item_code"] == "ITEM-001"
    assert remote.calls[0][0] == "Item"

    logs = client.get(f"/api/staging/{body['staging_id']}/logs").json()
    assert [entry["record_count"] for entry in logs] == [1, 1]


def test_upload_validation_failure(client, make_workbook, batch_store):
    content = make_workbook(ITEM_HEADERS, [["ITEM-001", "Widget", "Products", "Nos"], ["ITEM-002", "Gadget", None, "Nos"]])

    response = _upload(client, content)

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "Validation failed"
    assert detail["errors"][0]["row"] == 3
    assert detail["errors"][0]["field"] == "item_group"
    assert batch_store.list_batches() == []


def test_upload_rejects_non_excel_file(client):
    response = _upload(client, b"a,b\n1,2\n", filename="items.csv")

    assert response.status_code == 400
    assert "Excel" in response.json()["detail"]


def test_upload_requires_module(client, make_workbook):
    response = client.post(
        "/api/upload-excel",
        files={"file": ("items.xlsx", make_workbook(ITEM_HEADERS, []), XLSX)},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Module is required"


def test_upload_unknown_module(client, make_workbook):
    response = _upload(client, make_workbook(ITEM_HEADERS, []), module="Journal Entry")

    assert response.status_code == 400


def test_upload_corrupt_workbook(client):
    response = _upload(client, b"definitely not xlsx")

    assert response.status_code == 400


def test_staging_list_reports_total_beyond_page(client, make_workbook):
    for code in ("A", "B", "C"):
        _upload(client, make_workbook(ITEM_HEADERS, [[code, "x", "Products", "Nos"]]))

    body = client.get("/api/staging", params={"limit": 2}).json()

    assert len(body["batches"]) == 2
    assert body["total_count"] == 3
    assert client.get("/api/staging", params={"status": "pending"}).json()["total_count"] == 0


def test_staging_not_found(client):
    assert client.get("/api/staging/missing").status_code == 404
    assert client.get("/api/staging/missing/logs").status_code == 404


def test_logs_and_stats(client, remote, make_workbook):
    remote.responses = [RemoteResult(success=False, error="Something odd", status_code=417)]
    content = make_workbook(ITEM_HEADERS, [["A", "a", "g", "Nos"], ["B", "b", "g", "Nos"]])
    _upload(client, content)

    logs = client.get("/api/logs").json()
    assert len(logs) == 3
    assert logs[0]["record_count"] == 2  # summary entry is newest

    failed = client.get("/api/logs", params={"status": "failed"}).json()
    assert {entry["status"] for entry in failed} == {"failed"}

    assert len(client.get("/api/logs/all").json()) == 3
    assert client.get("/api/logs", params={"status": "weird"}).status_code == 400

    stats = client.get("/api/stats").json()
    assert stats == {
        "total_imports": 3,
        "successful_imports": 1,
        "failed_imports": 2,
        "processing_imports": 0,
        "success_rate": 33.3,
    }


def test_stats_with_no_logs(client):
    assert client.get("/api/stats").json()["success_rate"] == 0.0


def test_template_download(client):
    response = client.get("/api/template/Sales Order")

    assert response.status_code == 200
    assert "SalesOrder_Template.xlsx" in response.headers["content-disposition"]
    sheet = load_workbook(io.BytesIO(response.content)).active
    header = [cell.value for cell in next(sheet.iter_rows(max_row=1))]
    assert header == ["customer", "delivery_date", "item_code", "qty", "rate"]


def test_template_unknown_module(client):
    assert client.get("/api/template/Journal Entry").status_code == 404


def test_field_mappings(client):
    body = client.get("/api/field-mappings/Customer").json()

    assert body["entity_type"] == "Customer"
    email = next(m for m in body["mappings"] if m["field"] == "email_id")
    assert email["headers"] == ["Email Id", "email_id", "Email"]


def test_config_roundtrip_reinitializes_client(client, remote):
    assert client.get("/api/config/erpnext").json()["configured"] is False

    response = client.post(
        "/api/config/erpnext",
        json={"base_url": "http://erp.test", "api_key": "key", "api_secret": "secret"},
    )

    assert response.status_code == 200
    assert remote.reinit_count == 1
    config = client.get("/api/config/erpnext").json()
    assert config == {"base_url": "http://erp.test", "api_key": "key", "has_api_secret": True, "configured": True}


def test_config_requires_every_field(client, remote):
    response = client.post("/api/config/erpnext", json={"base_url": "http://erp.test", "api_key": "", "api_secret": "s"})

    assert response.status_code == 422
    assert remote.reinit_count == 0


def test_erpnext_health_reports_client_result(client, remote):
    remote.health = RemoteResult(success=False, error="ERPNext client not configured", status_code=500)

    body = client.get("/api/health/erpnext").json()

    assert body["success"] is False
    assert body["status_code"] == 500


def test_database_health(client):
    body = client.get("/api/health/database").json()

    assert body["success"] is True
    assert body["tables_accessible"] is True
