import json
from unittest.mock import patch

import pytest
import requests

from sheetsync.core.config import settings
from sheetsync.domain.configuration import RemoteCredentials, load_remote_credentials
from sheetsync.integrations.erpnext import NOT_CONFIGURED_ERROR, ERPNextClient

BASE_URL = "http://erp.test"


def _response(status_code, payload=None):
    response = requests.Response()
    response.status_code = status_code
    response.url = BASE_URL
    response._content = json.dumps(payload).encode() if payload is not None else b""
    return response


def _client(loader=None):
    credentials = RemoteCredentials(base_url=BASE_URL, api_key="key", api_secret="secret")
    return ERPNextClient(loader or (lambda: credentials), timeout_seconds=5)


def test_unconfigured_client_never_calls_out():
    client = ERPNextClient(lambda: RemoteCredentials(base_url=BASE_URL), timeout_seconds=5)

    with patch.object(requests.Session, "request") as mock_request:
        result = client.create_item({"item_code": "ITEM-001"})
        health = client.check_health()

    mock_request.assert_not_called()
    assert not result.success
    assert result.error == NOT_CONFIGURED_ERROR
    assert result.status_code == 500
    assert health.error == NOT_CONFIGURED_ERROR


def test_failing_credentials_loader_means_not_configured():
    def loader():
        raise RuntimeError("database is down")

    result = _client(loader).create_customer({"customer_name": "ACME"})

    assert not result.success
    assert result.error == NOT_CONFIGURED_ERROR


def test_create_posts_row_to_resource_endpoint():
    client = _client()
    row = {"item_code": "ITEM-001", "item_name": "Widget"}

    with patch.object(
        requests.Session, "request", autospec=True, return_value=_response(200, {"data": {"name": "ITEM-001"}})
    ) as mock_request:
        result = client.create_item(row)

    assert result.success
    assert result.data == {"data": {"name": "ITEM-001"}}
    assert result.status_code == 200
    assert result.response_time_ms >= 0

    session, method, url = mock_request.call_args.args
    assert method == "POST"
    assert url == f"{BASE_URL}/api/resource/Item"
    assert mock_request.call_args.kwargs["json"] == row
    assert mock_request.call_args.kwargs["timeout"] == 5
    assert session.headers["Authorization"] == "token key:secret"


def test_entity_type_with_space_is_url_encoded():
    with patch.object(requests.Session, "request", return_value=_response(200, {"data": {}})) as mock_request:
        _client().create_record("Sales Order", {"customer": "CUST-001"})

    assert mock_request.call_args.args[1] == f"{BASE_URL}/api/resource/Sales%20Order"


def test_business_rejection_is_returned_not_raised():
    payload = {"exc_type": "MandatoryError", "exception": "frappe.exceptions.MandatoryError: territory"}

    with patch.object(requests.Session, "request", return_value=_response(417, payload)):
        result = _client().create_customer({"customer_name": "ACME"})

    assert not result.success
    assert result.status_code == 417
    assert result.error == "frappe.exceptions.MandatoryError: territory"


def test_server_messages_are_unpacked():
    payload = {"_server_messages": json.dumps([json.dumps({"message": "Value missing for Customer: Territory"})])}

    with patch.object(requests.Session, "request", return_value=_response(417, payload)):
        result = _client().create_customer({"customer_name": "ACME"})

    assert result.error == "Value missing for Customer: Territory"


def test_network_error_becomes_failure_result():
    with patch.object(requests.Session, "request", side_effect=requests.ConnectionError("connection refused")):
        result = _client().create_payment_entry({"party": "CUST-001"})

    assert not result.success
    assert result.status_code == 500
    assert "connection refused" in result.error


def test_unsupported_entity_type():
    result = _client().create_record("Journal Entry", {})

    assert not result.success
    assert result.status_code == 400
    assert result.error == "Unsupported entity type: Journal Entry"


def test_check_health_pings_server():
    with patch.object(
        requests.Session, "request", return_value=_response(200, {"message": "pong"})
    ) as mock_request:
        result = _client().check_health()

    assert result.success
    assert result.data == {"message": "pong"}
    assert mock_request.call_args.args == ("GET", f"{BASE_URL}/api/method/ping")


def test_credentials_are_loaded_once_until_force_reinit():
    calls = []

    def loader():
        calls.append(1)
        return RemoteCredentials(base_url=BASE_URL, api_key="key", api_secret=f"secret-{len(calls)}")

    client = _client(loader)
    assert not client.initialized

    with patch.object(requests.Session, "request", autospec=True, return_value=_response(200, {})) as mock_request:
        client.create_item({"item_code": "A"})
        client.create_item({"item_code": "B"})
        assert len(calls) == 1

        client.force_reinit()
        assert not client.initialized
        client.create_item({"item_code": "C"})

    assert len(calls) == 2
    assert mock_request.call_args.args[0].headers["Authorization"] == "token key:secret-2"


def test_load_remote_credentials_prefers_environment(config_store, monkeypatch):
    config_store.set_remote_credentials("http://stored.test/", "stored-key", "stored-secret")
    monkeypatch.setattr(settings, "erpnext_base_url", "http://env.test/")
    monkeypatch.setattr(settings, "erpnext_api_key", "env-key")
    monkeypatch.setattr(settings, "erpnext_api_secret", "env-secret")

    credentials = load_remote_credentials(config_store)

    assert credentials == RemoteCredentials("http://env.test", "env-key", "env-secret")


def test_load_remote_credentials_falls_back_to_stored_values(config_store, monkeypatch):
    config_store.set_remote_credentials("http://stored.test/", "stored-key", "stored-secret")
    monkeypatch.setattr(settings, "erpnext_base_url", "")
    monkeypatch.setattr(settings, "erpnext_api_key", "")
    monkeypatch.setattr(settings, "erpnext_api_secret", "")

    credentials = load_remote_credentials(config_store)

    assert credentials.base_url == "http://stored.test"
    assert credentials.is_complete


@pytest.mark.parametrize("missing", ["base_url", "api_key", "api_secret"])
def test_incomplete_credentials(missing):
    values = {"base_url": BASE_URL, "api_key": "k", "api_secret": "s"}
    values[missing] = ""

    assert not RemoteCredentials(**values).is_complete
