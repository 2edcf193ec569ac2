"""
Thin ERPNext REST client.

Every operation returns a ``RemoteResult``; network errors, HTTP errors and
business-rule rejections are converted, never raised. Credentials are read
lazily on first use and cached until ``force_reinit`` is called.
"""
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests

from sheetsync.core.config import settings
from sheetsync.domain.configuration import RemoteCredentials
from sheetsync.domain.imports.entities import EntityType, RowMap, resolve_entity_type, resource_endpoint

logger = logging.getLogger(__name__)

NOT_CONFIGURED_ERROR = "ERPNext client not configured. Please add your API credentials in Settings."
PING_ENDPOINT = "/api/method/ping"


@dataclass
class RemoteResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    status_code: int = 0
    response_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "status_code": self.status_code,
            "response_time_ms": self.response_time_ms,
        }


@dataclass(frozen=True)
class _ClientState:
    """Immutable snapshot of credentials and the session built from them."""
    credentials: RemoteCredentials
    session: Optional[requests.Session]


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


def _json_or_text(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


def _extract_error_message(
    response: Optional[requests.Response],
    exc: Exception,
    default: str = "Creation failed",
) -> str:
    """Pull the most useful message out of an ERPNext error response."""
    if response is not None:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            for key in ("message", "exception", "exc_type"):
                if payload.get(key):
                    return str(payload[key])
            server_messages = payload.get("_server_messages")
            if server_messages:
                try:
                    messages = json.loads(server_messages)
                    first = json.loads(messages[0]) if messages else {}
                    if isinstance(first, dict) and first.get("message"):
                        return str(first["message"])
                except (ValueError, TypeError, IndexError):
                    return str(server_messages)
    return str(exc) or default


class ERPNextClient:
    """
    One ``create_*`` operation per entity type plus a health probe.

    Args:
        credentials_loader: Called (under a lock) the first time a call needs
            credentials, and again after ``force_reinit``.
        timeout_seconds: Connect and read timeout applied to every request.
    """

    def __init__(
        self,
        credentials_loader: Callable[[], RemoteCredentials],
        timeout_seconds: Optional[float] = None,
    ):
        self._credentials_loader = credentials_loader
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.erpnext_timeout_seconds
        self._lock = threading.Lock()
        self._state: Optional[_ClientState] = None

    @property
    def initialized(self) -> bool:
        return self._state is not None

    def _get_state(self) -> _ClientState:
        with self._lock:
            if self._state is None:
                try:
                    credentials = self._credentials_loader()
                except Exception as exc:
                    logger.error("Failed to load ERPNext credentials: %s", exc)
                    credentials = RemoteCredentials()

                session = None
                if credentials.is_complete:
                    session = requests.Session()
                    session.headers.update(
                        {
                            "Content-Type": "application/json",
                            "Accept": "application/json",
                            "Authorization": f"token {credentials.api_key}:{credentials.api_secret}",
                        }
                    )
                    logger.info("ERPNext client initialized for %s", credentials.base_url)
                else:
                    logger.warning("ERPNext credentials incomplete; remote calls are disabled")
                self._state = _ClientState(credentials=credentials, session=session)
            return self._state

    def force_reinit(self) -> None:
        """Drop the cached credentials; the next call reloads them."""
        with self._lock:
            self._state = None
        logger.info("ERPNext client marked for re-initialization")

    def check_health(self) -> RemoteResult:
        started = time.perf_counter()
        state = self._get_state()
        if state.session is None:
            return RemoteResult(success=False, error=NOT_CONFIGURED_ERROR, status_code=500, response_time_ms=_elapsed_ms(started))

        response = None
        try:
            response = state.session.request("GET", state.credentials.base_url + PING_ENDPOINT, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            return RemoteResult(
                success=False,
                error=_extract_error_message(response, exc, default="Connection failed"),
                status_code=response.status_code if response is not None else 500,
                response_time_ms=_elapsed_ms(started),
            )

        payload = _json_or_text(response)
        message = payload.get("message", "pong") if isinstance(payload, dict) else "pong"
        data = {"message": message}
        if isinstance(payload, dict) and payload.get("version"):
            data["version"] = payload["version"]
        return RemoteResult(success=True, data=data, status_code=response.status_code, response_time_ms=_elapsed_ms(started))

    def create_item(self, data: RowMap) -> RemoteResult:
        return self._create(EntityType.ITEM.value, data)

    def create_customer(self, data: RowMap) -> RemoteResult:
        return self._create(EntityType.CUSTOMER.value, data)

    def create_sales_order(self, data: RowMap) -> RemoteResult:
        return self._create(EntityType.SALES_ORDER.value, data)

    def create_sales_invoice(self, data: RowMap) -> RemoteResult:
        return self._create(EntityType.SALES_INVOICE.value, data)

    def create_payment_entry(self, data: RowMap) -> RemoteResult:
        return self._create(EntityType.PAYMENT_ENTRY.value, data)

    def create_record(self, entity_type: str, data: RowMap) -> RemoteResult:
        """Dispatch to the create operation of ``entity_type``."""
        entity = resolve_entity_type(entity_type)
        operation = _CREATE_OPERATIONS.get(entity) if entity else None
        if operation is None:
            return RemoteResult(success=False, error=f"Unsupported entity type: {entity_type}", status_code=400)
        return operation(self, data)

    def _create(self, doctype: str, data: RowMap) -> RemoteResult:
        started = time.perf_counter()
        state = self._get_state()
        if state.session is None:
            return RemoteResult(success=False, error=NOT_CONFIGURED_ERROR, status_code=500, response_time_ms=_elapsed_ms(started))

        url = state.credentials.base_url + quote(resource_endpoint(doctype))
        response = None
        try:
            response = state.session.request("POST", url, json=data, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            error = _extract_error_message(response, exc)
            status_code = response.status_code if response is not None else 500
            logger.warning("ERPNext create %s failed (%s): %s", doctype, status_code, error)
            return RemoteResult(success=False, error=error, status_code=status_code, response_time_ms=_elapsed_ms(started))

        return RemoteResult(
            success=True,
            data=_json_or_text(response),
            status_code=response.status_code,
            response_time_ms=_elapsed_ms(started),
        )


_CREATE_OPERATIONS: Dict[EntityType, Callable[[ERPNextClient, RowMap], RemoteResult]] = {
    EntityType.ITEM: ERPNextClient.create_item,
    EntityType.CUSTOMER: ERPNextClient.create_customer,
    EntityType.SALES_ORDER: ERPNextClient.create_sales_order,
    EntityType.SALES_INVOICE: ERPNextClient.create_sales_invoice,
    EntityType.PAYMENT_ENTRY: ERPNextClient.create_payment_entry,
}
