"""
Runtime key/value configuration stored in the database.

ERPNext credentials entered on the settings page live here. Environment
variables (see ``Settings``) take precedence when they are complete.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from sheetsync.core.config import settings
from sheetsync.db.models import Configuration

logger = logging.getLogger(__name__)

ERPNEXT_BASE_URL_KEY = "erpnext_base_url"
ERPNEXT_API_KEY_KEY = "erpnext_api_key"
ERPNEXT_API_SECRET_KEY = "erpnext_api_secret"


@dataclass(frozen=True)
class RemoteCredentials:
    base_url: str = ""
    api_key: str = ""
    api_secret: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.base_url and self.api_key and self.api_secret)


class ConfigurationStore:
    """Plain get/set access to the ``configuration`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            entry = db.query(Configuration).filter(Configuration.key == key).first()
            return entry.value if entry else None

    def set(self, key: str, value: str, description: Optional[str] = None) -> None:
        with self._session_factory() as db:
            entry = db.query(Configuration).filter(Configuration.key == key).first()
            if entry is None:
                db.add(Configuration(key=key, value=value, description=description))
            else:
                entry.value = value
                if description is not None:
                    entry.description = description
            db.commit()
        logger.info("Configuration key '%s' updated", key)

    def get_many(self, *keys: str) -> Dict[str, Optional[str]]:
        with self._session_factory() as db:
            entries = db.query(Configuration).filter(Configuration.key.in_(keys)).all()
            found = {entry.key: entry.value for entry in entries}
        return {key: found.get(key) for key in keys}

    def get_remote_credentials(self) -> RemoteCredentials:
        values = self.get_many(ERPNEXT_BASE_URL_KEY, ERPNEXT_API_KEY_KEY, ERPNEXT_API_SECRET_KEY)
        return RemoteCredentials(
            base_url=values[ERPNEXT_BASE_URL_KEY] or "",
            api_key=values[ERPNEXT_API_KEY_KEY] or "",
            api_secret=values[ERPNEXT_API_SECRET_KEY] or "",
        )

    def set_remote_credentials(self, base_url: str, api_key: str, api_secret: str) -> None:
        self.set(ERPNEXT_BASE_URL_KEY, base_url, "ERPNext base URL")
        self.set(ERPNEXT_API_KEY_KEY, api_key, "ERPNext API key")
        self.set(ERPNEXT_API_SECRET_KEY, api_secret, "ERPNext API secret")


def load_remote_credentials(store: Optional[ConfigurationStore]) -> RemoteCredentials:
    """
    Resolve ERPNext credentials: environment first, gaps filled from the
    configuration table. The base URL loses any trailing slash.
    """
    base_url = settings.erpnext_base_url
    api_key = settings.erpnext_api_key
    api_secret = settings.erpnext_api_secret

    if store is not None and not (base_url and api_key and api_secret):
        stored = store.get_remote_credentials()
        base_url = stored.base_url or base_url
        api_key = stored.api_key or api_key
        api_secret = stored.api_secret or api_secret

    return RemoteCredentials(base_url=base_url.rstrip("/"), api_key=api_key, api_secret=api_secret)
