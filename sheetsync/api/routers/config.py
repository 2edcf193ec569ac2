"""
ERPNext credential settings.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from sheetsync.api.dependencies import get_client, get_config_store
from sheetsync.api.schemas.shared import ConfigSavedResponse, ERPNextConfigRequest, ERPNextConfigResponse
from sheetsync.domain.configuration import ConfigurationStore
from sheetsync.integrations.erpnext import ERPNextClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("/erpnext", response_model=ERPNextConfigResponse)
async def get_erpnext_config(store: ConfigurationStore = Depends(get_config_store)):
    """Credentials saved through this endpoint; environment overrides are not shown."""
    credentials = store.get_remote_credentials()
    return ERPNextConfigResponse(
        base_url=credentials.base_url,
        api_key=credentials.api_key,
        has_api_secret=bool(credentials.api_secret),
        configured=credentials.is_complete,
    )


@router.post("/erpnext", response_model=ConfigSavedResponse)
async def save_erpnext_config(
    request: ERPNextConfigRequest,
    store: ConfigurationStore = Depends(get_config_store),
    client: ERPNextClient = Depends(get_client),
):
    """Persist credentials and make the client pick them up on its next call."""
    try:
        store.set_remote_credentials(request.base_url, request.api_key, request.api_secret)
    except Exception as e:
        logger.exception("Failed to save ERPNext configuration")
        raise HTTPException(status_code=500, detail=f"Failed to save configuration: {str(e)}")

    client.force_reinit()
    return ConfigSavedResponse(success=True, message="Configuration saved successfully")
