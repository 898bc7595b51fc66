"""Widget configuration endpoints"""
from fastapi import APIRouter, Body, HTTPException, Depends
from typing import Any, Dict
import logging

from chatbuddy.config import get_settings
from chatbuddy.database import get_config_cache, get_storage
from chatbuddy.middleware.auth import require_api_key
from chatbuddy.middleware.rate_limit import rate_limit
from chatbuddy.models.widget import ApiKeyStatus
from chatbuddy.services.theme import default_config, sanitize_update
from chatbuddy.storage.base import Storage
from chatbuddy.storage.redis_cache import ConfigCache

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api-key-status", response_model=ApiKeyStatus, response_model_exclude_none=True)
async def api_key_status():
    """Whether config writes are protected (never reveals the key)"""
    settings = get_settings()
    key = settings.widget_config_api_key or ""
    configured = bool(key)
    status = {
        "configured": configured,
        "keyLength": len(key),
        "message": (
            f"API key is configured ({len(key)} characters)"
            if configured
            else "API key is not configured - config updates will be allowed without authentication"
        ),
    }
    if not settings.is_production:
        status["hint"] = "Set WIDGET_CONFIG_API_KEY in your .env file to require authentication"
    return status


@router.get("/{project_id}")
async def get_widget_config(
    project_id: str,
    storage: Storage = Depends(get_storage),
    cache: ConfigCache = Depends(get_config_cache),
):
    """
    Get the widget config for a project (public, no auth)

    Never fails: any store error is logged and the default config is
    served with 200 so the widget keeps rendering.
    """
    try:
        config = await cache.get(project_id)
        if config is None:
            config = storage.get_widget_config(project_id)
            await cache.set(project_id, config)
        return config
    except Exception as e:
        logger.error(f"Failed to fetch widget config for {project_id}: {e}")
        return default_config(project_id)


@router.post(
    "/{project_id}",
    dependencies=[Depends(require_api_key), Depends(rate_limit("config"))],
)
async def update_widget_config(
    project_id: str,
    update: Dict[str, Any] = Body(...),
    storage: Storage = Depends(get_storage),
    cache: ConfigCache = Depends(get_config_cache),
):
    """Save whitelisted theme fields for a project"""
    sanitized = sanitize_update(update)
    try:
        config = storage.update_widget_config(project_id, sanitized)
    except Exception as e:
        logger.error(f"Widget config update failed for {project_id}: {e}")
        raise HTTPException(status_code=500, detail="Widget config update failed")

    await cache.invalidate(project_id)
    logger.info(f"Widget config updated for {project_id}: {sorted(sanitized)}")
    return config
