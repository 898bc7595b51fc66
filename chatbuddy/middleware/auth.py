"""Authentication dependencies: widget-config API key and dashboard sessions"""
from fastapi import Request, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict
from chatbuddy.config import get_settings
from chatbuddy.database import get_storage
from chatbuddy.storage.base import Storage, StorageError
import secrets
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def extract_api_key(request: Request) -> Optional[str]:
    """API key from X-API-Key or an ``Authorization: Bearer`` header"""
    header_key = request.headers.get("x-api-key")
    if header_key:
        return header_key.strip()

    authorization = request.headers.get("authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


async def require_api_key(request: Request) -> None:
    """
    Guard widget-config writes and uploads

    Open when WIDGET_CONFIG_API_KEY is unset (development).

    Raises:
        HTTPException: 401 when no key is sent, 403 when it does not match
    """
    expected = get_settings().widget_config_api_key
    if not expected:
        return

    provided = extract_api_key(request)
    if not provided:
        logger.warning(f"Missing API key for {request.method} {request.url.path}")
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide X-API-Key header or Authorization: Bearer <key>",
        )

    if not secrets.compare_digest(provided.encode(), expected.encode()):
        logger.warning(f"Invalid API key for {request.method} {request.url.path}")
        raise HTTPException(status_code=403, detail="Invalid API key")


async def require_api_key_in_production(request: Request) -> None:
    """Same as require_api_key, but only enforced in production"""
    if get_settings().is_production:
        await require_api_key(request)


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    storage: Storage = Depends(get_storage),
) -> Dict:
    """
    Resolve the dashboard session for a Bearer token

    Returns:
        Session joined with the user's username, email and role

    Raises:
        HTTPException: 401 if the token is missing, unknown or expired
    """
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        session = storage.find_session(credentials.credentials)
    except StorageError as e:
        logger.error(f"Session lookup failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify session")

    if not session:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return session
