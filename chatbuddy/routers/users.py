"""Dashboard users and login sessions"""
from fastapi import APIRouter, Body, HTTPException, Depends
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import calendar
import logging

from chatbuddy.config import get_settings
from chatbuddy.database import get_storage
from chatbuddy.middleware.auth import get_current_session, require_api_key
from chatbuddy.middleware.rate_limit import rate_limit
from chatbuddy.models.user import LoginRequest, UserCreateRequest
from chatbuddy.services.users import authenticate, hash_password
from chatbuddy.storage.base import Storage, StorageError

logger = logging.getLogger(__name__)
router = APIRouter()


def _epoch_ms(value) -> int:
    return calendar.timegm(value.utctimetuple()) * 1000


@router.get("", dependencies=[Depends(require_api_key)])
async def list_users(storage: Storage = Depends(get_storage)):
    try:
        return {"users": storage.list_users()}
    except StorageError as e:
        logger.error(f"Failed to fetch users: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch users")


@router.post("", status_code=201, dependencies=[Depends(require_api_key)])
async def create_user(request: UserCreateRequest, storage: Storage = Depends(get_storage)):
    try:
        if storage.find_user(request.username):
            raise HTTPException(status_code=409, detail="Username already exists")
        user = storage.create_user(
            request.username,
            hash_password(request.password),
            request.email,
            request.role or "user",
        )
        logger.info(f"Created dashboard user {request.username}")
        return {"success": True, "user": user}
    except HTTPException:
        raise
    except StorageError as e:
        logger.error(f"Failed to create user: {e}")
        raise HTTPException(status_code=500, detail="Failed to create user")


@router.post("/auth", dependencies=[Depends(rate_limit("auth"))])
async def login(request: LoginRequest, storage: Storage = Depends(get_storage)):
    """Exchange username/password for a 24h session token"""
    if not request.username.strip() or not request.password:
        raise HTTPException(status_code=400, detail="Username and password required")

    try:
        result = authenticate(
            storage,
            request.username,
            request.password,
            ttl_hours=get_settings().session_ttl_hours,
        )
    except StorageError as e:
        logger.error(f"Authentication error: {e}")
        raise HTTPException(status_code=500, detail="Authentication failed")

    if result is None:
        logger.warning(f"Failed login for {request.username}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "success": True,
        "token": result["token"],
        "username": result["user"]["username"],
        "role": result["user"].get("role"),
        "expiresAt": _epoch_ms(result["expires_at"]),
    }


@router.post("/verify")
async def verify(body: Optional[Dict[str, Any]] = Body(default=None), storage: Storage = Depends(get_storage)):
    body = body or {}
    token: Optional[str] = body.get("token")
    username: Optional[str] = body.get("username")
    if not token or not username:
        return JSONResponse(status_code=400, content={"valid": False})

    try:
        session = storage.find_session(token)
    except StorageError as e:
        logger.error(f"Token verification error: {e}")
        raise HTTPException(status_code=500, detail="Token verification failed")

    if session and session.get("username") == username:
        return {"valid": True, "username": session["username"], "role": session.get("role")}
    return {"valid": False}


@router.post("/logout")
async def logout(body: Optional[Dict[str, Any]] = Body(default=None), storage: Storage = Depends(get_storage)):
    body = body or {}
    token = body.get("token")
    if token:
        try:
            storage.delete_session(token)
        except StorageError as e:
            logger.error(f"Logout error: {e}")
            raise HTTPException(status_code=500, detail="Logout failed")
    return {"success": True}


@router.get("/me")
async def current_user(session: Dict = Depends(get_current_session)):
    """The user behind a ``Authorization: Bearer <session token>`` header"""
    return {"username": session["username"], "email": session.get("email"), "role": session.get("role")}
