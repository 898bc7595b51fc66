"""Dashboard users: password hashing, login sessions and startup seeding"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging
import secrets

from passlib.context import CryptContext

from chatbuddy.storage.base import Storage, StorageError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    try:
        return pwd_context.verify(password, stored)
    except ValueError:
        # not a recognised hash
        return False


def parse_dashboard_users(value: str) -> List[Tuple[str, str]]:
    """Parse ``user:password,user2:password2``; entries without both parts are skipped"""
    users = []
    for entry in (value or "").split(","):
        username, _, password = entry.strip().partition(":")
        if username.strip() and password.strip():
            users.append((username.strip(), password.strip()))
    return users


def seed_dashboard_users(storage: Storage, value: str) -> int:
    """Create any DASHBOARD_USERS entry that does not exist yet"""
    created = 0
    for username, password in parse_dashboard_users(value):
        try:
            if storage.find_user(username):
                continue
            storage.create_user(username, hash_password(password), None, "admin")
            created += 1
        except StorageError as e:
            logger.error(f"Failed to seed dashboard user {username}: {e}")
    if created:
        logger.info(f"Seeded {created} dashboard user(s)")
    return created


def authenticate(storage: Storage, username: str, password: str, ttl_hours: int = 24) -> Optional[Dict[str, Any]]:
    """
    Check credentials and open a session

    Returns:
        ``{"token", "expires_at", "user"}`` or None on bad credentials
    """
    user = storage.find_user(username.strip())
    if not user or not verify_password(password, user.get("password_hash")):
        return None

    token = secrets.token_hex(32)
    expires_at = datetime.utcnow() + timedelta(hours=ttl_hours)
    storage.create_session(user["id"], token, expires_at)
    user = {key: value for key, value in user.items() if key != "password_hash"}
    return {"token": token, "expires_at": expires_at, "user": user}


def purge_expired_sessions(storage: Storage) -> int:
    """Scheduled job: drop expired dashboard sessions"""
    try:
        removed = storage.delete_expired_sessions()
    except StorageError as e:
        logger.error(f"Expired session cleanup failed: {e}")
        return 0
    if removed:
        logger.info(f"Removed {removed} expired dashboard session(s)")
    return removed
