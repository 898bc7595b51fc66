"""Storage backend selection and the process-wide store/cache handles"""
from typing import Optional
import logging

from chatbuddy.config import Settings, get_settings
from chatbuddy.storage.base import Storage
from chatbuddy.storage.redis_cache import ConfigCache

logger = logging.getLogger(__name__)

_storage: Optional[Storage] = None
_config_cache: Optional[ConfigCache] = None


def create_storage(settings: Settings) -> Storage:
    """
    Build the backend the environment asks for

    Supabase when its URL and service key are set, SQL when a usable
    database URL or MYSQL_* set is present, JSON files otherwise.
    """
    backend = settings.storage_backend
    if backend == "supabase":
        from chatbuddy.storage.supabase_store import SupabaseStorage

        logger.info("Using Supabase storage")
        return SupabaseStorage(settings.supabase_url, settings.supabase_service_role_key)

    if backend == "sql":
        from chatbuddy.storage.sql_store import SqlStorage

        logger.info("Using SQL storage")
        return SqlStorage(settings.sql_url)

    from chatbuddy.storage.file_store import FileStorage

    logger.info(f"Using file storage in {settings.data_directory}")
    return FileStorage(settings.data_directory)


def init_storage(storage: Optional[Storage] = None) -> Storage:
    global _storage
    _storage = storage or create_storage(get_settings())
    return _storage


def get_storage() -> Storage:
    """FastAPI dependency returning the active store"""
    global _storage
    if _storage is None:
        _storage = create_storage(get_settings())
    return _storage


def get_config_cache() -> ConfigCache:
    global _config_cache
    if _config_cache is None:
        settings = get_settings()
        _config_cache = ConfigCache(settings.redis_url, settings.config_cache_ttl_seconds)
    return _config_cache


def reset_storage() -> None:
    global _storage, _config_cache
    if _storage is not None:
        _storage.close()
    _storage = None
    _config_cache = None


__all__ = ["create_storage", "init_storage", "get_storage", "get_config_cache", "reset_storage"]
