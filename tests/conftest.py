import pytest
from fastapi.testclient import TestClient

from chatbuddy.config import refresh_settings
from chatbuddy.database import reset_storage

ISOLATED_ENV = (
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "REDIS_URL",
    "WIDGET_CONFIG_API_KEY",
    "MYSQL_URL",
    "MYSQL_URI",
    "MYSQL_HOST",
    "MYSQL_USER",
    "MYSQL_PASSWORD",
)


@pytest.fixture
def api_env(tmp_path, monkeypatch):
    for name in ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'chatbuddy.db'}")
    monkeypatch.setenv("DATA_DIRECTORY", str(tmp_path / "data"))
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("DASHBOARD_USERS", "admin:admin-pass-123")
    refresh_settings()
    reset_storage()
    yield tmp_path
    reset_storage()
    refresh_settings()


@pytest.fixture
def client(api_env):
    from chatbuddy.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def api_key(monkeypatch):
    key = "k" * 40
    monkeypatch.setenv("WIDGET_CONFIG_API_KEY", key)
    refresh_settings()
    return key
