from __future__ import annotations

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from mediavault.core.config import get_settings
from mediavault.main import create_app
from tests.conftest import build_jpeg


pytestmark = pytest.mark.no_default_env


def _write_env(target_dir: Path, *, environment: str) -> Path:
    target_dir.mkdir(parents=True, exist_ok=True)
    env_text = f"""
MEDIAVAULT_ENV={environment}
MEDIAVAULT_LOG_LEVEL=debug
MEDIAVAULT_DB_URL=sqlite+aiosqlite:///./mediavault.db
MEDIAVAULT_UPLOAD_DIR=uploads
MEDIAVAULT_THUMBNAIL_SIZE=48
""".strip()
    env_path = target_dir / ".env"
    env_path.write_text(env_text)
    return env_path


@pytest.fixture(autouse=True)
def isolated_environ():
    # load_dotenv writes straight into os.environ; put it back afterwards.
    snapshot = dict(os.environ)
    get_settings.cache_clear()
    yield
    os.environ.clear()
    os.environ.update(snapshot)
    get_settings.cache_clear()


def _prepare_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, environment: str) -> TestClient:
    _write_env(tmp_path, environment=environment)
    for key in list(os.environ.keys()):
        if key.startswith("MEDIAVAULT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    app = create_app()
    client = TestClient(app)
    client.__enter__()
    return client


def test_env_file_is_read_with_aliases(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _write_env(tmp_path, environment="Staging")
    for key in list(os.environ.keys()):
        if key.startswith("MEDIAVAULT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)

    settings = get_settings()

    assert settings.environment == "Staging"
    assert settings.database_url == "sqlite+aiosqlite:///./mediavault.db"
    assert settings.storage_root == Path("uploads")
    assert settings.thumbnail_size == 48


def test_env_boots_without_shell_exports(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
    finally:
        client.__exit__(None, None, None)


def test_schema_is_created_on_startup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.post("/v1/assets", files={"file": ("a.jpg", build_jpeg(), "image/jpeg")})
        assert response.status_code == 201, response.text
        stored = response.json()["asset"]["file_path"]
    finally:
        client.__exit__(None, None, None)

    assert (tmp_path / "mediavault.db").exists()
    assert (tmp_path / "uploads" / stored).exists()
