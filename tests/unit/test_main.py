"""Tests for the application factory and the process entry point."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

sys.path.append(str(Path(__file__).resolve().parents[2]))

import uvicorn

from http_s3 import main
from http_s3.core.config import APP_HOST, APP_IDLE_TIMEOUT, APP_PORT, Settings, get_settings


@pytest.fixture
def configured(monkeypatch: pytest.MonkeyPatch) -> Settings:
    settings = Settings(S3_ENDPOINT="localhost:9000", S3_BUCKET="files")
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    return settings


def test_run_refuses_to_start_without_required_settings(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(main, "get_settings", lambda: Settings(S3_ENDPOINT="", S3_BUCKET=""))
    with patch.object(uvicorn, "run") as mock_run:
        assert main.run() == 2

    mock_run.assert_not_called()


def test_run_serves_with_process_constants(configured: Settings) -> None:
    with patch.object(uvicorn, "run") as mock_run:
        assert main.run() == 0

    mock_run.assert_called_once()
    args, kwargs = mock_run.call_args
    assert args == ("http_s3.main:app",)
    assert kwargs["host"] == APP_HOST
    assert kwargs["port"] == APP_PORT
    assert kwargs["timeout_keep_alive"] == APP_IDLE_TIMEOUT
    assert kwargs["workers"] >= 1


def test_uvicorn_is_imported_with_the_module() -> None:
    assert main.uvicorn is uvicorn


def test_run_reports_listen_failure(configured: Settings) -> None:
    with patch.object(uvicorn, "run", side_effect=OSError("address already in use")):
        assert main.run() == 1


def test_run_propagates_uvicorn_exit_status(configured: Settings) -> None:
    with patch.object(uvicorn, "run", side_effect=SystemExit(3)):
        assert main.run() == 3


def test_docs_routes_are_disabled() -> None:
    app = main.create_app()
    paths = {getattr(route, "path", None) for route in app.routes}

    assert "/docs" not in paths
    assert "/openapi.json" not in paths
    assert "/{path:path}" in paths


def test_unhandled_errors_become_internal_server_error(tmp_path: Path) -> None:
    settings = Settings(S3_BUCKET="files", SCRATCH_DIR=str(tmp_path))
    main.app.dependency_overrides[get_settings] = lambda: settings
    try:
        with patch("http_s3.api.gateway.stage_download", side_effect=RuntimeError("bug")):
            client = TestClient(main.app, raise_server_exceptions=False)
            response = client.get("/docs/a.txt")
    finally:
        main.app.dependency_overrides.pop(get_settings, None)

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
    assert list(tmp_path.iterdir()) == []


def test_cors_allows_any_origin() -> None:
    client = TestClient(main.app)

    response = client.options(
        "/docs/a.txt",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
