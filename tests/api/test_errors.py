"""Tests for global exception handlers."""

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from api.errors import register_error_handlers
from storage.base import StorageError


@pytest.fixture
def app():
    """Minimal app whose routes raise."""
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/storage-down")
    def storage_down():
        raise StorageError("connection refused")

    @app.get("/boom")
    def boom():
        raise RuntimeError("unexpected")

    @app.get("/typed")
    def typed(n: int):
        return {"n": n}

    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestErrorHandlers:
    """Exceptions become enveloped error responses."""

    def test_storage_error_is_503(self, client):
        response = client.get("/storage-down")

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "SERVICE_UNAVAILABLE"
        assert "connection refused" not in body["error"]["message"]

    def test_unhandled_error_is_500(self, client):
        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"

    def test_validation_error_is_422(self, client):
        response = client.get("/typed", params={"n": "not-a-number"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
