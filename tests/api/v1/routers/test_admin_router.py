"""Unit tests for admin router endpoints."""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.api.v1.errors import app_error_handler
from streamrelay.api.v1.routers.admin import router
from streamrelay.api.v1.routers.session import get_session_service
from streamrelay.domain.live.session.session_domain import SessionService
from streamrelay.domain.live.session.session_models import SweepMode, SweepReport
from streamrelay.utils.app_errors import AppError


@pytest.fixture
def mock_session_service() -> AsyncMock:
    return AsyncMock(spec=SessionService)


@pytest.fixture
def client(mock_session_service: AsyncMock) -> TestClient:
    app = FastAPI()
    app.dependency_overrides[get_session_service] = lambda: mock_session_service
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return TestClient(app)


class TestReconcile:
    """Tests for POST /admin/reconcile endpoint."""

    def test_reconcile_with_valid_key(self, client: TestClient, mock_session_service: AsyncMock):
        mock_session_service.reconcile.return_value = SweepReport(
            mode=SweepMode.SHUTDOWN, checked=2, stopped=["ss_01", "ss_02"]
        )

        response = client.post(
            "/admin/reconcile",
            json={"mode": "shutdown", "timeout": 30},
            headers={"X-Api-Key": "test-api-key"},
        )

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["mode"] == "shutdown"
        assert results["stopped"] == ["ss_01", "ss_02"]
        mock_session_service.reconcile.assert_called_once_with(SweepMode.SHUTDOWN, owner_id=None, timeout=30)

    def test_reconcile_defaults_to_startup(self, client: TestClient, mock_session_service: AsyncMock):
        mock_session_service.reconcile.return_value = SweepReport(mode=SweepMode.STARTUP)

        response = client.post("/admin/reconcile", json={"owner_id": "u_alice"}, headers={"X-Api-Key": "test-api-key"})

        assert response.status_code == 200
        mock_session_service.reconcile.assert_called_once_with(SweepMode.STARTUP, owner_id="u_alice", timeout=None)

    def test_reconcile_rejects_wrong_key(self, client: TestClient, mock_session_service: AsyncMock):
        response = client.post("/admin/reconcile", json={}, headers={"X-Api-Key": "nope"})

        assert response.status_code == 401
        assert response.json()["errcode"] == "E_BAD_TOKEN"
        mock_session_service.reconcile.assert_not_called()

    def test_reconcile_requires_key(self, client: TestClient, mock_session_service: AsyncMock):
        response = client.post("/admin/reconcile", json={})

        assert response.status_code == 422
        mock_session_service.reconcile.assert_not_called()

    def test_reconcile_rejects_non_positive_timeout(self, client: TestClient, mock_session_service: AsyncMock):
        response = client.post("/admin/reconcile", json={"timeout": 0}, headers={"X-Api-Key": "test-api-key"})

        assert response.status_code == 422
