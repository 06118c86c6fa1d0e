"""Tests for the shared API envelope helpers and the health route."""

import orjson
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.shared.api.health import router as health_router
from streamrelay.shared.api.utils import ApiFailure, ApiSuccess, make_response, verify_api_key
from streamrelay.utils.app_errors import AppError, AppErrorCode


def test_health():
    app = FastAPI()
    app.include_router(health_router)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["results"] == "OK"


class TestMakeResponse:
    def test_success_defaults_to_200(self):
        response = make_response(ApiSuccess(results={"a": 1}))

        assert response.status_code == 200
        assert orjson.loads(response.body)["results"] == {"a": 1}

    def test_failure_defaults_to_400(self):
        response = make_response(ApiFailure(errcode=AppErrorCode.E_INVALID_REQUEST.value, errmesg="bad"))

        assert response.status_code == 400
        assert orjson.loads(response.body)["success"] is False

    def test_exception_is_internal_error(self):
        response = make_response(RuntimeError("boom"))

        assert response.status_code == 500
        assert orjson.loads(response.body)["errcode"] == AppErrorCode.E_INTERNAL_ERROR.value


class TestVerifyApiKey:
    async def test_accepts_configured_key(self):
        await verify_api_key("test-api-key")

    async def test_rejects_other_key(self):
        with pytest.raises(AppError) as exc_info:
            await verify_api_key("wrong")

        assert exc_info.value.status_code == 401
        assert exc_info.value.errcode == AppErrorCode.E_BAD_TOKEN.value
