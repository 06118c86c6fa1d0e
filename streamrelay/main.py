import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from streamrelay.api.v1.errors import app_error_handler
from streamrelay.app_config import get_app_environ_config
from streamrelay.config import config
from streamrelay.schemas.init_schemas import init_schema
from streamrelay.shared.api.utils import E_INVALID_PARAMS, api_failure, init_logger, load_routes
from streamrelay.shared.storage.mongo import get_mongo_manager
from streamrelay.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(mode="json"),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(E_INVALID_PARAMS, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump(mode="json"))


async def run_sweep(mode: str, timeout: float | None = None) -> None:
    from streamrelay.api.v1.routers.session import get_session_service
    from streamrelay.domain.live.session.session_models import SweepMode

    try:
        report = await get_session_service().reconcile(SweepMode(mode), timeout=timeout)
    except AppError as e:
        logger.error(f"{mode} sweep aborted: {e.errcode} {e.errmesg}")
        return

    if report.timed_out or report.left_stopping:
        logger.warning(f"{mode} sweep incomplete: {report.model_dump()}")


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    app_config = get_app_environ_config()

    # Initialize MongoDB schemas and Beanie ODM
    await init_schema()

    load_routes(server, "/api/v1")

    if config.get_bool("LOGFIRE_ENABLE"):
        logger.info("Logfire initializing")

        logfire.configure(
            token=config.get("LOGFIRE_TOKEN"),
            service_name="streamrelay",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=True)

        logger.info("Logfire instrument mongo")
        logfire.instrument_pymongo(capture_statement=config.get_bool("DEBUG"))

        logger.info("Logfire instrument httpx")
        logfire.instrument_httpx()

    if app_config.SWEEP_ON_STARTUP:
        await run_sweep("startup")

    yield

    logger.info("Application shutdown...")

    if app_config.SWEEP_ON_SHUTDOWN:
        await run_sweep("shutdown", timeout=app_config.SHUTDOWN_SWEEP_TIMEOUT_SECONDS)

    get_mongo_manager().close_all()


app = FastAPI(
    version="1.0",
    title="StreamRelay API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

DEBUG = config.get_bool("DEBUG")

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=[origin.strip() for origin in config.get("API_CORS_ORIGINS", "*").split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore


def build_granian_kwargs():
    kwargs = {
        "interface": "asgi",
        "address": config.get("API_HOST", "0.0.0.0"),
        "port": int(config.get("API_PORT", "8000")),
        "workers": int(config.get("API_WORKERS", "1")),
        "reload": DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("streamrelay.main:app", **granian_kwargs).serve()
