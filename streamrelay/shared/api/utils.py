import inspect
from functools import lru_cache
from importlib import import_module
from os import environ
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI, Header
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

E_INTERNAL = AppErrorCode.E_INTERNAL_ERROR.value
E_INVALID_PARAMS = AppErrorCode.E_INVALID_PARAMS.value

PACKAGE_ROOT = Path(__file__).resolve().parents[2]


def format_error(ex: BaseException) -> str:
    from traceback import TracebackException

    return "".join(TracebackException.from_exception(ex).format())


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=lambda: environ.get("BUILD_COMMIT", "dev"))


class ApiSuccess(ApiResponse):
    success: Literal[True] = True
    message: str = "OK"
    results: Any = "OK"


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    errcode: str = E_INTERNAL
    erresid: str = Field(default_factory=lambda: uuid4().hex[:10])
    errmesg: str = "We are sorry, an error occurred."
    errdetail: dict[str, Any] | None = None


def api_failure(
    errcode: str | None = None,
    errmesg: Exception | str | None = None,
    *,
    errdetail: dict[str, Any] | None = None,
    trace: Any = None,
) -> ApiFailure:
    if not errcode:
        errcode = E_INTERNAL

    if isinstance(errmesg, Exception):
        errmesg = format_error(errmesg)

    if not errmesg:
        errmesg = str(ApiFailure.model_fields["errmesg"].default)

    failure = ApiFailure(errcode=errcode, errmesg=errmesg, errdetail=errdetail)

    caller_frame = inspect.stack()[1]
    module = inspect.getmodule(caller_frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
    caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    logger.warning(
        f"{failure.errcode} {failure.erresid}\n{failure.errmesg} caller={caller_info} trace={trace}"
    )

    return failure


def make_response(results: Any, *, status_code: int | None = None) -> ORJSONResponse:
    if isinstance(results, Exception):
        response = api_failure(errmesg=results)
        if status_code is None:
            status_code = 500
    elif isinstance(results, ApiFailure):
        response = results
        if status_code is None:
            status_code = 500 if results.errcode == E_INTERNAL else 400
    else:
        response = results
        if status_code is None:
            status_code = 200

    return ORJSONResponse(
        status_code=status_code,
        content=response.model_dump(mode="json") if hasattr(response, "model_dump") else response,
    )


def load_routes(app: FastAPI, prefix: str):
    from streamrelay.config import config

    disabled_routes = [x.strip() for x in config.get("API_DISABLED", "").split(",") if x.strip()]
    logger.debug("disabled routes: {}", disabled_routes)

    for folder, folder_prefix in ((PACKAGE_ROOT / "shared" / "api", ""), (PACKAGE_ROOT / "api", prefix)):
        for path in sorted(folder.rglob("*.py")):
            if path.name == "__init__.py":
                continue

            relative_path = path.relative_to(PACKAGE_ROOT.parent)
            name = ".".join(relative_path.with_suffix("").parts)
            if any(f".{disabled}" in name for disabled in disabled_routes):
                logger.warning("disabled route module {}", name)
                continue

            module = import_module(name)
            if hasattr(module, "router"):
                app.include_router(module.router, prefix=folder_prefix)
                logger.info("Added routes in {}", name)

    for route in app.routes:
        methods = getattr(route, "methods", None)
        if methods:
            endpoint = getattr(route, "endpoint", None)
            logger.info(
                "Loaded route: {:<12} {:<60} {}",
                ",".join(sorted(methods)),
                route.path,  # type: ignore[attr-defined]
                getattr(endpoint, "__name__", str(endpoint)),
            )


@lru_cache
def get_worker_info():
    worker_name = environ.get("WORKER_NAME", PACKAGE_ROOT.name)

    parts = environ.get("BUILD_COMMIT", "").split("-")
    commit_id = parts[1] if len(parts) > 1 else "dev"

    return worker_name, commit_id, uuid4().hex[:8]


def init_logger():
    import sys

    from streamrelay.config import config

    logger.remove()

    worker_name, commit_id, _ = get_worker_info()

    if config.get_bool("DEBUG"):
        logger_level = "DEBUG"
        logger_format = (
            f"<yellow>{worker_name}:{commit_id}</yellow> | "
            "<green>{time:MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )
    else:
        logger_level = "INFO"
        logger_format = (
            f"{worker_name}:{commit_id} | "
            "{time:MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{name}:{function}:{line} | "
            "{message}"
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)


async def verify_api_key(x_api_key: str = Header(...)):
    from streamrelay.config import config

    if not config.get("INTERNAL_API_KEY") or x_api_key != config.get("INTERNAL_API_KEY"):
        logger.warning("Invalid API key attempt")
        raise AppError(
            errcode=AppErrorCode.E_BAD_TOKEN,
            errmesg="Invalid API key",
            status_code=HttpStatusCode.UNAUTHORIZED,
        )
