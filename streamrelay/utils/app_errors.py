"""Application error types.

Every error raised across a component boundary is an `AppError` carrying an
errcode, a human readable message, an HTTP status and an optional diagnostic
payload. Infrastructure failures (HTTP transport, SSH) are converted into one
of the subclasses below before they reach the session orchestrator.
"""

import inspect
from enum import Enum, IntEnum
from typing import Any
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    MULTI_STATUS = 207
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    GATEWAY_TIMEOUT = 504


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_PROFILE = "E_INVALID_PROFILE"
    E_BAD_TOKEN = "E_BAD_TOKEN"
    E_SESSION_EXISTS = "E_SESSION_EXISTS"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_SESSION_VERSION_CONFLICT = "E_SESSION_VERSION_CONFLICT"
    E_INVALID_STATE_TRANSITION = "E_INVALID_STATE_TRANSITION"
    E_REMOTE_EXECUTION = "E_REMOTE_EXECUTION"
    E_VERIFICATION_TIMEOUT = "E_VERIFICATION_TIMEOUT"
    E_PARTIAL_FANOUT = "E_PARTIAL_FANOUT"

    def __str__(self) -> str:
        return self.value


def _find_caller_info() -> str:
    frame = inspect.currentframe()
    try:
        while frame is not None and frame.f_code.co_filename == __file__:
            frame = frame.f_back
        if frame is None:
            return "unknown"
        module_name = frame.f_globals.get("__name__", frame.f_code.co_filename)
        return f"{module_name}:{frame.f_code.co_name}:{frame.f_lineno}"
    finally:
        del frame


class AppError(Exception):
    """Base application error rendered as an ApiFailure envelope."""

    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str,
        status_code: HttpStatusCode | int = HttpStatusCode.BAD_REQUEST,
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, Enum) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.details = details or {}
        self.erresid = uuid4().hex[:10]
        self.caller_info = _find_caller_info()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(errcode={self.errcode!r}, errmesg={self.errmesg!r})"


class InvalidRequest(AppError):
    """Missing or contradictory parameters; rejected before any side effect."""

    def __init__(self, errmesg: str, *, details: dict[str, Any] | None = None):
        super().__init__(
            AppErrorCode.E_INVALID_REQUEST, errmesg, HttpStatusCode.BAD_REQUEST, details=details
        )


class InvalidProfile(InvalidRequest):
    """Platform profile cannot be satisfied by the given parameters."""

    def __init__(self, errmesg: str, *, details: dict[str, Any] | None = None):
        super().__init__(errmesg, details=details)
        self.errcode = AppErrorCode.E_INVALID_PROFILE.value


class ConflictError(AppError):
    """Owner already has an active session."""

    def __init__(self, errmesg: str, *, details: dict[str, Any] | None = None):
        super().__init__(
            AppErrorCode.E_SESSION_EXISTS, errmesg, HttpStatusCode.CONFLICT, details=details
        )


class SessionNotFound(AppError):
    def __init__(self, session_id: str):
        super().__init__(
            AppErrorCode.E_SESSION_NOT_FOUND,
            f"Session not found: {session_id}",
            HttpStatusCode.NOT_FOUND,
        )


class InvalidStateTransition(AppError):
    def __init__(self, errmesg: str, *, details: dict[str, Any] | None = None):
        super().__init__(
            AppErrorCode.E_INVALID_STATE_TRANSITION,
            errmesg,
            HttpStatusCode.CONFLICT,
            details=details,
        )


class RemoteExecutionError(AppError):
    """Transport to a remote host or to the media server control API failed."""

    def __init__(self, errmesg: str, *, details: dict[str, Any] | None = None):
        super().__init__(
            AppErrorCode.E_REMOTE_EXECUTION, errmesg, HttpStatusCode.BAD_GATEWAY, details=details
        )


class VerificationTimeout(AppError):
    """Backing process or stream was not confirmed running after the settling interval."""

    def __init__(self, errmesg: str, *, details: dict[str, Any] | None = None):
        super().__init__(
            AppErrorCode.E_VERIFICATION_TIMEOUT,
            errmesg,
            HttpStatusCode.GATEWAY_TIMEOUT,
            details=details,
        )


class PartialFanoutFailure(AppError):
    """Some push targets failed while the primary relay is up.

    Never raised past the orchestrator: it is attached to the start result so the
    caller sees which targets failed alongside an otherwise successful start.
    """

    def __init__(self, failed_targets: list[str], *, details: dict[str, Any] | None = None):
        super().__init__(
            AppErrorCode.E_PARTIAL_FANOUT,
            f"{len(failed_targets)} push target(s) failed: {', '.join(failed_targets)}",
            HttpStatusCode.MULTI_STATUS,
            details=details,
        )
        self.failed_targets = failed_targets


__all__ = [
    "AppError",
    "AppErrorCode",
    "ConflictError",
    "HttpStatusCode",
    "InvalidProfile",
    "InvalidRequest",
    "InvalidStateTransition",
    "PartialFanoutFailure",
    "RemoteExecutionError",
    "SessionNotFound",
    "VerificationTimeout",
]
