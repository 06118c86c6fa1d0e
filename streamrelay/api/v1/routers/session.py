from fastapi import APIRouter, Depends, Query

from streamrelay.api.v1.dependency import CurrentUser
from streamrelay.api.v1.schemas.base import ApiOut
from streamrelay.api.v1.schemas.session import (
    PlatformOut,
    RemoveSessionOut,
    SessionIdIn,
    StartSessionIn,
)
from streamrelay.domain.live.session.session_domain import SessionService
from streamrelay.domain.live.session.session_models import (
    PlayerUrls,
    SessionCreateParams,
    SessionListResponse,
    SessionResponse,
    SessionStartResult,
    SessionStatusResponse,
    SessionStopResult,
)
from streamrelay.schemas import SessionState
from streamrelay.services.media_server.media_server_schemas import StreamStatistics

router = APIRouter(prefix="/session")

# Singleton instance
_session_service = SessionService()


def get_session_service() -> SessionService:
    """Get the singleton SessionService instance."""
    return _session_service


@router.post("/start_session")
async def start_session(
    body: StartSessionIn,
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SessionStartResult]:
    """Create a session for the authenticated user and start it unless only scheduled."""
    params = SessionCreateParams(
        owner_id=user.user_id,
        owner_login=user.login,
        kind=body.kind,
        source_ref=body.source_ref,
        destination_ref=body.destination_ref,
        platform_id=body.platform_id,
        stream_key=body.stream_key,
        push_targets=[target.to_push_target() for target in body.push_targets],
        host_id=body.host_id,
        playlist_file=body.playlist_file,
        immediate_start=body.immediate_start,
    )

    result = await service.create_session(params)

    return ApiOut[SessionStartResult](message=result.message, results=result)


@router.post("/start")
async def start(
    body: SessionIdIn,
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SessionStartResult]:
    """Start a scheduled session."""
    result = await service.start_session(body.session_id, owner_id=user.user_id)
    return ApiOut[SessionStartResult](message=result.message, results=result)


@router.post("/stop_session")
async def stop_session(
    body: SessionIdIn,
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SessionStopResult]:
    result = await service.stop_session(body.session_id, owner_id=user.user_id)
    return ApiOut[SessionStopResult](message=result.message, results=result)


@router.get("/get_session")
async def get_session(
    user: CurrentUser,
    session_id: str = Query(..., description="Session identifier"),
    verify: bool = Query(False, description="Cross-check a live session against its backing process"),
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SessionStatusResponse]:
    """Get a session's recorded state, optionally cross-checked against the host."""
    result = await service.get_session_status(session_id, owner_id=user.user_id, verify=verify)
    return ApiOut[SessionStatusResponse](results=result)


@router.get("/list_sessions")
async def list_sessions(
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
    status: list[SessionState] | None = Query(None, description="Filter by state"),
    cursor: str | None = Query(None, description="Pagination cursor"),
    page_size: int = Query(20, ge=1, le=100, description="Number of items per page"),
) -> ApiOut[SessionListResponse]:
    """List sessions of the authenticated user, newest first."""
    result = await service.list_sessions(
        owner_id=user.user_id,
        states=status,
        cursor=cursor,
        page_size=page_size,
    )
    return ApiOut[SessionListResponse](results=result)


@router.post("/pause_session")
async def pause_session(
    body: SessionIdIn,
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SessionResponse]:
    result = await service.pause_session(body.session_id, owner_id=user.user_id)
    return ApiOut[SessionResponse](results=result)


@router.post("/resume_session")
async def resume_session(
    body: SessionIdIn,
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SessionResponse]:
    result = await service.resume_session(body.session_id, owner_id=user.user_id)
    return ApiOut[SessionResponse](results=result)


@router.post("/remove_session")
async def remove_session(
    body: SessionIdIn,
    user: CurrentUser,
    service: SessionService = Depends(get_session_service),
) -> ApiOut[RemoveSessionOut]:
    """Stop the session if needed and delete its record."""
    deleted = await service.delete_session(body.session_id, owner_id=user.user_id)
    return ApiOut[RemoveSessionOut](results=RemoveSessionOut(session_id=body.session_id, deleted=deleted))


@router.get("/statistics")
async def statistics(
    user: CurrentUser,
    session_id: str = Query(..., description="Session identifier"),
    service: SessionService = Depends(get_session_service),
) -> ApiOut[StreamStatistics]:
    result = await service.get_statistics(session_id, owner_id=user.user_id)
    return ApiOut[StreamStatistics](results=result)


@router.get("/player_urls")
async def player_urls(
    user: CurrentUser,
    session_id: str = Query(..., description="Session identifier"),
    service: SessionService = Depends(get_session_service),
) -> ApiOut[PlayerUrls]:
    result = await service.get_player_urls(session_id, owner_id=user.user_id)
    return ApiOut[PlayerUrls](results=result)


@router.get("/platforms")
async def platforms(
    service: SessionService = Depends(get_session_service),
) -> ApiOut[list[PlatformOut]]:
    """List the supported target platforms."""
    return ApiOut[list[PlatformOut]](
        results=[PlatformOut.from_profile(profile) for profile in service.list_platforms()]
    )
