"""Session query and removal operations."""

from loguru import logger

from streamrelay.schemas import SessionKind, SessionState
from streamrelay.services.media_server.media_server_schemas import StreamStatistics
from streamrelay.utils.app_errors import AppError, InvalidStateTransition

from ._base import BaseService
from ._stop import StopOperations
from .session_models import (
    PlayerUrls,
    SessionListResponse,
    SessionResponse,
    SessionSettings,
    SessionStatusResponse,
)
from .session_state_machine import SessionStateMachine

MAX_PAGE_SIZE = 100


class SessionOperations(BaseService):
    """Session-related operations."""

    def __init__(self, store, supervisor, media, settings: SessionSettings):
        super().__init__(store, supervisor, media, settings)
        self._stop = StopOperations(store, supervisor, media, settings)

    async def get_session(self, session_id: str, owner_id: str | None = None) -> SessionResponse:
        """Get a single session by session_id.

        Raises SessionNotFound if the session does not exist for this owner.
        """
        session = await self._get_session_or_raise(session_id, owner_id)
        return SessionResponse.from_session(session)

    async def get_session_status(
        self,
        session_id: str,
        owner_id: str | None = None,
        verify: bool = False,
    ) -> SessionStatusResponse:
        """Report the recorded state, optionally cross-checked against the host.

        A mismatch is reported as a warning; the recorded state is never
        corrected here, that is the sweeper's job.
        """
        session = await self._get_session_or_raise(session_id, owner_id)
        response = SessionStatusResponse(session=SessionResponse.from_session(session))
        if not verify or session.status != SessionState.LIVE:
            return response

        try:
            response.observed_running = await self._observe_running(session)
        except AppError as e:
            response.warning = f"Could not verify backing process: {e.errmesg}"
            return response

        if not response.observed_running:
            response.warning = "Session is recorded as live but its backing process was not found"
            logger.warning(f"Session {session_id}: {response.warning}")
        return response

    async def list_sessions(
        self,
        owner_id: str,
        states: list[SessionState] | None = None,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> SessionListResponse:
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        sessions, next_cursor = await self.store.list_sessions(
            owner_id, states=states, cursor=cursor, page_size=page_size
        )
        return SessionListResponse(
            sessions=[SessionResponse.from_session(session) for session in sessions],
            next_cursor=next_cursor,
        )

    async def delete_session(self, session_id: str, owner_id: str | None = None) -> bool:
        """Stop the session if needed, then remove its record.

        A session that is still starting cannot be deleted.
        """
        session = await self._get_session_or_raise(session_id, owner_id)
        if session.status == SessionState.STARTING:
            raise InvalidStateTransition(
                "Session is starting and cannot be deleted yet",
                details={"session_id": session_id, "status": str(session.status)},
            )

        if not SessionStateMachine.is_terminal(session.status):
            await self._stop.stop_session(session_id, owner_id)

        deleted = await self.store.delete(session_id)
        logger.info(f"Session {session_id} deleted")
        return deleted

    async def get_statistics(self, session_id: str, owner_id: str | None = None) -> StreamStatistics:
        session = await self._get_session_or_raise(session_id, owner_id)
        return await self.media.get_statistics(session.owner_login)

    async def get_player_urls(self, session_id: str, owner_id: str | None = None) -> PlayerUrls:
        session = await self._get_session_or_raise(session_id, owner_id)
        if session.kind != SessionKind.PLAYLIST_RELAY:
            raise InvalidStateTransition(
                "Player URLs are only available for playlist relay sessions",
                details={"session_id": session_id, "kind": str(session.kind)},
            )

        host = self.settings.public_host
        login = session.owner_login
        playlist_file = session.runtime.playlist_file or self.settings.playlist_file
        return PlayerUrls(
            hls=f"http://{host}:80/{login}/{login}/playlist.m3u8",
            hls_playlist=f"http://{host}:80/{login}/smil:{playlist_file}/playlist.m3u8",
            rtmp=f"rtmp://{host}:1935/{login}/{login}",
            rtsp=f"rtsp://{host}:554/{login}/{login}",
            dash=f"http://{host}:80/{login}/{login}/manifest.mpd",
        )
