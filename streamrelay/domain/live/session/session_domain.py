"""Session domain service."""

from streamrelay.domain.live.platforms.catalog import PlatformProfile, list_platform_profiles
from streamrelay.schemas import SessionState
from streamrelay.schemas.session_store import BeanieSessionStore, SessionStore
from streamrelay.services.media_server.media_server_client import MediaServerClient
from streamrelay.services.media_server.media_server_schemas import StreamStatistics
from streamrelay.services.remote.executor import SshCommandExecutor
from streamrelay.services.remote.supervisor import RemoteProcessSupervisor

from ._sessions import SessionOperations
from ._start import StartOperations
from ._stop import StopOperations
from ._sweeper import DEFAULT_STARTING_GRACE_SECONDS, SessionSweeper
from .session_models import (
    PlayerUrls,
    SessionCreateParams,
    SessionListResponse,
    SessionResponse,
    SessionSettings,
    SessionStartResult,
    SessionStatusResponse,
    SessionStopResult,
    SweepMode,
    SweepReport,
)


class SessionService:
    """Session orchestrator.

    Every collaborator can be injected; by default sessions are stored in
    MongoDB, transcoders run over SSH and playlists on the configured media
    server.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        supervisor: RemoteProcessSupervisor | None = None,
        media: MediaServerClient | None = None,
        settings: SessionSettings | None = None,
        starting_grace_seconds: float = DEFAULT_STARTING_GRACE_SECONDS,
    ):
        store = store or BeanieSessionStore()
        supervisor = supervisor or RemoteProcessSupervisor(SshCommandExecutor())
        media = media or MediaServerClient()
        settings = settings or SessionSettings.from_app_config()

        self._sessions = SessionOperations(store, supervisor, media, settings)
        self._start = StartOperations(store, supervisor, media, settings)
        self._stop = StopOperations(store, supervisor, media, settings)
        self._sweeper = SessionSweeper(
            store, supervisor, media, settings, starting_grace_seconds=starting_grace_seconds
        )

    # ==================== LIFECYCLE ====================

    async def create_session(self, params: SessionCreateParams) -> SessionStartResult:
        """Create a session and, unless scheduled, bring it live.

        Raises AppError on invalid input, an existing active session or a failed start.
        """
        return await self._start.create_session(params)

    async def start_session(self, session_id: str, owner_id: str | None = None) -> SessionStartResult:
        """Start a scheduled session."""
        return await self._start.start_session(session_id, owner_id)

    async def stop_session(self, session_id: str, owner_id: str | None = None) -> SessionStopResult:
        """Stop a session; idempotent on terminal sessions."""
        return await self._stop.stop_session(session_id, owner_id)

    async def pause_session(self, session_id: str, owner_id: str | None = None) -> SessionResponse:
        return await self._stop.pause_session(session_id, owner_id)

    async def resume_session(self, session_id: str, owner_id: str | None = None) -> SessionResponse:
        return await self._stop.resume_session(session_id, owner_id)

    async def delete_session(self, session_id: str, owner_id: str | None = None) -> bool:
        return await self._sessions.delete_session(session_id, owner_id)

    # ==================== QUERIES ====================

    async def get_session(self, session_id: str, owner_id: str | None = None) -> SessionResponse:
        return await self._sessions.get_session(session_id, owner_id)

    async def get_session_status(
        self,
        session_id: str,
        owner_id: str | None = None,
        verify: bool = False,
    ) -> SessionStatusResponse:
        return await self._sessions.get_session_status(session_id, owner_id, verify=verify)

    async def list_sessions(
        self,
        owner_id: str,
        states: list[SessionState] | None = None,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> SessionListResponse:
        return await self._sessions.list_sessions(owner_id, states=states, cursor=cursor, page_size=page_size)

    async def get_statistics(self, session_id: str, owner_id: str | None = None) -> StreamStatistics:
        return await self._sessions.get_statistics(session_id, owner_id)

    async def get_player_urls(self, session_id: str, owner_id: str | None = None) -> PlayerUrls:
        return await self._sessions.get_player_urls(session_id, owner_id)

    def list_platforms(self) -> list[PlatformProfile]:
        return list_platform_profiles()

    # ==================== RECONCILIATION ====================

    async def reconcile(
        self,
        mode: SweepMode,
        owner_id: str | None = None,
        timeout: float | None = None,
    ) -> SweepReport:
        """Align recorded sessions with the processes actually running."""
        return await self._sweeper.reconcile(mode, owner_id=owner_id, timeout=timeout)
