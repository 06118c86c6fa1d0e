"""In-memory collaborators for orchestrator and sweeper tests."""

import asyncio
from collections.abc import Iterable
from typing import Any
from unittest.mock import AsyncMock

import pytest

from streamrelay.domain.live.session.session_domain import SessionService
from streamrelay.domain.live.session.session_models import SessionSettings
from streamrelay.schemas import SessionState, StreamSession
from streamrelay.schemas.session_store import active_session_conflict, prepare_update, version_conflict
from streamrelay.services.media_server.media_server_client import MediaServerClient
from streamrelay.services.media_server.media_server_schemas import IncomingStream, StreamStatistics
from streamrelay.services.remote.supervisor import ProcessCheck, RemoteProcessSupervisor
from streamrelay.utils.app_errors import ConflictError


class InMemorySessionStore:
    """Session store kept in a dict.

    Enforces the same rules as the Mongo collection: one STARTING/LIVE session
    per owner and version-checked updates.
    """

    def __init__(self):
        self.sessions: dict[str, StreamSession] = {}
        self._lock = asyncio.Lock()

    def _violates_active_uniqueness(self, candidate: StreamSession) -> bool:
        active = SessionState.active_states()
        if candidate.status not in active:
            return False
        return any(
            other.session_id != candidate.session_id
            and other.owner_id == candidate.owner_id
            and other.status in active
            for other in self.sessions.values()
        )

    async def insert(self, session: StreamSession) -> StreamSession:
        async with self._lock:
            if session.session_id in self.sessions:
                raise ConflictError(f"Duplicate session id {session.session_id}")
            if self._violates_active_uniqueness(session):
                raise active_session_conflict(session.owner_id)
            self.sessions[session.session_id] = session.model_copy(deep=True)
            return session

    async def get(self, session_id: str) -> StreamSession | None:
        session = self.sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def find_active_for_owner(self, owner_id: str) -> StreamSession | None:
        for session in self.sessions.values():
            if session.owner_id == owner_id and session.status in SessionState.active_states():
                return session.model_copy(deep=True)
        return None

    async def find_in_states(
        self,
        states: Iterable[SessionState],
        owner_id: str | None = None,
    ) -> list[StreamSession]:
        wanted = set(states)
        return [
            session.model_copy(deep=True)
            for session in self.sessions.values()
            if session.status in wanted and (owner_id is None or session.owner_id == owner_id)
        ]

    async def list_sessions(
        self,
        owner_id: str,
        states: Iterable[SessionState] | None = None,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> tuple[list[StreamSession], str | None]:
        wanted = set(states) if states else None
        sessions = sorted(
            (
                session
                for session in self.sessions.values()
                if session.owner_id == owner_id
                and (wanted is None or session.status in wanted)
                and (cursor is None or session.session_id < cursor)
            ),
            key=lambda session: session.session_id,
            reverse=True,
        )
        page = [session.model_copy(deep=True) for session in sessions[:page_size]]
        next_cursor = page[-1].session_id if len(sessions) > page_size else None
        return page, next_cursor

    async def update(self, session: StreamSession, updates: dict[str, Any]) -> StreamSession:
        async with self._lock:
            current = self.sessions.get(session.session_id)
            if current is None or current.version != session.version:
                raise version_conflict(session, current)

            updated, _ = prepare_update(session, updates)
            if self._violates_active_uniqueness(updated):
                raise active_session_conflict(session.owner_id)

            self.sessions[session.session_id] = updated.model_copy(deep=True)
            return updated

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self.sessions.pop(session_id, None) is not None


def process_check(count: int) -> ProcessCheck:
    return ProcessCheck(count=count, check_command="ps -eo args= | grep -F -e proc | wc -l", output=str(count))


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def supervisor() -> AsyncMock:
    """Supervisor whose processes start, verify and stop cleanly."""
    mock = AsyncMock(spec=RemoteProcessSupervisor)
    mock.inspect.return_value = process_check(1)
    mock.is_running.return_value = 1
    mock.stop.return_value = process_check(0)
    return mock


@pytest.fixture
def media() -> AsyncMock:
    """Media server on which every call succeeds and the owner's stream is found."""
    mock = AsyncMock(spec=MediaServerClient)
    mock.ensure_application_provisioned.return_value = True
    mock.start_stream_publisher.return_value = None
    mock.stop_stream_publisher.return_value = None
    mock.configure_push_target.return_value = None

    async def find_stream_for_owner(owner_login: str, application: str | None = None):
        return IncomingStream(name=owner_login, is_connected=True)

    mock.find_stream_for_owner.side_effect = find_stream_for_owner
    mock.get_statistics.return_value = StreamStatistics()
    return mock


@pytest.fixture
def session_settings() -> SessionSettings:
    return SessionSettings(
        process_settling_seconds=0,
        default_host_id="default",
        transcoder_binary="/usr/local/bin/ffmpeg",
        playlist_file="playlist.smil",
        public_host="media.example.com",
    )


@pytest.fixture
def session_service(
    session_store: InMemorySessionStore,
    supervisor: AsyncMock,
    media: AsyncMock,
    session_settings: SessionSettings,
) -> SessionService:
    return SessionService(
        store=session_store,
        supervisor=supervisor,
        media=media,
        settings=session_settings,
        starting_grace_seconds=0,
    )
