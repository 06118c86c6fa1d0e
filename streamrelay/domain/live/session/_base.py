"""Base service for session operations."""

from typing import Any

from loguru import logger

from streamrelay.domain.live.command.builder import compose_destination
from streamrelay.domain.live.platforms.catalog import get_platform_profile
from streamrelay.schemas import PushTarget, SessionKind, SessionState, StreamSession, TransitionRecord
from streamrelay.schemas.schema_utils import utc_now
from streamrelay.schemas.session_store import SessionStore
from streamrelay.services.media_server.media_server_client import MediaServerClient
from streamrelay.services.media_server.media_server_schemas import PushPublishEntry
from streamrelay.services.remote.supervisor import RemoteProcessSupervisor
from streamrelay.utils.app_errors import (
    AppError,
    AppErrorCode,
    InvalidStateTransition,
    SessionNotFound,
)

from .session_models import SessionSettings
from .session_state_machine import SessionStateMachine


class BaseService:
    """Base service with shared session operation methods."""

    def __init__(
        self,
        store: SessionStore,
        supervisor: RemoteProcessSupervisor,
        media: MediaServerClient,
        settings: SessionSettings,
    ):
        self.store = store
        self.supervisor = supervisor
        self.media = media
        self.settings = settings

    async def _get_session_or_raise(self, session_id: str, owner_id: str | None = None) -> StreamSession:
        """
        Retrieve a session by session_id.

        Sessions of another owner are reported as not found.
        """
        session = await self.store.get(session_id)
        if session is None or (owner_id is not None and session.owner_id != owner_id):
            raise SessionNotFound(session_id)
        return session

    async def _reload(self, session: StreamSession) -> StreamSession:
        fresh = await self.store.get(session.session_id)
        if fresh is None:
            raise SessionNotFound(session.session_id)
        return fresh

    def _build_push_entry(self, owner_login: str, target: PushTarget) -> PushPublishEntry:
        profile = get_platform_profile(target.platform_id)
        destination = compose_destination(profile, target.destination_ref, target.stream_key)
        return PushPublishEntry.from_destination(
            owner_login=owner_login,
            entry_name=target.entry_name or profile.id,
            destination=destination,
        )

    async def _observe_running(self, session: StreamSession) -> bool:
        """Ask the host or the media server whether the session's backing process exists."""
        if session.kind == SessionKind.EXTERNAL_PUSH:
            count = await self.supervisor.is_running(
                session.runtime.host_id or self.settings.default_host_id,
                session.process_name,
                session.runtime.match_hints,
            )
            return count > 0

        stream = await self.media.find_stream_for_owner(
            session.owner_login, application=session.runtime.application or session.owner_login
        )
        return stream is not None

    async def _terminate_backing_process(self, session: StreamSession) -> None:
        if session.kind == SessionKind.EXTERNAL_PUSH:
            await self.supervisor.stop(
                session.runtime.host_id or self.settings.default_host_id, session.process_name
            )
        else:
            await self.media.stop_stream_publisher(
                session.owner_login, session.runtime.playlist_file or self.settings.playlist_file
            )

    async def update_runtime(
        self,
        session: StreamSession,
        max_retry_on_conflicts: int = 1,
        **runtime_fields: Any,
    ) -> StreamSession:
        """Set runtime fields, merging them into the latest stored runtime on version conflicts."""
        attempts = 0
        while True:
            runtime = session.runtime.model_copy(update=runtime_fields)
            try:
                return await self.store.update(session, {"runtime": runtime})
            except AppError as e:
                if e.errcode != AppErrorCode.E_SESSION_VERSION_CONFLICT or attempts >= max_retry_on_conflicts:
                    raise
                attempts += 1
                session = await self._reload(session)

    async def update_session_state(
        self,
        session: StreamSession,
        new_state: SessionState,
        *,
        reason: str | None = None,
        runtime_update: dict[str, Any] | None = None,
        set_ended_at: bool = False,
        max_retry_on_conflicts: int = 1,
    ) -> StreamSession:
        """
        Update session state with validation and timestamp updates.

        On a version conflict the session is reloaded and the transition is
        validated again against the stored state before retrying, so a
        concurrent writer can never be overwritten with a stale status.

        Args:
            session: Session to update
            new_state: Target state to transition to
            reason: Recorded in the transition history
            runtime_update: Runtime fields to set along with the state
            set_ended_at: Stamp ended_at on FAILED (STOPPED always stamps it)
            max_retry_on_conflicts: Reload-and-retry attempts on version conflict

        Returns:
            Updated session

        Raises:
            InvalidStateTransition: If the transition is not allowed from the stored state
        """
        attempts = 0
        while True:
            if session.status == new_state:
                logger.info(f"Session {session.session_id} already in state {new_state}, skipping")
                if runtime_update:
                    session = await self.update_runtime(session, **runtime_update)
                return session

            if not SessionStateMachine.can_transition(session.status, new_state):
                raise InvalidStateTransition(
                    f"Invalid state transition: {session.status} -> {new_state}",
                    details={"session_id": session.session_id, "from": str(session.status), "to": str(new_state)},
                )

            now = utc_now()
            updates: dict[str, Any] = {
                "status": new_state,
                "updated_at": now,
                "transitions": [
                    *session.transitions,
                    TransitionRecord(from_state=session.status, to_state=new_state, at=now, reason=reason),
                ],
            }
            if runtime_update:
                updates["runtime"] = session.runtime.model_copy(update=runtime_update)
            if new_state == SessionState.LIVE and not session.started_at:
                updates["started_at"] = now
            if new_state == SessionState.STOPPED or (new_state == SessionState.FAILED and set_ended_at):
                if not session.ended_at:
                    updates["ended_at"] = now

            try:
                updated = await self.store.update(session, updates)
            except AppError as e:
                if e.errcode != AppErrorCode.E_SESSION_VERSION_CONFLICT or attempts >= max_retry_on_conflicts:
                    raise
                attempts += 1
                session = await self._reload(session)
                continue

            logger.info(
                f"Session {session.session_id} ({session.owner_login}) {session.status} -> {new_state}"
                + (f": {reason}" if reason else "")
            )
            return updated
