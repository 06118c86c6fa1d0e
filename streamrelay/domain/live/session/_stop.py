"""Session stop, pause and resume operations."""

from loguru import logger

from streamrelay.schemas import SessionKind, SessionState, StreamSession
from streamrelay.utils.app_errors import InvalidStateTransition, RemoteExecutionError

from ._base import BaseService
from .session_models import SessionResponse, SessionStopResult
from .session_state_machine import SessionStateMachine


class StopOperations(BaseService):
    """Operations for stopping and pausing sessions."""

    async def stop_session(
        self,
        session_id: str,
        owner_id: str | None = None,
    ) -> SessionStopResult:
        """Stop a session.

        Stopping a terminal session is a no-op. A scheduled session is stopped
        without touching any host. A session that is still starting is flagged
        and stopped as soon as its start completes.

        Raises:
            SessionNotFound: If the session does not exist for this owner
            RemoteExecutionError: If the backing process could not be terminated;
                the session is left in STOPPING
        """
        session = await self._get_session_or_raise(session_id, owner_id)
        logger.info(f"Stopping session {session_id} (current state: {session.status})")

        if SessionStateMachine.is_terminal(session.status):
            return SessionStopResult(
                message=f"Session already {session.status}",
                session=SessionResponse.from_session(session),
            )

        if session.status == SessionState.SCHEDULED:
            session = await self.update_session_state(
                session, SessionState.STOPPED, reason="stopped before start"
            )
            return SessionStopResult(message="Session stopped", session=SessionResponse.from_session(session))

        if session.status == SessionState.STARTING:
            session = await self.update_runtime(session, stop_requested=True)
            # The start may have completed while the flag was being written
            if session.status == SessionState.STARTING:
                logger.info(f"Session {session_id} is starting, stop deferred until start completes")
                return SessionStopResult(
                    message="Stop requested, the session stops once its start completes",
                    session=SessionResponse.from_session(session),
                )

        return await self.terminate(session, reason="stop requested")

    async def terminate(self, session: StreamSession, *, reason: str) -> SessionStopResult:
        """Take a LIVE or STOPPING session down to STOPPED."""
        if SessionStateMachine.is_terminal(session.status):
            return SessionStopResult(
                message=f"Session already {session.status}",
                session=SessionResponse.from_session(session),
            )

        if session.status != SessionState.STOPPING:
            session = await self.update_session_state(session, SessionState.STOPPING, reason=reason)

        try:
            await self._terminate_backing_process(session)
        except RemoteExecutionError as e:
            logger.error(f"Failed to terminate session {session.session_id}, left in STOPPING: {e.errmesg}")
            raise

        session = await self.update_session_state(session, SessionState.STOPPED, reason=reason)
        return SessionStopResult(message="Session stopped", session=SessionResponse.from_session(session))

    async def _get_live_playlist_session(self, session_id: str, owner_id: str | None) -> StreamSession:
        session = await self._get_session_or_raise(session_id, owner_id)
        if session.kind != SessionKind.PLAYLIST_RELAY:
            raise InvalidStateTransition(
                "Only playlist relay sessions can be paused or resumed",
                details={"session_id": session_id, "kind": str(session.kind)},
            )
        if session.status != SessionState.LIVE:
            raise InvalidStateTransition(
                f"Session is {session.status}, not live",
                details={"session_id": session_id, "status": str(session.status)},
            )
        return session

    async def pause_session(self, session_id: str, owner_id: str | None = None) -> SessionResponse:
        session = await self._get_live_playlist_session(session_id, owner_id)
        if session.runtime.paused:
            return SessionResponse.from_session(session)

        await self.media.pause_stream_publisher(
            session.owner_login, session.runtime.playlist_file or self.settings.playlist_file
        )
        session = await self.update_runtime(session, paused=True)
        logger.info(f"Session {session_id} paused")
        return SessionResponse.from_session(session)

    async def resume_session(self, session_id: str, owner_id: str | None = None) -> SessionResponse:
        session = await self._get_live_playlist_session(session_id, owner_id)
        if not session.runtime.paused:
            return SessionResponse.from_session(session)

        await self.media.resume_stream_publisher(
            session.owner_login, session.runtime.playlist_file or self.settings.playlist_file
        )
        session = await self.update_runtime(session, paused=False)
        logger.info(f"Session {session_id} resumed")
        return SessionResponse.from_session(session)
