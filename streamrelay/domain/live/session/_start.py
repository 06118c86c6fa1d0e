"""Session creation and start operations."""

import asyncio

from loguru import logger

from streamrelay.domain.live.command.builder import build_invocation, build_process_name
from streamrelay.domain.live.platforms.catalog import get_platform_profile
from streamrelay.schemas import (
    LaunchDiagnostics,
    PushTarget,
    PushTargetOutcome,
    SessionKind,
    SessionRuntime,
    SessionState,
    StreamSession,
    TransitionRecord,
)
from streamrelay.schemas.schema_utils import utc_now
from streamrelay.utils.app_errors import (
    AppError,
    ConflictError,
    InvalidRequest,
    InvalidStateTransition,
    PartialFanoutFailure,
    RemoteExecutionError,
    VerificationTimeout,
)

from ...utils.idgen import new_session_id
from ._base import BaseService
from ._stop import StopOperations
from .session_models import SessionCreateParams, SessionResponse, SessionSettings, SessionStartResult


class StartOperations(BaseService):
    """Operations for creating sessions and bringing them live."""

    def __init__(self, store, supervisor, media, settings: SessionSettings):
        super().__init__(store, supervisor, media, settings)
        self._stop = StopOperations(store, supervisor, media, settings)

    def build_session(self, params: SessionCreateParams) -> StreamSession:
        """Validate the request and build a SCHEDULED session.

        Nothing is persisted and no host is contacted: every input error is
        reported here, before any side effect.
        """
        if not params.owner_id.strip():
            raise InvalidRequest("owner_id is required")
        if not params.source_ref.strip():
            raise InvalidRequest("source_ref is required")

        session_id = new_session_id()
        process_name = build_process_name(params.owner_login, session_id)

        if params.kind == SessionKind.EXTERNAL_PUSH:
            if not params.platform_id:
                raise InvalidRequest("platform_id is required for external_push sessions")
            invocation = build_invocation(
                params.source_ref,
                params.destination_ref,
                get_platform_profile(params.platform_id),
                owner_login=params.owner_login,
                session_id=session_id,
                stream_key=params.stream_key,
                binary=self.settings.transcoder_binary,
            )
            runtime = SessionRuntime(
                host_id=params.host_id or self.settings.default_host_id,
                process_name=invocation.process_name,
                match_hints=list(invocation.match_hints),
                command=invocation.redacted_command,
            )
        else:
            if params.platform_id or params.stream_key or params.destination_ref or params.host_id:
                raise InvalidRequest(
                    "platform_id, stream_key, destination_ref and host_id only apply to external_push sessions"
                )
            runtime = SessionRuntime(
                process_name=process_name,
                application=params.owner_login,
                playlist_file=params.playlist_file or self.settings.playlist_file,
            )

        self._validate_push_targets(params.owner_login, params.push_targets)

        now = utc_now()
        return StreamSession(
            session_id=session_id,
            owner_id=params.owner_id,
            owner_login=params.owner_login,
            kind=params.kind,
            status=SessionState.SCHEDULED,
            source_ref=params.source_ref.strip(),
            destination_ref=params.destination_ref,
            platform_id=params.platform_id,
            stream_key=params.stream_key,
            push_targets=params.push_targets,
            runtime=runtime,
            transitions=[TransitionRecord(from_state=None, to_state=SessionState.SCHEDULED, at=now, reason="created")],
            created_at=now,
            updated_at=now,
        )

    def _validate_push_targets(self, owner_login: str, targets: list[PushTarget]) -> None:
        seen: set[str] = set()
        for target in targets:
            entry = self._build_push_entry(owner_login, target)
            if entry.entry_name in seen:
                raise InvalidRequest(
                    f"Duplicate push target entry name: {entry.entry_name}",
                    details={"entry_name": entry.entry_name},
                )
            seen.add(entry.entry_name)

    async def _ensure_no_active_session(self, owner_id: str) -> None:
        # Fast path only; the store's unique constraint is what guarantees exclusivity
        existing = await self.store.find_active_for_owner(owner_id)
        if existing:
            raise ConflictError(
                f"Active session already exists for owner {owner_id}: {existing.session_id}",
                details={"owner_id": owner_id, "session_id": existing.session_id},
            )

    async def create_session(self, params: SessionCreateParams) -> SessionStartResult:
        """Create a session, and start it unless `immediate_start` is False.

        Raises:
            InvalidRequest / InvalidProfile: On invalid input, before any side effect
            ConflictError: If the owner already has an active session
            RemoteExecutionError / VerificationTimeout: If the start failed;
                the session is recorded as FAILED
        """
        session = self.build_session(params)
        await self._ensure_no_active_session(params.owner_id)

        if params.immediate_start:
            now = utc_now()
            session = session.model_copy(
                update={
                    "status": SessionState.STARTING,
                    "transitions": [
                        *session.transitions,
                        TransitionRecord(
                            from_state=SessionState.SCHEDULED,
                            to_state=SessionState.STARTING,
                            at=now,
                            reason="immediate start",
                        ),
                    ],
                }
            )

        session = await self.store.insert(session)
        logger.info(
            f"Created {session.kind} session {session.session_id} for {session.owner_login} "
            f"({session.status})"
        )

        if not params.immediate_start:
            return SessionStartResult(message="Session scheduled", session=SessionResponse.from_session(session))

        return await self._advance(session)

    async def start_session(self, session_id: str, owner_id: str | None = None) -> SessionStartResult:
        """Start a previously scheduled session."""
        session = await self._get_session_or_raise(session_id, owner_id)
        if session.status != SessionState.SCHEDULED:
            raise InvalidStateTransition(
                f"Only scheduled sessions can be started, session is {session.status}",
                details={"session_id": session_id, "status": str(session.status)},
            )

        await self._ensure_no_active_session(session.owner_id)
        session = await self.update_session_state(session, SessionState.STARTING, reason="start requested")
        return await self._advance(session)

    async def _advance(self, session: StreamSession) -> SessionStartResult:
        """Launch and verify the backing process, then go LIVE and fan out."""
        if session.kind == SessionKind.EXTERNAL_PUSH:
            session = await self._launch_external_push(session)
        else:
            session = await self._launch_playlist_relay(session)

        session = await self.update_session_state(session, SessionState.LIVE, reason="verified")

        outcomes = await self._fan_out(session)
        if outcomes:
            session = await self.update_runtime(session, push_outcomes=outcomes)

        if session.runtime.stop_requested:
            logger.info(f"Session {session.session_id} had a stop request while starting, stopping now")
            stopped = await self._stop.terminate(session, reason="stop requested while starting")
            return SessionStartResult(
                message="Session started and stopped on request",
                session=stopped.session,
                push_outcomes=outcomes,
            )

        failed = [outcome for outcome in outcomes if not outcome.success]
        if not failed:
            return SessionStartResult(
                message="Session is live",
                session=SessionResponse.from_session(session),
                push_outcomes=outcomes,
            )

        partial = PartialFanoutFailure(
            [outcome.entry_name for outcome in failed],
            details={"errors": {outcome.entry_name: outcome.error for outcome in failed}},
        )
        logger.warning(f"Session {session.session_id} is live with failed push targets: {partial.errmesg}")
        return SessionStartResult(
            message=partial.errmesg,
            session=SessionResponse.from_session(session),
            push_outcomes=outcomes,
            partial_failure={
                "errcode": partial.errcode,
                "errmesg": partial.errmesg,
                "failed_targets": partial.failed_targets,
                **(partial.details or {}),
            },
        )

    async def _fail_start(
        self,
        session: StreamSession,
        diagnostics: LaunchDiagnostics,
        reason: str,
    ) -> StreamSession:
        logger.error(f"Session {session.session_id} failed to start: {reason}")
        return await self.update_session_state(
            session,
            SessionState.FAILED,
            reason=reason,
            runtime_update={"diagnostics": diagnostics},
        )

    async def _launch_external_push(self, session: StreamSession) -> StreamSession:
        if not session.platform_id:
            raise InvalidRequest("platform_id is required for external_push sessions")

        invocation = build_invocation(
            session.source_ref,
            session.destination_ref,
            get_platform_profile(session.platform_id),
            owner_login=session.owner_login,
            session_id=session.session_id,
            stream_key=session.stream_key,
            binary=self.settings.transcoder_binary,
        )
        host_id = session.runtime.host_id or self.settings.default_host_id

        # Persist the handles before launching so a crash mid-start leaves enough to find the process
        session = await self.update_runtime(
            session,
            host_id=host_id,
            process_name=invocation.process_name,
            match_hints=list(invocation.match_hints),
            command=invocation.redacted_command,
        )

        try:
            await self.supervisor.start(host_id, invocation.process_name, invocation.command)
        except RemoteExecutionError as e:
            await self._fail_start(
                session,
                LaunchDiagnostics(command=invocation.redacted_command, error=e.errmesg),
                reason="launch failed",
            )
            raise

        await asyncio.sleep(self.settings.process_settling_seconds)

        try:
            check = await self.supervisor.inspect(host_id, invocation.process_name, invocation.match_hints)
        except RemoteExecutionError as e:
            await self._fail_start(
                session,
                LaunchDiagnostics(command=invocation.redacted_command, error=e.errmesg),
                reason="verification failed",
            )
            raise

        if not check.running:
            diagnostics = LaunchDiagnostics(
                command=invocation.redacted_command,
                check_command=check.check_command,
                check_output=check.output,
                match_count=check.count,
                error="process not found after settling",
            )
            await self._fail_start(session, diagnostics, reason="process not found after settling")
            raise VerificationTimeout(
                f"{invocation.process_name} not running on {host_id} after "
                f"{self.settings.process_settling_seconds}s",
                details=diagnostics.model_dump(),
            )

        logger.info(f"Session {session.session_id}: {check.count} process(es) verified on {host_id}")
        return session

    async def _launch_playlist_relay(self, session: StreamSession) -> StreamSession:
        login = session.owner_login
        application = session.runtime.application or login
        playlist_file = session.runtime.playlist_file or self.settings.playlist_file
        command = f"stream publisher connect {application}/{playlist_file}"

        try:
            await self.media.ensure_application_provisioned(login)
            # TODO: disconnect the publisher when verification fails; it is left running today
            await self.media.start_stream_publisher(
                login, playlist_file, session_name=f"{login}_{session.session_id}"
            )
            stream = await self.media.find_stream_for_owner(login, application=application)
        except RemoteExecutionError as e:
            await self._fail_start(session, LaunchDiagnostics(command=command, error=e.errmesg), reason="launch failed")
            raise

        if stream is None:
            diagnostics = LaunchDiagnostics(
                command=command,
                check_command=f"incoming streams of {application}",
                match_count=0,
                error="stream not found after settling",
            )
            await self._fail_start(session, diagnostics, reason="stream not found after settling")
            raise VerificationTimeout(
                f"No incoming stream for {login} in {application}",
                details=diagnostics.model_dump(),
            )

        logger.info(f"Session {session.session_id}: stream {stream.name} verified in {application}")
        return await self.update_runtime(
            session,
            diagnostics=LaunchDiagnostics(command=command, match_count=1, stream_name=stream.name),
        )

    async def _fan_out(self, session: StreamSession) -> list[PushTargetOutcome]:
        targets = [target for target in session.push_targets if target.enabled]
        if not targets:
            return []
        return list(await asyncio.gather(*(self._push_to_target(session, target) for target in targets)))

    async def _push_to_target(self, session: StreamSession, target: PushTarget) -> PushTargetOutcome:
        entry_name = target.entry_name or target.platform_id
        try:
            entry = self._build_push_entry(session.owner_login, target)
            await self.media.configure_push_target(session.owner_login, entry)
        except AppError as e:
            logger.warning(f"Push target {entry_name} failed for session {session.session_id}: {e.errmesg}")
            return PushTargetOutcome(
                platform_id=target.platform_id, entry_name=entry_name, success=False, error=e.errmesg
            )
        return PushTargetOutcome(platform_id=target.platform_id, entry_name=entry_name, success=True)
