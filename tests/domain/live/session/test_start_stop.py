"""Tests for session creation, start and stop."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from streamrelay.domain.live.session.session_domain import SessionService
from streamrelay.domain.live.session.session_models import SessionCreateParams, SessionSettings
from streamrelay.schemas import PushTarget, SessionKind, SessionState
from streamrelay.services.media_server.media_server_client import MediaServerClient
from streamrelay.utils.app_errors import (
    AppErrorCode,
    ConflictError,
    InvalidProfile,
    InvalidRequest,
    InvalidStateTransition,
    RemoteExecutionError,
    SessionNotFound,
    VerificationTimeout,
)
from tests.fixtures.session_fixtures import InMemorySessionStore, process_check


def playlist_params(owner_id: str = "u_alice", login: str = "alice", **kwargs) -> SessionCreateParams:
    return SessionCreateParams(
        owner_id=owner_id,
        owner_login=login,
        kind=SessionKind.PLAYLIST_RELAY,
        source_ref="playlist.smil",
        **kwargs,
    )


def push_params(owner_id: str = "u_alice", login: str = "alice", **kwargs) -> SessionCreateParams:
    kwargs.setdefault("platform_id", "youtube")
    kwargs.setdefault("stream_key", "yt-secret-key")
    return SessionCreateParams(
        owner_id=owner_id,
        owner_login=login,
        kind=SessionKind.EXTERNAL_PUSH,
        source_ref="rtmp://media.example.com/alice/alice",
        **kwargs,
    )


class TestCreatePlaylistRelay:
    async def test_immediate_start_goes_live(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        media: AsyncMock,
    ):
        """alice's playlist relay is provisioned, started, verified and recorded LIVE."""
        # Act
        result = await session_service.create_session(playlist_params())

        # Assert
        assert result.success is True
        assert result.session.status == SessionState.LIVE
        assert result.session.started_at is not None

        stored = await session_store.get(result.session.session_id)
        assert stored is not None
        assert stored.status == SessionState.LIVE
        assert [record.to_state for record in stored.transitions] == [
            SessionState.SCHEDULED,
            SessionState.STARTING,
            SessionState.LIVE,
        ]

        media.ensure_application_provisioned.assert_awaited_once_with("alice")
        media.start_stream_publisher.assert_awaited_once()
        assert media.start_stream_publisher.await_args.args == ("alice", "playlist.smil")

    async def test_second_create_for_same_owner_conflicts(self, session_service: SessionService):
        await session_service.create_session(playlist_params())

        with pytest.raises(ConflictError) as exc_info:
            await session_service.create_session(playlist_params())

        assert exc_info.value.errcode == AppErrorCode.E_SESSION_EXISTS.value

    async def test_concurrent_creates_yield_one_live_session(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
    ):
        results = await asyncio.gather(
            session_service.create_session(playlist_params()),
            session_service.create_session(playlist_params()),
            return_exceptions=True,
        )

        conflicts = [result for result in results if isinstance(result, ConflictError)]
        assert len(conflicts) == 1
        active = [s for s in session_store.sessions.values() if s.status in SessionState.active_states()]
        assert len(active) == 1

    async def test_store_constraint_holds_without_fast_path(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
    ):
        """The store rejects a second active session even if the pre-check was skipped."""
        first = await session_service.create_session(playlist_params())
        stored = await session_store.get(first.session.session_id)
        duplicate = stored.model_copy(update={"session_id": "ss_duplicate", "status": SessionState.STARTING})

        with pytest.raises(ConflictError):
            await session_store.insert(duplicate)

    async def test_other_owners_are_independent(self, session_service: SessionService):
        await session_service.create_session(playlist_params())

        result = await session_service.create_session(playlist_params(owner_id="u_bob", login="bob"))

        assert result.session.status == SessionState.LIVE

    async def test_stream_not_found_fails_session(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        media: AsyncMock,
    ):
        media.find_stream_for_owner.side_effect = None
        media.find_stream_for_owner.return_value = None

        with pytest.raises(VerificationTimeout):
            await session_service.create_session(playlist_params())

        (stored,) = session_store.sessions.values()
        assert stored.status == SessionState.FAILED
        assert stored.runtime.diagnostics is not None
        assert stored.runtime.diagnostics.match_count == 0

    async def test_unreadable_media_server_reply_fails_session(
        self,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
        session_settings: SessionSettings,
    ):
        """A proxy answering in HTML must not leave the session starting and the owner blocked."""
        media = MediaServerClient(
            "http://media.test:8087",
            settling_seconds=0,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy error</html>")),
        )
        service = SessionService(store=session_store, supervisor=supervisor, media=media, settings=session_settings)

        with pytest.raises(RemoteExecutionError):
            await service.create_session(playlist_params())

        (stored,) = session_store.sessions.values()
        assert stored.status == SessionState.FAILED
        assert "unreadable" in stored.runtime.diagnostics.error
        assert await session_store.find_active_for_owner("u_alice") is None

    async def test_scheduled_session_is_not_started(
        self,
        session_service: SessionService,
        media: AsyncMock,
    ):
        result = await session_service.create_session(playlist_params(immediate_start=False))

        assert result.session.status == SessionState.SCHEDULED
        media.start_stream_publisher.assert_not_awaited()

    async def test_start_scheduled_session(self, session_service: SessionService):
        scheduled = await session_service.create_session(playlist_params(immediate_start=False))

        result = await session_service.start_session(scheduled.session.session_id, owner_id="u_alice")

        assert result.session.status == SessionState.LIVE

    async def test_start_non_scheduled_session_rejected(self, session_service: SessionService):
        live = await session_service.create_session(playlist_params())

        with pytest.raises(InvalidStateTransition):
            await session_service.start_session(live.session.session_id, owner_id="u_alice")


class TestValidation:
    async def test_push_fields_rejected_on_playlist_relay(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
    ):
        with pytest.raises(InvalidRequest):
            await session_service.create_session(playlist_params(platform_id="youtube"))

        assert session_store.sessions == {}

    async def test_unknown_platform_rejected_before_side_effects(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
    ):
        with pytest.raises(InvalidProfile):
            await session_service.create_session(push_params(platform_id="myspace"))

        assert session_store.sessions == {}
        supervisor.start.assert_not_awaited()

    async def test_missing_stream_key_rejected(self, session_service: SessionService):
        with pytest.raises(InvalidProfile):
            await session_service.create_session(push_params(stream_key=None))

    async def test_invalid_push_target_rejected(self, session_service: SessionService):
        params = playlist_params(push_targets=[PushTarget(platform_id="facebook", stream_key=None)])

        with pytest.raises(InvalidProfile):
            await session_service.create_session(params)

    async def test_duplicate_push_entry_names_rejected(self, session_service: SessionService):
        params = playlist_params(
            push_targets=[
                PushTarget(platform_id="youtube", stream_key="a"),
                PushTarget(platform_id="youtube", stream_key="b"),
            ]
        )

        with pytest.raises(InvalidRequest):
            await session_service.create_session(params)

    async def test_unsafe_login_rejected(self, session_service: SessionService):
        with pytest.raises(InvalidRequest):
            await session_service.create_session(playlist_params(login="alice$(reboot)"))


class TestCreateExternalPush:
    async def test_launch_and_verify(
        self,
        session_service: SessionService,
        supervisor: AsyncMock,
    ):
        result = await session_service.create_session(push_params())

        assert result.session.status == SessionState.LIVE
        host_id, process_name, command = supervisor.start.await_args.args
        assert host_id == "default"
        assert process_name == f"alice_{result.session.session_id}"
        assert command.endswith("rtmp://a.rtmp.youtube.com/live2/yt-secret-key")
        supervisor.inspect.assert_awaited_once()

    async def test_stream_key_never_exposed(self, session_service: SessionService):
        result = await session_service.create_session(push_params())

        dumped = result.model_dump_json()
        assert "yt-secret-key" not in dumped
        assert result.session.runtime.command is not None
        assert "***" in result.session.runtime.command

    async def test_verification_zero_marks_failed_with_diagnostics(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
    ):
        """The transcoder is not listed after settling: FAILED, no end time, diagnostics kept."""
        supervisor.inspect.return_value = process_check(0)

        with pytest.raises(VerificationTimeout) as exc_info:
            await session_service.create_session(push_params())

        (stored,) = session_store.sessions.values()
        assert stored.status == SessionState.FAILED
        assert stored.ended_at is None
        diagnostics = stored.runtime.diagnostics
        assert diagnostics is not None
        assert diagnostics.match_count == 0
        assert diagnostics.check_command
        assert diagnostics.command and "yt-secret-key" not in diagnostics.command
        assert exc_info.value.details["match_count"] == 0

    async def test_launch_failure_marks_failed(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
    ):
        supervisor.start.side_effect = RemoteExecutionError("Remote host default unreachable")

        with pytest.raises(RemoteExecutionError):
            await session_service.create_session(push_params())

        (stored,) = session_store.sessions.values()
        assert stored.status == SessionState.FAILED
        supervisor.inspect.assert_not_awaited()

    async def test_failed_session_frees_the_owner(
        self,
        session_service: SessionService,
        supervisor: AsyncMock,
    ):
        supervisor.inspect.return_value = process_check(0)
        with pytest.raises(VerificationTimeout):
            await session_service.create_session(push_params())

        supervisor.inspect.return_value = process_check(1)
        result = await session_service.create_session(push_params())

        assert result.session.status == SessionState.LIVE


class TestFanOut:
    async def test_partial_push_failure_keeps_session_live(
        self,
        session_service: SessionService,
        media: AsyncMock,
    ):
        """Two of three push targets fail; the start still succeeds and names the failures."""

        async def configure(owner_login, entry):
            if entry.entry_name != "youtube":
                raise RemoteExecutionError(f"Media server rejected push target {entry.entry_name}")

        media.configure_push_target.side_effect = configure
        params = playlist_params(
            push_targets=[
                PushTarget(platform_id="youtube", stream_key="a"),
                PushTarget(platform_id="twitch", stream_key="b"),
                PushTarget(platform_id="vimeo", stream_key="c"),
            ]
        )

        result = await session_service.create_session(params)

        assert result.success is True
        assert result.session.status == SessionState.LIVE
        assert sorted(o.entry_name for o in result.push_outcomes if not o.success) == ["twitch", "vimeo"]
        assert result.partial_failure is not None
        assert result.partial_failure["errcode"] == AppErrorCode.E_PARTIAL_FANOUT.value
        assert sorted(result.partial_failure["failed_targets"]) == ["twitch", "vimeo"]
        assert len(result.session.runtime.push_outcomes) == 3

    async def test_disabled_targets_are_skipped(
        self,
        session_service: SessionService,
        media: AsyncMock,
    ):
        params = playlist_params(
            push_targets=[
                PushTarget(platform_id="youtube", stream_key="a"),
                PushTarget(platform_id="twitch", stream_key="b", enabled=False),
            ]
        )

        result = await session_service.create_session(params)

        assert [o.entry_name for o in result.push_outcomes] == ["youtube"]
        assert result.partial_failure is None
        media.configure_push_target.assert_awaited_once()


class TestStop:
    async def test_stop_then_status_reports_stopped(
        self,
        session_service: SessionService,
        supervisor: AsyncMock,
    ):
        started = await session_service.create_session(push_params())
        session_id = started.session.session_id

        stopped = await session_service.stop_session(session_id, owner_id="u_alice")
        status = await session_service.get_session_status(session_id, owner_id="u_alice")

        assert stopped.session.status == SessionState.STOPPED
        assert status.session.status == SessionState.STOPPED
        assert status.session.ended_at is not None
        supervisor.stop.assert_awaited_once_with("default", f"alice_{session_id}")

    async def test_stop_playlist_relay_disconnects_publisher(
        self,
        session_service: SessionService,
        media: AsyncMock,
    ):
        started = await session_service.create_session(playlist_params())

        await session_service.stop_session(started.session.session_id)

        media.stop_stream_publisher.assert_awaited_once_with("alice", "playlist.smil")

    async def test_stop_is_idempotent(self, session_service: SessionService, supervisor: AsyncMock):
        started = await session_service.create_session(push_params())
        session_id = started.session.session_id

        await session_service.stop_session(session_id)
        again = await session_service.stop_session(session_id)

        assert again.session.status == SessionState.STOPPED
        supervisor.stop.assert_awaited_once()

    async def test_stop_scheduled_session_touches_no_host(
        self,
        session_service: SessionService,
        media: AsyncMock,
    ):
        scheduled = await session_service.create_session(playlist_params(immediate_start=False))

        result = await session_service.stop_session(scheduled.session.session_id)

        assert result.session.status == SessionState.STOPPED
        media.stop_stream_publisher.assert_not_awaited()

    async def test_failed_stop_leaves_session_stopping(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
    ):
        started = await session_service.create_session(push_params())
        supervisor.stop.side_effect = RemoteExecutionError("Remote host default unreachable")

        with pytest.raises(RemoteExecutionError):
            await session_service.stop_session(started.session.session_id)

        stored = await session_store.get(started.session.session_id)
        assert stored.status == SessionState.STOPPING
        assert stored.ended_at is None

    async def test_retry_stop_from_stopping(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
    ):
        started = await session_service.create_session(push_params())
        supervisor.stop.side_effect = RemoteExecutionError("Remote host default unreachable")
        with pytest.raises(RemoteExecutionError):
            await session_service.stop_session(started.session.session_id)

        supervisor.stop.side_effect = None
        result = await session_service.stop_session(started.session.session_id)

        assert result.session.status == SessionState.STOPPED

    async def test_stop_while_starting_is_honored_after_verification(
        self,
        session_service: SessionService,
        session_store: InMemorySessionStore,
        supervisor: AsyncMock,
    ):
        """A stop issued mid-start does not abort the start; the session stops right after it."""
        verification_started = asyncio.Event()
        release_verification = asyncio.Event()

        async def slow_inspect(*args, **kwargs):
            verification_started.set()
            await release_verification.wait()
            return process_check(1)

        supervisor.inspect.side_effect = slow_inspect

        start_task = asyncio.create_task(session_service.create_session(push_params()))
        await verification_started.wait()
        (starting,) = session_store.sessions.values()
        assert starting.status == SessionState.STARTING

        stop_result = await session_service.stop_session(starting.session_id)
        assert stop_result.session.status == SessionState.STARTING
        assert stop_result.session.runtime.stop_requested is True

        release_verification.set()
        start_result = await start_task

        assert start_result.session.status == SessionState.STOPPED
        supervisor.stop.assert_awaited_once()
        stored = await session_store.get(starting.session_id)
        assert [record.to_state for record in stored.transitions][-3:] == [
            SessionState.LIVE,
            SessionState.STOPPING,
            SessionState.STOPPED,
        ]

    async def test_other_owner_cannot_stop(self, session_service: SessionService):
        started = await session_service.create_session(playlist_params())

        with pytest.raises(SessionNotFound):
            await session_service.stop_session(started.session.session_id, owner_id="u_mallory")
