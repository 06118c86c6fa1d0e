"""Session domain models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from streamrelay.app_config import get_app_environ_config
from streamrelay.domain.live.command.builder import mask_destination
from streamrelay.schemas import (
    PushTarget,
    PushTargetOutcome,
    SessionKind,
    SessionRuntime,
    SessionState,
    StreamSession,
    TransitionRecord,
)


class SessionSettings(BaseModel):
    """Tunables of the orchestrator, read from the app config by default."""

    process_settling_seconds: float = 5
    default_host_id: str = "default"
    transcoder_binary: str = "/usr/local/bin/ffmpeg"
    playlist_file: str = "playlists_agendamentos.smil"
    public_host: str = "localhost"

    @classmethod
    def from_app_config(cls) -> "SessionSettings":
        cfg = get_app_environ_config()
        return cls(
            process_settling_seconds=cfg.PROCESS_SETTLING_SECONDS,
            default_host_id=cfg.REMOTE_DEFAULT_HOST_ID,
            transcoder_binary=cfg.TRANSCODER_BINARY,
            playlist_file=cfg.MEDIA_SERVER_PLAYLIST_FILE,
            public_host=cfg.MEDIA_SERVER_PUBLIC_HOST,
        )


class SessionCreateParams(BaseModel):
    """Parameters for creating a session."""

    owner_id: str
    owner_login: str
    kind: SessionKind
    source_ref: str
    destination_ref: str | None = None
    platform_id: str | None = None
    stream_key: str | None = None
    push_targets: list[PushTarget] = Field(default_factory=list)
    host_id: str | None = None
    playlist_file: str | None = None
    immediate_start: bool = True


class PushTargetView(BaseModel):
    platform_id: str
    entry_name: str | None = None
    enabled: bool = True


class SessionResponse(BaseModel):
    """Session as shown to callers; stream keys are never included."""

    session_id: str
    owner_id: str
    owner_login: str
    kind: SessionKind
    status: SessionState

    source_ref: str
    destination_ref: str | None = None
    platform_id: str | None = None
    push_targets: list[PushTargetView] = Field(default_factory=list)

    runtime: SessionRuntime = Field(default_factory=SessionRuntime)
    transitions: list[TransitionRecord] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @classmethod
    def from_session(cls, session: StreamSession) -> "SessionResponse":
        return cls(
            **session.model_dump(exclude={"stream_key", "push_targets", "destination_ref", "version"}),
            destination_ref=mask_destination(session.destination_ref),
            push_targets=[
                PushTargetView(platform_id=t.platform_id, entry_name=t.entry_name, enabled=t.enabled)
                for t in session.push_targets
            ],
        )


class SessionStartResult(BaseModel):
    success: bool = True
    message: str
    session: SessionResponse
    push_outcomes: list[PushTargetOutcome] = Field(default_factory=list)
    partial_failure: dict[str, Any] | None = Field(
        default=None, description="Set when some push targets failed while the session is live"
    )


class SessionStopResult(BaseModel):
    success: bool = True
    message: str
    session: SessionResponse


class SessionStatusResponse(BaseModel):
    session: SessionResponse
    observed_running: bool | None = Field(
        default=None, description="Result of the live cross-check, None when not performed"
    )
    warning: str | None = None


class SessionListResponse(BaseModel):
    """Session list response with pagination."""

    sessions: list[SessionResponse]
    next_cursor: str | None = None


class PlayerUrls(BaseModel):
    hls: str
    hls_playlist: str
    rtmp: str
    rtsp: str
    dash: str


class SweepMode(str, Enum):
    STARTUP = "startup"
    SHUTDOWN = "shutdown"

    def __str__(self) -> str:
        return self.value


class SweepReport(BaseModel):
    mode: SweepMode
    owner_id: str | None = None
    checked: int = 0
    promoted: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    stopped: list[str] = Field(default_factory=list)
    left_stopping: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    timed_out: bool = False
