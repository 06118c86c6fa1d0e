from datetime import datetime

from pydantic import BaseModel, Field

from .session_state import SessionState


class PushTarget(BaseModel):
    """One external platform a session relays to, besides the primary relay."""

    platform_id: str = Field(description="Catalog id of the target platform")
    stream_key: str | None = Field(default=None, description="Platform stream key")
    destination_ref: str | None = Field(
        default=None, description="Override of the platform relay endpoint"
    )
    entry_name: str | None = Field(
        default=None, description="Map entry name on the media server; defaults to the platform id"
    )
    enabled: bool = True


class PushTargetOutcome(BaseModel):
    platform_id: str
    entry_name: str
    success: bool
    error: str | None = None


class LaunchDiagnostics(BaseModel):
    """What was attempted and what was observed when bringing a session up or down."""

    command: str | None = Field(default=None, description="Command issued, stream keys redacted")
    check_command: str | None = Field(default=None, description="Verification command issued")
    check_output: str | None = Field(default=None, description="Raw verification output")
    match_count: int | None = Field(default=None, description="Matching processes or streams found")
    stream_name: str | None = Field(default=None, description="Media server stream matched")
    error: str | None = None


class TransitionRecord(BaseModel):
    from_state: SessionState | None = None
    to_state: SessionState
    at: datetime
    reason: str | None = None


class SessionRuntime(BaseModel):
    """Provider-side handles of a session."""

    host_id: str | None = Field(default=None, description="Remote host running the transcoder")
    process_name: str | None = Field(
        default=None, description="Detachable session name `{owner_login}_{session_id}`"
    )
    match_hints: list[str] = Field(
        default_factory=list, description="Extra filters used when listing remote processes"
    )
    command: str | None = Field(default=None, description="Transcoder invocation, stream keys redacted")
    application: str | None = Field(default=None, description="Media server application name")
    playlist_file: str | None = Field(default=None, description="Stream publisher playlist file")
    push_outcomes: list[PushTargetOutcome] = Field(default_factory=list)
    diagnostics: LaunchDiagnostics | None = None
    paused: bool = False
    stop_requested: bool = Field(
        default=False, description="Stop arrived while starting; stop right after verification"
    )
