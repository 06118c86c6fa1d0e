from pydantic import BaseModel, Field

from streamrelay.domain.live.platforms.catalog import PlatformProfile, TransportSecurity, VideoProfileHint
from streamrelay.schemas import PushTarget, SessionKind


class PushTargetIn(BaseModel):
    platform_id: str = Field(description="Catalog id of the target platform")
    stream_key: str | None = Field(default=None, description="Platform stream key")
    destination_ref: str | None = Field(default=None, description="Override of the platform relay endpoint")
    entry_name: str | None = Field(default=None, description="Map entry name, defaults to the platform id")
    enabled: bool = True

    def to_push_target(self) -> PushTarget:
        return PushTarget(**self.model_dump())


class StartSessionIn(BaseModel):
    kind: SessionKind = Field(description="playlist_relay or external_push")
    source_ref: str = Field(description="Input URL or playlist reference")
    destination_ref: str | None = Field(default=None, description="Output base URL (external_push)")
    platform_id: str | None = Field(default=None, description="Catalog id (external_push)")
    stream_key: str | None = Field(default=None, description="Platform stream key (external_push)")
    push_targets: list[PushTargetIn] = Field(default_factory=list, description="Additional relay targets")
    host_id: str | None = Field(default=None, description="Remote host for the transcoder")
    playlist_file: str | None = Field(default=None, description="Playlist file (playlist_relay)")
    immediate_start: bool = Field(default=True, description="Start now, or only schedule")


class SessionIdIn(BaseModel):
    session_id: str = Field(description="Session identifier")


class RemoveSessionOut(BaseModel):
    session_id: str
    deleted: bool


class PlatformOut(BaseModel):
    id: str
    display_name: str
    requires_stream_key: bool
    transport_security: TransportSecurity
    video_profile_hint: VideoProfileHint

    @classmethod
    def from_profile(cls, profile: PlatformProfile) -> "PlatformOut":
        return cls(
            id=profile.id,
            display_name=profile.display_name,
            requires_stream_key=profile.requires_stream_key,
            transport_security=profile.transport_security,
            video_profile_hint=profile.video_profile_hint,
        )
