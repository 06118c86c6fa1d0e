"""Target platform catalog and transcoding policies.

Adding a platform is a data change: append a `PlatformProfile` to
`PLATFORM_PROFILES`. Encoding constants live in `TRANSCODE_POLICIES`, keyed by
the profile's video hint.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from streamrelay.utils.app_errors import InvalidProfile


class VideoProfileHint(str, Enum):
    PASSTHROUGH = "passthrough"
    VERTICAL_CROP = "vertical_crop"
    DEFAULT_TRANSCODE = "default_transcode"

    def __str__(self) -> str:
        return self.value


class TransportSecurity(str, Enum):
    PLAIN = "plain"
    SECURE = "secure"

    def __str__(self) -> str:
        return self.value


class TranscodePolicy(BaseModel):
    """Transcoder arguments placed between the input and the output container."""

    model_config = ConfigDict(frozen=True)

    hint: VideoProfileHint
    codec_args: tuple[str, ...]


class PlatformProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    relay_endpoint_template: str | None = None
    requires_stream_key: bool = True
    transport_security: TransportSecurity = TransportSecurity.PLAIN
    video_profile_hint: VideoProfileHint = VideoProfileHint.PASSTHROUGH

    @property
    def policy(self) -> TranscodePolicy:
        return TRANSCODE_POLICIES[self.video_profile_hint]


VERTICAL_CROP_FILTER = "crop=ih*(9/16):ih"

TRANSCODE_POLICIES: dict[VideoProfileHint, TranscodePolicy] = {
    VideoProfileHint.PASSTHROUGH: TranscodePolicy(
        hint=VideoProfileHint.PASSTHROUGH,
        codec_args=(
            "-c:v", "copy",
            "-c:a", "copy",
            "-bsf:a", "aac_adtstoasc",
        ),
    ),
    # Short-form platforms: centered 9:16 crop, 24 fps, 3 Mbps target under a 3.5 Mbps ceiling
    VideoProfileHint.VERTICAL_CROP: TranscodePolicy(
        hint=VideoProfileHint.VERTICAL_CROP,
        codec_args=(
            "-vf", VERTICAL_CROP_FILTER,
            "-vcodec", "libx264",
            "-preset", "ultrafast",
            "-crf", "21",
            "-r", "24",
            "-g", "48",
            "-b:v", "3000000",
            "-maxrate", "3500000",
            "-bufsize", "2250000",
            "-acodec", "aac",
            "-b:a", "128k",
            "-ar", "44100",
        ),
    ),
    VideoProfileHint.DEFAULT_TRANSCODE: TranscodePolicy(
        hint=VideoProfileHint.DEFAULT_TRANSCODE,
        codec_args=(
            "-vcodec", "libx264",
            "-preset", "veryfast",
            "-tune", "zerolatency",
            "-b:v", "2500000",
            "-maxrate", "2500000",
            "-bufsize", "5000000",
            "-g", "60",
            "-acodec", "aac",
            "-b:a", "128k",
            "-ar", "44100",
        ),
    ),
}  # fmt: skip

PLATFORM_PROFILES: tuple[PlatformProfile, ...] = (
    PlatformProfile(
        id="youtube",
        display_name="YouTube",
        relay_endpoint_template="rtmp://a.rtmp.youtube.com/live2/",
    ),
    PlatformProfile(
        id="facebook",
        display_name="Facebook",
        relay_endpoint_template="rtmps://live-api-s.facebook.com:443/rtmp/",
        transport_security=TransportSecurity.SECURE,
    ),
    PlatformProfile(
        id="twitch",
        display_name="Twitch",
        relay_endpoint_template="rtmp://live-dfw.twitch.tv/app/",
    ),
    PlatformProfile(
        id="periscope",
        display_name="Periscope",
        relay_endpoint_template="rtmp://ca.pscp.tv:80/x/",
    ),
    PlatformProfile(
        id="vimeo",
        display_name="Vimeo",
        relay_endpoint_template="rtmp://rtmp.cloud.vimeo.com/live/",
    ),
    PlatformProfile(
        id="steam",
        display_name="Steam",
        relay_endpoint_template="rtmp://ingest-any-ord1.broadcast.steamcontent.com/app/",
    ),
    PlatformProfile(
        id="tiktok",
        display_name="TikTok",
        relay_endpoint_template="rtmp://live.tiktok.com/live/",
        video_profile_hint=VideoProfileHint.VERTICAL_CROP,
    ),
    PlatformProfile(
        id="kwai",
        display_name="Kwai",
        relay_endpoint_template="rtmp://live.kwai.com/live/",
        video_profile_hint=VideoProfileHint.VERTICAL_CROP,
    ),
    # Custom destinations carry their own endpoint (and usually the key) in destination_ref
    PlatformProfile(
        id="custom",
        display_name="Custom RTMP",
        requires_stream_key=False,
    ),
    PlatformProfile(
        id="custom-transcode",
        display_name="Custom RTMP (transcoded)",
        requires_stream_key=False,
        video_profile_hint=VideoProfileHint.DEFAULT_TRANSCODE,
    ),
)

PLATFORM_CATALOG: dict[str, PlatformProfile] = {profile.id: profile for profile in PLATFORM_PROFILES}


def get_platform_profile(platform_id: str) -> PlatformProfile:
    profile = PLATFORM_CATALOG.get((platform_id or "").strip().lower())
    if profile is None:
        raise InvalidProfile(
            f"Unknown platform: {platform_id}",
            details={"platform_id": platform_id, "known": sorted(PLATFORM_CATALOG)},
        )
    return profile


def list_platform_profiles() -> list[PlatformProfile]:
    return list(PLATFORM_PROFILES)
