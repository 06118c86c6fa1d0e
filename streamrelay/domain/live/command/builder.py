"""Transcoder invocation builder.

`build_invocation` is a pure function: it validates its inputs, composes the
destination URL and returns the argument vector together with the name under
which the process is supervised. It never executes anything.
"""

import re
import shlex
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from streamrelay.domain.live.platforms.catalog import (
    PlatformProfile,
    TransportSecurity,
    VideoProfileHint,
)
from streamrelay.utils.app_errors import InvalidProfile, InvalidRequest

DEFAULT_TRANSCODER_BINARY = "/usr/local/bin/ffmpeg"
REDACTED = "***"

# Owner logins end up in process names and host-side grep filters
_LOGIN_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass(frozen=True)
class InvocationSpec:
    argv: tuple[str, ...]
    process_name: str
    policy: VideoProfileHint
    destination: str
    match_hints: tuple[str, ...] = ()
    secrets: tuple[str, ...] = field(default=(), repr=False)

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    @property
    def redacted_command(self) -> str:
        return redact(self.command, self.secrets)


def redact(text: str, secrets: tuple[str, ...] | list[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def mask_destination(destination: str | None) -> str | None:
    """Hide the stream key, the last path segment of `scheme://host/app/key`."""
    if not destination:
        return destination
    parts = urlsplit(destination)
    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) < 2:
        return destination
    head, _, tail = destination.rpartition(segments[-1])
    return f"{head}{REDACTED}{tail}"


def build_process_name(owner_login: str, session_id: str) -> str:
    if not owner_login or not _LOGIN_RE.match(owner_login):
        raise InvalidRequest(f"Invalid owner login: {owner_login!r}")
    if not session_id or not _LOGIN_RE.match(session_id):
        raise InvalidRequest(f"Invalid session id: {session_id!r}")
    return f"{owner_login}_{session_id}"


def compose_destination(
    profile: PlatformProfile,
    destination_ref: str | None,
    stream_key: str | None,
) -> str:
    """Join the relay endpoint and the stream key with a single `/`."""
    base = (destination_ref or profile.relay_endpoint_template or "").strip()
    if not base:
        raise InvalidProfile(
            f"Platform {profile.id} needs a destination",
            details={"platform_id": profile.id},
        )

    key = (stream_key or "").strip()
    if profile.requires_stream_key and not key:
        raise InvalidProfile(
            f"Platform {profile.id} requires a stream key",
            details={"platform_id": profile.id},
        )

    destination = f"{base.rstrip('/')}/{key.lstrip('/')}" if key else base

    scheme = urlsplit(destination).scheme.lower()
    if scheme not in ("rtmp", "rtmps"):
        raise InvalidProfile(
            f"Unsupported destination scheme for {profile.id}: {scheme or 'none'}",
            details={"platform_id": profile.id},
        )
    if profile.transport_security == TransportSecurity.SECURE and scheme != "rtmps":
        raise InvalidProfile(
            f"Platform {profile.id} requires a secure (rtmps) destination",
            details={"platform_id": profile.id},
        )
    return destination


def build_invocation(
    source_ref: str,
    destination_ref: str | None,
    profile: PlatformProfile,
    *,
    owner_login: str,
    session_id: str,
    stream_key: str | None = None,
    binary: str = DEFAULT_TRANSCODER_BINARY,
) -> InvocationSpec:
    source = (source_ref or "").strip()
    if not source:
        raise InvalidRequest("source_ref is required")

    process_name = build_process_name(owner_login, session_id)
    destination = compose_destination(profile, destination_ref, stream_key)
    policy = profile.policy

    argv = (
        binary,
        "-re",
        "-i", source,
        *policy.codec_args,
        "-threads", "1",
        "-f", "flv",
        destination,
    )  # fmt: skip

    match_hints = [owner_login]
    destination_host = urlsplit(destination).hostname
    if destination_host:
        match_hints.append(destination_host)

    return InvocationSpec(
        argv=argv,
        process_name=process_name,
        policy=policy.hint,
        destination=destination,
        match_hints=tuple(match_hints),
        secrets=_stream_secrets(destination, stream_key),
    )


def _stream_secrets(destination: str, stream_key: str | None) -> tuple[str, ...]:
    key = (stream_key or "").strip()
    if key:
        return (key,)
    # Custom destinations embed the key as the last path segment
    segments = [segment for segment in urlsplit(destination).path.split("/") if segment]
    return (segments[-1],) if len(segments) >= 2 else ()
