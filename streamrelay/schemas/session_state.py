"""Common enums used across schemas."""

from enum import Enum


class SessionState(str, Enum):
    """Session lifecycle states.

    State Transition Flow:

    SCHEDULED → STARTING → LIVE → STOPPING → STOPPED
        ↓           ↓        ↓        ↓
      STOPPED     FAILED   FAILED   FAILED

    State Descriptions:
    - SCHEDULED: Session created, nothing provisioned yet.
    - STARTING: Provisioning issued (transcoder spawned or stream publisher connected),
      waiting for verification.
    - LIVE: Backing process or stream verified running.
    - STOPPING: Stop requested; the record stays here until termination is confirmed.
    - STOPPED: Backing process confirmed terminated.
    - FAILED: Provisioning or verification failed, or the backing process disappeared.

    Terminal states (no further transitions): STOPPED, FAILED
    """

    SCHEDULED = "scheduled"
    STARTING = "starting"
    LIVE = "live"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def active_states(cls) -> list["SessionState"]:
        """States covered by the one-active-session-per-owner constraint."""
        return [SessionState.STARTING, SessionState.LIVE]

    @classmethod
    def terminal_states(cls) -> list["SessionState"]:
        return [SessionState.STOPPED, SessionState.FAILED]


class SessionKind(str, Enum):
    """What realizes a session.

    - PLAYLIST_RELAY: the media server's stream publisher relays a pre-built playlist.
    - EXTERNAL_PUSH: a remote transcoder process pushes a source to a third-party platform.
    """

    PLAYLIST_RELAY = "playlist_relay"
    EXTERNAL_PUSH = "external_push"

    def __str__(self) -> str:
        return self.value


__all__ = ["SessionKind", "SessionState"]
