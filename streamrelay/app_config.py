from pydantic import BaseModel

from streamrelay.config import config


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get_bool("DEBUG")

    # Media server control API
    MEDIA_SERVER_BASE_URL: str = config.get("MEDIA_SERVER_BASE_URL", "http://localhost:8087").strip()
    MEDIA_SERVER_USERNAME: str | None = (config.get("MEDIA_SERVER_USERNAME") or "").strip() or None
    MEDIA_SERVER_PASSWORD: str | None = (config.get("MEDIA_SERVER_PASSWORD") or "").strip() or None
    # Fallback credentials when no tenant-specific credentials are configured
    MEDIA_SERVER_DEFAULT_USERNAME: str = config.get("MEDIA_SERVER_DEFAULT_USERNAME", "admin").strip()
    MEDIA_SERVER_DEFAULT_PASSWORD: str = config.get("MEDIA_SERVER_DEFAULT_PASSWORD", "").strip()
    MEDIA_SERVER_SERVER_NAME: str = config.get("MEDIA_SERVER_SERVER_NAME", "_defaultServer_").strip()
    MEDIA_SERVER_VHOST: str = config.get("MEDIA_SERVER_VHOST", "_defaultVHost_").strip()
    MEDIA_SERVER_LIVE_APPLICATION: str = config.get("MEDIA_SERVER_LIVE_APPLICATION", "live").strip()
    MEDIA_SERVER_PLAYLIST_FILE: str = config.get(
        "MEDIA_SERVER_PLAYLIST_FILE", "playlists_agendamentos.smil"
    ).strip()
    MEDIA_SERVER_PUBLIC_HOST: str = config.get("MEDIA_SERVER_PUBLIC_HOST", "localhost").strip()
    MEDIA_SERVER_STORAGE_ROOT: str = config.get("MEDIA_SERVER_STORAGE_ROOT", "/home/streaming").strip()
    MEDIA_SERVER_READ_TIMEOUT_SECONDS: float = float(
        (config.get("MEDIA_SERVER_READ_TIMEOUT_SECONDS") or "").strip() or 10
    )
    MEDIA_SERVER_WRITE_TIMEOUT_SECONDS: float = float(
        (config.get("MEDIA_SERVER_WRITE_TIMEOUT_SECONDS") or "").strip() or 15
    )
    MEDIA_SERVER_SETTLING_SECONDS: float = float(
        (config.get("MEDIA_SERVER_SETTLING_SECONDS") or "").strip() or 3
    )
    MEDIA_SERVER_DEFAULT_BITRATE: int = int(
        (config.get("MEDIA_SERVER_DEFAULT_BITRATE") or "").strip() or 2500
    )

    # Remote transcoding hosts
    REMOTE_DEFAULT_HOST_ID: str = config.get("REMOTE_DEFAULT_HOST_ID", "default").strip()
    REMOTE_SSH_IDENTITY_FILE: str | None = (config.get("REMOTE_SSH_IDENTITY_FILE") or "").strip() or None
    REMOTE_SSH_CONNECT_TIMEOUT_SECONDS: int = int(
        (config.get("REMOTE_SSH_CONNECT_TIMEOUT_SECONDS") or "").strip() or 10
    )
    REMOTE_COMMAND_TIMEOUT_SECONDS: float = float(
        (config.get("REMOTE_COMMAND_TIMEOUT_SECONDS") or "").strip() or 20
    )
    TRANSCODER_BINARY: str = config.get("TRANSCODER_BINARY", "/usr/local/bin/ffmpeg").strip()
    PROCESS_SETTLING_SECONDS: float = float(
        (config.get("PROCESS_SETTLING_SECONDS") or "").strip() or 5
    )

    # Reconciliation
    SWEEP_ON_STARTUP: bool = config.get_bool("SWEEP_ON_STARTUP", True)
    SWEEP_ON_SHUTDOWN: bool = config.get_bool("SWEEP_ON_SHUTDOWN", True)
    SHUTDOWN_SWEEP_TIMEOUT_SECONDS: float = float(
        (config.get("SHUTDOWN_SWEEP_TIMEOUT_SECONDS") or "").strip() or 30
    )

    @property
    def media_server_credentials(self) -> tuple[str, str]:
        if self.MEDIA_SERVER_USERNAME and self.MEDIA_SERVER_PASSWORD:
            return self.MEDIA_SERVER_USERNAME, self.MEDIA_SERVER_PASSWORD
        return self.MEDIA_SERVER_DEFAULT_USERNAME, self.MEDIA_SERVER_DEFAULT_PASSWORD


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
