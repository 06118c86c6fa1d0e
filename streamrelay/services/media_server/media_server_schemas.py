"""Request and response bodies of the media server REST control API (v2)."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from streamrelay.utils.app_errors import InvalidProfile

DEFAULT_APP_INSTANCE = "_definst_"
DEFAULT_PACKETIZERS = "cupertinostreamingpacketizer,mpegdashstreamingpacketizer,sanjosestreamingpacketizer,smoothstreamingpacketizer"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ApplicationStreamConfig(_CamelModel):
    stream_type: str = Field(default="live", alias="streamType")
    storage_dir: str = Field(..., alias="storageDir")
    create_storage_dir: bool = Field(default=True, alias="createStorageDir")
    live_stream_packetizer: str = Field(default=DEFAULT_PACKETIZERS, alias="liveStreamPacketizer")


class ApplicationModule(_CamelModel):
    name: str
    description: str
    class_name: str = Field(..., alias="class")
    order: int


class ApplicationProperty(_CamelModel):
    name: str
    value: str
    type: str = "String"
    section: str = "/Root/Application"


class ApplicationConfig(_CamelModel):
    """Body of the application create call."""

    name: str
    app_type: str = Field(default="Live", alias="appType")
    description: str = ""
    stream_config: ApplicationStreamConfig = Field(..., alias="streamConfig")
    modules: dict[str, list[ApplicationModule]] = Field(default_factory=dict)
    properties: dict[str, list[ApplicationProperty]] = Field(default_factory=dict)

    @classmethod
    def for_owner(
        cls,
        owner_login: str,
        *,
        storage_root: str,
        playlist_file: str,
        max_bitrate: int,
    ) -> ApplicationConfig:
        return cls(
            name=owner_login,
            description=f"Live application for {owner_login}",
            stream_config=ApplicationStreamConfig(storage_dir=f"{storage_root.rstrip('/')}/{owner_login}"),
            modules={
                "moduleList": [
                    ApplicationModule(
                        name="base",
                        description="Base",
                        class_name="com.wowza.wms.module.ModuleCore",
                        order=0,
                    ),
                    ApplicationModule(
                        name="streamPublisher",
                        description="Playlists",
                        class_name="com.wowza.wms.plugin.streampublisher.ModuleStreamPublisher",
                        order=1,
                    ),
                ]
            },
            properties={
                "propertyList": [
                    ApplicationProperty(name="streamPublisherSmilFile", value=playlist_file),
                    ApplicationProperty(
                        name="limitPublishedStreamBandwidthMaxBitrate",
                        value=str(max_bitrate),
                        type="Integer",
                    ),
                ]
            },
        )


class StreamPublisherConnectBody(_CamelModel):
    connect_app_name: str = Field(..., alias="connectAppName")
    app_instance: str = Field(default=DEFAULT_APP_INSTANCE, alias="appInstance")
    media_caster_type: str = Field(default="rtp", alias="mediaCasterType")
    stream_name: str = Field(..., alias="streamName")
    session_name: str = Field(..., alias="sessionName")


class PushPublishEntry(_CamelModel):
    """One push-publish map entry: relays an application stream to an external endpoint."""

    server_name: str = Field(default="_defaultServer_", alias="serverName")
    app_name: str = Field(..., alias="appName")
    app_instance: str = Field(default=DEFAULT_APP_INSTANCE, alias="appInstance")
    stream_name: str = Field(..., alias="streamName")
    entry_name: str = Field(..., alias="entryName")
    profile: str = "rtmp"
    host: str
    port: int = 1935
    application: str
    stream_file: str = Field(..., alias="streamFile")
    send_ssl: bool = Field(default=False, alias="sendSSL")
    user_name: str = Field(default="", alias="userName")
    password: str = ""
    enabled: bool = True

    @classmethod
    def from_destination(
        cls,
        *,
        owner_login: str,
        entry_name: str,
        destination: str,
        server_name: str = "_defaultServer_",
    ) -> PushPublishEntry:
        """Split `scheme://host[:port]/application/streamFile` into a map entry."""
        parts = urlsplit(destination)
        segments = [segment for segment in parts.path.split("/") if segment]
        if not parts.hostname or len(segments) < 2:
            raise InvalidProfile(
                f"Destination for {entry_name} must look like rtmp://host/application/key",
                details={"entry_name": entry_name},
            )

        secure = parts.scheme.lower() == "rtmps"
        return cls(
            server_name=server_name,
            app_name=owner_login,
            stream_name=owner_login,
            entry_name=entry_name,
            host=parts.hostname,
            port=parts.port or (443 if secure else 1935),
            application="/".join(segments[:-1]),
            stream_file=segments[-1],
            send_ssl=secure,
        )


class IncomingStream(_CamelModel):
    name: str
    is_connected: bool | None = Field(default=None, alias="isConnected")
    source_ip: str | None = Field(default=None, alias="sourceIp")
    application_instance: str | None = Field(default=None, alias="applicationInstance")
    connections_current: int | None = Field(
        default=None,
        alias="connectionsCurrent",
        validation_alias=AliasChoices("connectionsCurrent", "connections_current"),
    )
    messages_in_bytes_rate: float | None = Field(default=None, alias="messagesInBytesRate")
    time_running: float | None = Field(default=None, alias="timeRunning")


class IncomingStreamList(_CamelModel):
    incoming_streams: list[IncomingStream] = Field(default_factory=list, alias="incomingStreams")


class MonitoringSnapshot(_CamelModel):
    connections_current: int = Field(default=0, alias="connectionsCurrent")
    messages_in_bytes_rate: float = Field(default=0.0, alias="messagesInBytesRate")
    messages_out_bytes_rate: float = Field(default=0.0, alias="messagesOutBytesRate")
    time_running: float = Field(default=0.0, alias="timeRunning")


class StreamStatistics(BaseModel):
    """Advisory statistics; all zero when the media server could not be read."""

    viewers: int = 0
    throughput_bytes_per_sec: float = 0.0
    bitrate_kbps: int = 0
    uptime_seconds: int = 0
    uptime: str = "00:00:00"
    is_active: bool = False
    available: bool = False

    @classmethod
    def from_snapshot(cls, snapshot: MonitoringSnapshot) -> StreamStatistics:
        uptime_seconds = int(snapshot.time_running or 0)
        return cls(
            viewers=snapshot.connections_current,
            throughput_bytes_per_sec=snapshot.messages_in_bytes_rate,
            bitrate_kbps=int(snapshot.messages_in_bytes_rate * 8 / 1000),
            uptime_seconds=uptime_seconds,
            uptime=format_uptime(uptime_seconds),
            is_active=snapshot.connections_current > 0,
            available=True,
        )


class ConnectionStatus(BaseModel):
    success: bool
    status_code: int | None = None
    message: str


def format_uptime(seconds: float) -> str:
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
