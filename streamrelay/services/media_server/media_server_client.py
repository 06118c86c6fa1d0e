"""Media server REST control client.

Typed wrapper over the media engine's v2 control API. Credentials are resolved
once at construction and sent as HTTP Basic auth on every call. Reads time out
after `read_timeout` seconds and mutating calls after `write_timeout`; a
timed-out call is a failed call, surfaced as `RemoteExecutionError`.
"""

import asyncio
from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel

from streamrelay.app_config import get_app_environ_config
from streamrelay.utils.app_errors import RemoteExecutionError

from .media_server_schemas import (
    DEFAULT_APP_INSTANCE,
    ApplicationConfig,
    ConnectionStatus,
    IncomingStream,
    IncomingStreamList,
    MonitoringSnapshot,
    PushPublishEntry,
    StreamPublisherConnectBody,
    StreamStatistics,
)

T = TypeVar("T", bound=BaseModel)


def match_stream_for_owner(streams: list[IncomingStream], owner_login: str) -> IncomingStream | None:
    """Find the owner's stream among all incoming streams.

    The media server does not index streams by owner. Exact names
    (`{login}` or `{login}_live`) win over names merely containing the login;
    within a tier the first stream listed wins.
    """
    if not owner_login:
        return None

    exact_names = {owner_login, f"{owner_login}_live"}
    for stream in streams:
        if stream.name in exact_names:
            return stream

    # TODO: require a delimiter around the login; plain substring can match another owner's stream
    for stream in streams:
        if owner_login in stream.name:
            return stream

    return None


class MediaServerClient:
    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        server_name: str | None = None,
        vhost: str | None = None,
        live_application: str | None = None,
        read_timeout: float | None = None,
        write_timeout: float | None = None,
        settling_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        cfg = get_app_environ_config()
        default_username, default_password = cfg.media_server_credentials

        self.base_url = (base_url or cfg.MEDIA_SERVER_BASE_URL).rstrip("/")
        self._auth = httpx.BasicAuth(username or default_username, password or default_password)
        self.server_name = server_name or cfg.MEDIA_SERVER_SERVER_NAME
        self.vhost = vhost or cfg.MEDIA_SERVER_VHOST
        self.live_application = live_application or cfg.MEDIA_SERVER_LIVE_APPLICATION
        self.read_timeout = read_timeout if read_timeout is not None else cfg.MEDIA_SERVER_READ_TIMEOUT_SECONDS
        self.write_timeout = (
            write_timeout if write_timeout is not None else cfg.MEDIA_SERVER_WRITE_TIMEOUT_SECONDS
        )
        self.settling_seconds = (
            settling_seconds if settling_seconds is not None else cfg.MEDIA_SERVER_SETTLING_SECONDS
        )
        self._transport = transport

        logger.info(f"MediaServerClient initialized: base_url={self.base_url}")

    @property
    def _server_path(self) -> str:
        return f"/v2/servers/{self.server_name}"

    def _application_path(self, application: str) -> str:
        return f"{self._server_path}/applications/{application}"

    def _incoming_streams_path(self, application: str, instance: str = DEFAULT_APP_INSTANCE) -> str:
        return (
            f"{self._server_path}/vhosts/{self.vhost}/applications/{application}"
            f"/instances/{instance}/incomingstreams"
        )

    def _stream_file_action_path(self, owner_login: str, playlist_file: str, action: str) -> str:
        return f"{self._application_path(owner_login)}/streamfiles/{playlist_file}/actions/{action}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        mutating: bool = False,
    ) -> httpx.Response:
        timeout = self.write_timeout if mutating else self.read_timeout
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=self._auth,
                headers={"Accept": "application/json"},
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json, timeout=timeout)
        except httpx.TimeoutException as e:
            logger.warning(f"Media server {method} {path} timed out after {timeout}s")
            raise RemoteExecutionError(
                f"Media server call timed out: {method} {path}",
                details={"path": path, "timeout": timeout},
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Media server {method} {path} failed: {type(e).__name__}: {e}")
            raise RemoteExecutionError(
                f"Media server unreachable: {method} {path}",
                details={"path": path, "error": type(e).__name__},
            ) from e

        logger.debug(f"Media server {method} {path} -> {response.status_code}")
        return response

    @staticmethod
    def _ensure_success(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise RemoteExecutionError(
            f"Media server rejected {action}: HTTP {response.status_code}",
            details={"status_code": response.status_code, "body": response.text[:500]},
        )

    @staticmethod
    def _parse(response: httpx.Response, model: type[T], action: str) -> T:
        try:
            return model.model_validate(response.json())
        except ValueError as e:
            logger.warning(f"Media server returned an unreadable body for {action}: {response.text[:200]}")
            raise RemoteExecutionError(
                f"Media server returned an unreadable reply to {action}",
                details={"status_code": response.status_code, "body": response.text[:500]},
            ) from e

    async def test_connection(self) -> ConnectionStatus:
        try:
            response = await self._request("GET", f"{self._server_path}/status")
        except RemoteExecutionError as e:
            return ConnectionStatus(success=False, message=e.errmesg)

        return ConnectionStatus(
            success=response.is_success,
            status_code=response.status_code,
            message="Connection OK" if response.is_success else "Connection failed",
        )

    async def application_exists(self, owner_login: str) -> bool:
        response = await self._request("GET", self._application_path(owner_login))
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        self._ensure_success(response, f"application lookup for {owner_login}")
        return True

    async def ensure_application_provisioned(
        self,
        owner_login: str,
        config: ApplicationConfig | None = None,
    ) -> bool:
        """Create the owner's application with the standard module set if absent.

        Returns True when the application was created by this call.
        """
        if await self.application_exists(owner_login):
            logger.debug(f"Application {owner_login} already provisioned")
            return False

        if config is None:
            cfg = get_app_environ_config()
            config = ApplicationConfig.for_owner(
                owner_login,
                storage_root=cfg.MEDIA_SERVER_STORAGE_ROOT,
                playlist_file=cfg.MEDIA_SERVER_PLAYLIST_FILE,
                max_bitrate=cfg.MEDIA_SERVER_DEFAULT_BITRATE,
            )

        response = await self._request(
            "POST",
            f"{self._server_path}/applications",
            json=config.model_dump(by_alias=True),
            mutating=True,
        )
        # Lost a race with a concurrent provisioning call
        if response.status_code == httpx.codes.CONFLICT:
            logger.info(f"Application {owner_login} provisioned concurrently")
            return False

        self._ensure_success(response, f"application create for {owner_login}")
        logger.info(f"Application {owner_login} created")
        return True

    async def start_stream_publisher(
        self,
        owner_login: str,
        playlist_file: str,
        *,
        session_name: str | None = None,
    ) -> None:
        """Start relaying a playlist, then wait out the settling interval.

        The control plane acknowledges before the stream is established, so
        callers must not verify the stream before this returns.
        """
        body = StreamPublisherConnectBody(
            connect_app_name=owner_login,
            stream_name=owner_login,
            session_name=session_name or f"{owner_login}_session",
        )
        response = await self._request(
            "PUT",
            self._stream_file_action_path(owner_login, playlist_file, "connect"),
            json=body.model_dump(by_alias=True),
            mutating=True,
        )
        self._ensure_success(response, f"stream publisher start for {owner_login}")
        logger.info(f"Stream publisher started for {owner_login} ({playlist_file})")

        await asyncio.sleep(self.settling_seconds)

    async def stop_stream_publisher(self, owner_login: str, playlist_file: str) -> None:
        response = await self._request(
            "PUT",
            self._stream_file_action_path(owner_login, playlist_file, "disconnect"),
            mutating=True,
        )
        # Nothing to disconnect counts as stopped
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.info(f"Stream publisher for {owner_login} already stopped")
            return
        self._ensure_success(response, f"stream publisher stop for {owner_login}")
        logger.info(f"Stream publisher stopped for {owner_login}")

    async def pause_stream_publisher(self, owner_login: str, playlist_file: str) -> None:
        response = await self._request(
            "PUT",
            self._stream_file_action_path(owner_login, playlist_file, "pause"),
            mutating=True,
        )
        self._ensure_success(response, f"stream publisher pause for {owner_login}")

    async def resume_stream_publisher(self, owner_login: str, playlist_file: str) -> None:
        response = await self._request(
            "PUT",
            self._stream_file_action_path(owner_login, playlist_file, "play"),
            mutating=True,
        )
        self._ensure_success(response, f"stream publisher resume for {owner_login}")

    async def configure_push_target(self, owner_login: str, entry: PushPublishEntry) -> None:
        """Register one outbound relay target.

        Raises `RemoteExecutionError` on failure; callers fanning out to several
        targets collect failures per target instead of aborting.
        """
        entry = entry.model_copy(update={"server_name": self.server_name})
        response = await self._request(
            "POST",
            f"{self._application_path(owner_login)}/pushpublish/mapentries",
            json=entry.model_dump(by_alias=True),
            mutating=True,
        )
        self._ensure_success(response, f"push target {entry.entry_name} for {owner_login}")
        logger.info(f"Push target {entry.entry_name} configured for {owner_login}")

    async def list_incoming_streams(
        self,
        application: str | None = None,
        instance: str = DEFAULT_APP_INSTANCE,
    ) -> list[IncomingStream]:
        response = await self._request(
            "GET", self._incoming_streams_path(application or self.live_application, instance)
        )
        self._ensure_success(response, "incoming stream listing")
        return self._parse(response, IncomingStreamList, "incoming stream listing").incoming_streams

    async def find_stream_for_owner(
        self,
        owner_login: str,
        application: str | None = None,
    ) -> IncomingStream | None:
        streams = await self.list_incoming_streams(application)
        stream = match_stream_for_owner(streams, owner_login)
        logger.debug(
            f"Stream lookup for {owner_login}: {stream.name if stream else 'none'} "
            f"among {len(streams)} stream(s)"
        )
        return stream

    async def get_stream_details(
        self,
        stream_name: str,
        application: str | None = None,
    ) -> IncomingStream | None:
        path = f"{self._incoming_streams_path(application or self.live_application)}/{stream_name}"
        response = await self._request("GET", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        self._ensure_success(response, f"stream details for {stream_name}")
        return self._parse(response, IncomingStream, f"stream details for {stream_name}")

    async def disconnect_incoming_stream(
        self,
        owner_login: str,
        application: str | None = None,
    ) -> None:
        """Forcibly end the encoder-pushed `{login}_live` stream."""
        path = (
            f"{self._incoming_streams_path(application or self.live_application)}"
            f"/{owner_login}_live/actions/disconnectStream"
        )
        response = await self._request("PUT", path, mutating=True)
        if response.status_code == httpx.codes.NOT_FOUND:
            return
        self._ensure_success(response, f"incoming stream disconnect for {owner_login}")
        logger.info(f"Incoming stream {owner_login}_live disconnected")

    async def get_statistics(self, owner_login: str) -> StreamStatistics:
        """Viewer count, throughput and run time; zeroed values on any failure."""
        try:
            response = await self._request(
                "GET", f"{self._application_path(owner_login)}/monitoring/current"
            )
            if not response.is_success:
                logger.debug(f"Statistics for {owner_login} unavailable: HTTP {response.status_code}")
                return StreamStatistics()
            return StreamStatistics.from_snapshot(MonitoringSnapshot.model_validate(response.json()))
        except RemoteExecutionError as e:
            logger.debug(f"Statistics for {owner_login} unavailable: {e.errmesg}")
            return StreamStatistics()
        except ValueError as e:
            logger.warning(f"Unreadable statistics payload for {owner_login}: {e}")
            return StreamStatistics()
