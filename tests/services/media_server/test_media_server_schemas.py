"""Tests for media server request/response bodies."""

import pytest

from streamrelay.services.media_server.media_server_schemas import (
    IncomingStreamList,
    MonitoringSnapshot,
    PushPublishEntry,
    StreamStatistics,
    format_uptime,
)
from streamrelay.utils.app_errors import InvalidProfile


class TestPushPublishEntry:
    def test_from_secure_destination(self):
        entry = PushPublishEntry.from_destination(
            owner_login="alice",
            entry_name="facebook",
            destination="rtmps://live-api-s.facebook.com:443/rtmp/fb-key",
        )

        body = entry.model_dump(by_alias=True)
        assert body["host"] == "live-api-s.facebook.com"
        assert body["port"] == 443
        assert body["application"] == "rtmp"
        assert body["streamFile"] == "fb-key"
        assert body["sendSSL"] is True
        assert body["appName"] == "alice"

    def test_default_rtmp_port(self):
        entry = PushPublishEntry.from_destination(
            owner_login="alice", entry_name="twitch", destination="rtmp://live.twitch.tv/app/key"
        )
        assert entry.port == 1935
        assert entry.send_ssl is False

    def test_nested_application_path(self):
        entry = PushPublishEntry.from_destination(
            owner_login="alice", entry_name="custom", destination="rtmp://host/a/b/key"
        )
        assert entry.application == "a/b"
        assert entry.stream_file == "key"

    def test_destination_without_key_rejected(self):
        with pytest.raises(InvalidProfile):
            PushPublishEntry.from_destination(owner_login="alice", entry_name="custom", destination="rtmp://host/app")


class TestStatistics:
    def test_incoming_stream_list_parses_camel_case(self):
        streams = IncomingStreamList.model_validate(
            {"incomingStreams": [{"name": "alice_live", "isConnected": True, "sourceIp": "1.2.3.4"}]}
        )
        assert streams.incoming_streams[0].is_connected is True
        assert streams.incoming_streams[0].source_ip == "1.2.3.4"

    def test_from_snapshot_without_viewers_is_inactive(self):
        stats = StreamStatistics.from_snapshot(MonitoringSnapshot())
        assert stats.available is True
        assert stats.is_active is False

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "00:00:00"), (59, "00:00:59"), (3600, "01:00:00"), (90061, "25:01:01"), (-5, "00:00:00")],
    )
    def test_format_uptime(self, seconds: int, expected: str):
        assert format_uptime(seconds) == expected
