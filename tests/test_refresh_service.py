from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from iptv_epg.database import session_scope
from iptv_epg.services.db_service import (
    add_channels,
    add_programmes,
    count_programmes,
    get_channel_entries,
)
from iptv_epg.services.downloader_service import Fetcher
from iptv_epg.services.fetch_types import ChannelEntry, ProgrammeEntry
from iptv_epg.services.refresh_service import IPTVRefreshPipeline, RefreshState
from iptv_epg.services.staleness_service import StalenessOracle
from iptv_epg.services.xmltv_parser_service import XMLTVParser
from iptv_epg.utils.file_operations import FileCache
from iptv_epg.utils.timezone import to_epoch_seconds, to_iso8601, utc_now

from tests.conftest import SAMPLE_PLAYLIST, SAMPLE_XMLTV


XMLTV_URL = "http://feeds.example/guide.xml"
PLAYLIST_URL = "http://feeds.example/playlist.m3u"


class RecordingScheduler:
    def __init__(self) -> None:
        self.armed = 0

    def schedule_iptv_refresh(self) -> None:
        self.armed += 1


class FeedServer:
    """Serves the sample feeds; individual URLs can be switched to failures."""

    def __init__(self) -> None:
        self.bodies = {
            XMLTV_URL: SAMPLE_XMLTV.encode("utf-8"),
            PLAYLIST_URL: SAMPLE_PLAYLIST.encode("utf-8"),
        }
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        body = self.bodies.get(url)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)


@pytest.fixture
def server() -> FeedServer:
    return FeedServer()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


def build_pipeline(
    file_cache: FileCache,
    server: FeedServer,
    scheduler: RecordingScheduler,
    *,
    playlist_url: str | None = PLAYLIST_URL,
    xmltv_url: str | None = XMLTV_URL,
    parser: XMLTVParser | None = None,
) -> IPTVRefreshPipeline:
    return IPTVRefreshPipeline(
        xmltv_url=xmltv_url,
        playlist_url=playlist_url,
        fetcher=Fetcher(file_cache, max_retries=1, transport=httpx.MockTransport(server.handler)),
        file_cache=file_cache,
        parser=parser or XMLTVParser("http://streams.example/live/{channel}.m3u8"),
        staleness=StalenessOracle(12),
        scheduler=scheduler,
    )


async def _stored_channels() -> dict[str, ChannelEntry]:
    async with session_scope() as session:
        return {channel.tvg_id: channel for channel in await get_channel_entries(session)}


async def _stored_programme_count() -> int:
    async with session_scope() as session:
        return await count_programmes(session)


def _steps(result: dict) -> dict[str, str]:
    return {step["step"]: step["status"] for step in result["steps"]}


async def test_startup_run_fills_store_and_arms_scheduler(database, file_cache, server, scheduler):
    pipeline = build_pipeline(file_cache, server, scheduler)

    result = await pipeline.run(force=False)

    assert _steps(result) == {"xmltv": "success", "playlist": "success"}
    assert result["scheduler_armed"] is True
    assert scheduler.armed == 1
    assert pipeline.state is RefreshState.IDLE

    channels = await _stored_channels()
    assert set(channels) == {"bbc1.uk", "itv.uk", "sky.news"}

    bbc = channels["bbc1.uk"]
    assert bbc.url == "http://streams.example/bbc1.m3u8"
    assert bbc.tvg_logo == "http://logos.example/bbc1.png"
    assert bbc.tvg_name == "BBC One"
    assert bbc.group_title == "UK"
    assert bbc.country == "GB"
    assert bbc.xui_id == 101

    assert channels["sky.news"].group_title == "News"
    assert await _stored_programme_count() == 2


async def test_cache_is_cleared_after_run(database, file_cache, server, scheduler):
    await build_pipeline(file_cache, server, scheduler).run()

    assert await file_cache.get_cached_file("xmltv.xml") is None
    assert await file_cache.get_cached_file("playlist.m3u") is None


async def test_forced_run_does_not_rearm_scheduler(database, file_cache, server, scheduler):
    result = await build_pipeline(file_cache, server, scheduler).run(force=True)

    assert result["scheduler_armed"] is False
    assert scheduler.armed == 0


async def test_fresh_programme_data_skips_xmltv_but_not_playlist(database, file_cache, server, scheduler):
    now = utc_now()
    async with session_scope() as session:
        await add_channels(session, [ChannelEntry(tvg_id="bbc1.uk", tvg_name="BBC One")])
        await add_programmes(session, [ProgrammeEntry(
            start=to_iso8601(now),
            stop=to_iso8601(now + timedelta(days=3)),
            start_timestamp=to_epoch_seconds(now),
            stop_timestamp=to_epoch_seconds(now + timedelta(days=3)),
            channel="bbc1.uk",
            title="Marathon",
        )])

    result = await build_pipeline(file_cache, server, scheduler).run(force=False)

    assert _steps(result) == {"xmltv": "skipped", "playlist": "success"}
    assert XMLTV_URL not in server.requests
    assert await _stored_programme_count() == 1

    channels = await _stored_channels()
    assert channels["bbc1.uk"].url == "http://streams.example/bbc1.m3u8"
    assert "sky.news" in channels


async def test_forced_run_refetches_even_when_fresh(database, file_cache, server, scheduler):
    await build_pipeline(file_cache, server, scheduler).run(force=True)
    server.requests.clear()

    result = await build_pipeline(file_cache, server, scheduler).run(force=True)

    assert _steps(result)["xmltv"] == "success"
    assert XMLTV_URL in server.requests
    assert PLAYLIST_URL in server.requests


async def test_missing_playlist_source_is_a_noop(database, file_cache, server, scheduler):
    result = await build_pipeline(file_cache, server, scheduler, playlist_url=None).run()

    assert _steps(result) == {"xmltv": "success", "playlist": "skipped"}
    assert set(await _stored_channels()) == {"bbc1.uk", "itv.uk"}


async def test_xmltv_failure_keeps_store_and_playlist_still_runs(database, file_cache, server, scheduler):
    async with session_scope() as session:
        await add_channels(session, [ChannelEntry(tvg_id="bbc1.uk", tvg_name="Stored BBC")])
        await add_programmes(session, [ProgrammeEntry(
            start="2020-01-01T00:00:00.000Z",
            stop="2020-01-01T01:00:00.000Z",
            start_timestamp=1577836800,
            stop_timestamp=1577840400,
            channel="bbc1.uk",
            title="Old",
        )])
    del server.bodies[XMLTV_URL]

    result = await build_pipeline(file_cache, server, scheduler).run(force=True)

    assert _steps(result) == {"xmltv": "failed", "playlist": "success"}
    assert await _stored_programme_count() == 1
    channels = await _stored_channels()
    assert channels["bbc1.uk"].tvg_name == "Stored BBC"
    assert channels["bbc1.uk"].url == "http://streams.example/bbc1.m3u8"


async def test_playlist_failure_keeps_xmltv_channels(database, file_cache, server, scheduler):
    del server.bodies[PLAYLIST_URL]

    result = await build_pipeline(file_cache, server, scheduler).run(force=True)

    assert _steps(result) == {"xmltv": "success", "playlist": "failed"}
    channels = await _stored_channels()
    assert channels["bbc1.uk"].url == "http://streams.example/live/101.m3u8"


async def test_malformed_xmltv_keeps_previous_programmes(database, file_cache, server, scheduler):
    async with session_scope() as session:
        await add_programmes(session, [ProgrammeEntry(
            start="2020-01-01T00:00:00.000Z",
            stop="2020-01-01T01:00:00.000Z",
            start_timestamp=1577836800,
            stop_timestamp=1577840400,
            channel="bbc1.uk",
            title="Old",
        )])
    server.bodies[XMLTV_URL] = b"<tv><programme"

    result = await build_pipeline(file_cache, server, scheduler, playlist_url=None).run(force=True)

    assert _steps(result)["xmltv"] == "failed"
    assert await _stored_programme_count() == 1


async def test_run_without_database_reports_failures_instead_of_raising(file_cache, server, scheduler):
    result = await build_pipeline(file_cache, server, scheduler).run(force=True)

    assert _steps(result) == {"xmltv": "failed", "playlist": "failed"}
    assert result["status"] == "success"


class ExplodingParser(XMLTVParser):
    def parse_xmltv_full(self, file_path):
        raise KeyError("unexpected decoder state")


async def test_unexpected_xmltv_error_fails_only_that_step(database, file_cache, server, scheduler):
    pipeline = build_pipeline(file_cache, server, scheduler, parser=ExplodingParser())

    result = await pipeline.run(force=False)

    assert _steps(result) == {"xmltv": "failed", "playlist": "success"}
    assert "KeyError" in result["steps"][0]["message"]
    assert result["scheduler_armed"] is True
    assert scheduler.armed == 1
    assert pipeline.state is RefreshState.IDLE
    assert await file_cache.get_cached_file("xmltv.xml") is None
    assert set(await _stored_channels()) == {"bbc1.uk", "sky.news"}


async def test_out_of_range_programme_does_not_abort_refresh(database, file_cache, server, scheduler):
    server.bodies[XMLTV_URL] = SAMPLE_XMLTV.replace(
        "</tv>",
        '<programme start="99991231235959 -1400" stop="99991231235959 +0000" channel="bbc1.uk">'
        "<title>Far Future</title></programme></tv>",
    ).encode("utf-8")

    result = await build_pipeline(file_cache, server, scheduler).run(force=False)

    assert _steps(result) == {"xmltv": "success", "playlist": "success"}
    assert scheduler.armed == 1
    assert await _stored_programme_count() == 2
