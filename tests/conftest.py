"""
Shared fixtures: temporary SQLite database, file cache and sample feeds.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from iptv_epg.database import close_db, init_db
from iptv_epg.utils.file_operations import FileCache


SAMPLE_XMLTV = """<?xml version="1.0" encoding="UTF-8"?>
<tv generator-info-name="test">
  <channel id="bbc1.uk">
    <display-name>BBC One</display-name>
    <display-name>101</display-name>
    <icon src="http://logos.example/bbc1.png"/>
  </channel>
  <channel id="itv.uk">
    <display-name>ITV</display-name>
  </channel>
  <programme start="20250101120000 +0000" stop="20250101130000 +0000" channel="bbc1.uk">
    <title lang="en">News</title>
    <sub-title>Midday</sub-title>
    <desc lang="en">Daily news</desc>
    <category>News</category>
    <date>2025</date>
    <episode-num system="xmltv_ns">1.26.0/1</episode-num>
    <icon src="http://img.example/news.png"/>
    <image>http://img.example/news-large.png</image>
    <previously-shown/>
  </programme>
  <programme stop="20250101140000 +0000" channel="bbc1.uk">
    <title>No Start</title>
  </programme>
  <programme start="20250101130000 +0100" stop="20250101140000 +0100" channel="itv.uk">
    <title>Drama</title>
    <episode-num system="xmltv_ns">0.0.0</episode-num>
    <episode-num system="onscreen">S2E27</episode-num>
  </programme>
</tv>
"""

SAMPLE_PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="bbc1.uk" tvg-name="BBC One HD" tvg-logo="http://logos.example/other.png" group-title="UK" tvg-country="GB",BBC One HD
http://streams.example/bbc1.m3u8
#EXTINF:-1 tvg-id="sky.news" tvg-name="Sky News" group-title="News",Sky News
http://streams.example/sky.m3u8
"""


@pytest.fixture
def xmltv_file(tmp_path: Path) -> Path:
    path = tmp_path / "guide.xml"
    path.write_text(SAMPLE_XMLTV, encoding="utf-8")
    return path


@pytest.fixture
def file_cache(tmp_path: Path) -> FileCache:
    return FileCache(tmp_path / "cache")


@pytest.fixture
async def database(tmp_path: Path):
    """Point the global session factory at a throwaway SQLite file."""
    await init_db(str(tmp_path / "test.db"))
    yield
    await close_db()
