"""
M3U Playlist Parser

Decodes extended M3U playlists into channel entries. Each entry spans two
lines: an #EXTINF attribute line and the stream URL that follows it.
"""
import logging
import re

from iptv_epg.services.fetch_types import ChannelEntry
from iptv_epg.utils.logging_helpers import LoggerLike
from iptv_epg.utils.timezone import utc_now


logger = logging.getLogger(__name__)

EXTINF_PREFIX = '#EXTINF:'

# key="value" pairs; values may not contain double quotes
_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9_-]+)\s*=\s*"([^"]*)"')


def parse_extinf_attributes(extinf_line: str) -> dict[str, str]:
    """Extract key="value" attributes from an #EXTINF line, keys lower-cased."""
    return {key.lower(): value.strip() for key, value in _ATTRIBUTE_RE.findall(extinf_line)}


def from_playlist_line(extinf_line: str) -> ChannelEntry:
    """
    Build a partial channel entry from an #EXTINF line

    Unknown or malformed attribute text never fails the line; missing fields
    default to empty strings and the url stays unset until paired.

    Args:
        extinf_line: Line starting with '#EXTINF:'

    Returns:
        ChannelEntry with url == ''
    """
    attributes = parse_extinf_attributes(extinf_line)
    channel_number = attributes.get('tvg-chno', '')

    return ChannelEntry(
        xui_id=int(channel_number) if channel_number.isdigit() else 0,
        tvg_id=attributes.get('tvg-id', ''),
        tvg_name=attributes.get('tvg-name', ''),
        tvg_logo=attributes.get('tvg-logo', ''),
        group_title=attributes.get('group-title', ''),
        url='',
        country=attributes.get('tvg-country', ''),
    )


def parse_playlist(content: bytes | str, *, log: LoggerLike | None = None) -> list[ChannelEntry]:
    """
    Pair #EXTINF lines with the stream URL that follows them

    An #EXTINF line without a URL before the next #EXTINF (or end of input)
    produces no entry.

    Args:
        content: Raw playlist content

    Keyword Args:
        log: Logger to report on

    Returns:
        Channel entries with url and created_at set
    """
    log = log or logger
    if isinstance(content, bytes):
        content = content.decode('utf-8-sig', errors='replace')
    else:
        content = content.lstrip('\ufeff')

    channels: list[ChannelEntry] = []
    pending: ChannelEntry | None = None
    dropped = 0

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if line.startswith(EXTINF_PREFIX):
            if pending is not None:
                dropped += 1
            pending = from_playlist_line(line)
        elif pending is not None and line and not line.startswith('#'):
            pending.url = line
            pending.created_at = utc_now()
            channels.append(pending)
            pending = None

    if pending is not None:
        dropped += 1
    if dropped:
        log.warning(f"Skipped {dropped} #EXTINF entr{'y' if dropped == 1 else 'ies'} without a stream URL")

    log.info(f"Parsed {len(channels)} channels from M3U playlist")
    return channels
