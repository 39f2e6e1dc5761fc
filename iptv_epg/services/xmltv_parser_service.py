import asyncio
import logging
import re
from pathlib import Path

from lxml import etree # type: ignore

from iptv_epg.services.fetch_types import ChannelEntry, ProgrammeEntry, XMLTVDocument
from iptv_epg.utils.logging_helpers import LoggerLike
from iptv_epg.utils.timezone import parse_xmltv_time, to_epoch_seconds, to_iso8601, utc_now

logger = logging.getLogger(__name__)

_CHANNEL_NUMBER_RE = re.compile(r'^\d+$', re.ASCII)
_ONSCREEN_RE = re.compile(r'S(\d+)E(\d+)', re.IGNORECASE)

# Per-element decode failures that skip only the offending element
_ELEMENT_ERRORS = (ValueError, TypeError, AttributeError, IndexError, OverflowError)


class XMLTVParser:
    """
    Streaming XMLTV decoder

    Reads channel and programme elements straight from the cached file with
    lxml.iterparse and clears each element once decoded, so large guides never
    sit in memory as a whole tree. A broken element is logged and skipped; a
    broken document yields an empty result.
    """

    def __init__(self, stream_base_url: str | None = None, *, log: LoggerLike | None = None) -> None:
        self.stream_base_url = stream_base_url
        self.log = log or logger

    def parse_xmltv_full(self, file_path: Path | str) -> XMLTVDocument:
        """
        Parse XMLTV file and return channels and programmes

        Args:
            file_path: Path to XMLTV file

        Returns:
            XMLTVDocument with every channel and programme that decoded cleanly
        """
        return self._parse(file_path, include_channels=True)

    def parse_xmltv(self, file_path: Path | str) -> list[ProgrammeEntry]:
        """Parse only the programmes of an XMLTV file."""
        return self._parse(file_path, include_channels=False).programmes

    def _parse(self, file_path: Path | str, *, include_channels: bool) -> XMLTVDocument:
        document = XMLTVDocument()
        tags = ('channel', 'programme') if include_channels else ('programme',)

        self.log.debug(f"Parsing XMLTV file: {file_path}")
        try:
            context = etree.iterparse(
                str(file_path),
                events=('end',),
                tag=tags,
                huge_tree=True,
                resolve_entities=False,
            )
            for _, element in context:
                if element.tag == 'channel':
                    channel = self._decode_channel(element)
                    if channel is not None:
                        document.channels.append(channel)
                else:
                    programme = self._decode_programme(element)
                    if programme is not None:
                        document.programmes.append(programme)
                _release(element)
        except (etree.XMLSyntaxError, OSError) as e:
            self.log.error(f"Error parsing XMLTV: {e}")
            return XMLTVDocument()

        if include_channels:
            self.log.info(f"Found {len(document.channels)} channels in XMLTV")
        log_programme_statistics(document.programmes, self.log)

        return document

    def _decode_channel(self, element: etree._Element) -> ChannelEntry | None:
        channel_id = element.get('id') or ''
        try:
            return self._parse_channel(element, channel_id)
        except _ELEMENT_ERRORS as e:
            self.log.error(f'Error parsing channel "{channel_id or "unknown"}": {e}')
            return None

    def _parse_channel(self, element: etree._Element, channel_id: str) -> ChannelEntry:
        """Parse single channel element"""
        tvg_name = ''
        channel_number = ''

        # XMLTV channels may carry several display-names, e.g. "102 Doctor Who" and "102"
        for display in element.findall('display-name'):
            name = _text_of(display)
            if not tvg_name:
                tvg_name = name
            if not channel_number and _CHANNEL_NUMBER_RE.match(name):
                channel_number = name

        stream_url = ''
        if self.stream_base_url and channel_number:
            stream_url = self.stream_base_url.replace('{channel}', channel_number)
            self.log.debug(f"Constructed stream URL for channel {channel_number}: {stream_url}")

        self.log.debug(f"Parsed XMLTV channel: {channel_id} -> {tvg_name}")

        return ChannelEntry(
            xui_id=int(channel_number) if channel_number else 0,
            tvg_id=channel_id,
            tvg_name=tvg_name,
            tvg_logo=_attr_of(element, 'icon', 'src'),
            group_title='',
            url=stream_url,
            country='',
            created_at=utc_now(),
        )

    def _decode_programme(self, element: etree._Element) -> ProgrammeEntry | None:
        try:
            return self._parse_programme(element)
        except _ELEMENT_ERRORS as e:
            title = _get_text(element, 'title') or 'unknown'
            self.log.error(f'Error parsing programme "{title}": {e}')
            return None

    def _parse_programme(self, element: etree._Element) -> ProgrammeEntry:
        """Parse single programme element"""
        title = _get_text(element, 'title')
        start_str = element.get('start')
        stop_str = element.get('stop')

        if not start_str or not stop_str:
            raise ValueError(f"Programme missing start/stop times: {title}")

        start = parse_xmltv_time(start_str)
        stop = parse_xmltv_time(stop_str)

        if start == stop:
            self.log.warning(f'Programme "{title}" has identical start and stop times: {start_str}')

        episode_num, season, episode = parse_episode_number(element.findall('episode-num'))

        return ProgrammeEntry(
            start=to_iso8601(start),
            stop=to_iso8601(stop),
            start_timestamp=to_epoch_seconds(start),
            stop_timestamp=to_epoch_seconds(stop),
            channel=element.get('channel') or '',
            title=title,
            description=_get_text(element, 'desc'),
            category=_get_text(element, 'category'),
            subtitle=_get_text(element, 'sub-title'),
            episode_num=episode_num,
            season=season,
            episode=episode,
            icon=_attr_of(element, 'icon', 'src'),
            image=_get_text(element, 'image'),
            date=_get_text(element, 'date'),
            previously_shown=element.find('previously-shown') is not None,
            created_at=utc_now(),
        )


def parse_episode_number(elements: list[etree._Element]) -> tuple[str, int | None, int | None]:
    """
    Decode episode-num elements

    Supports "onscreen" (S2E27) and "xmltv_ns" (1.26.0/1, zero-based) systems.
    An onscreen season always wins over xmltv_ns, whatever the element order.

    Returns:
        Tuple of (episode_num, season, episode)
    """
    episode_num = ''
    season: int | None = None
    episode: int | None = None
    onscreen_found = False

    for element in elements:
        if element.get('system') != 'onscreen':
            continue
        episode_num = _text_of(element)
        match = _ONSCREEN_RE.search(episode_num)
        if match:
            season = int(match.group(1))
            episode = int(match.group(2))
            onscreen_found = True
            break

    if onscreen_found:
        return episode_num, season, episode

    for element in elements:
        if element.get('system') != 'xmltv_ns':
            continue
        parts = _text_of(element).split('.')
        if len(parts) >= 2 and parts[0].strip() and parts[1].strip():
            season = _zero_based_part(parts[0])
            episode = _zero_based_part(parts[1])
            break

    return episode_num, season, episode


def _zero_based_part(part: str) -> int | None:
    # "26/40" means episode 27 of 40
    value = part.split('/', 1)[0].strip()
    if not value.isdigit():
        return None
    return int(value) + 1


def log_programme_statistics(programmes: list[ProgrammeEntry], log: LoggerLike | None = None) -> None:
    """Log programme count, distinct channels and start date range."""
    log = log or logger
    channels = len({programme.channel for programme in programmes})
    log.info(f"Parsed {len(programmes)} programmes across {channels} channels from XMLTV file")

    if programmes:
        earliest = min(programme.start_timestamp for programme in programmes)
        latest = max(programme.start_timestamp for programme in programmes)
        earliest_iso = next(p.start for p in programmes if p.start_timestamp == earliest)
        latest_iso = next(p.start for p in programmes if p.start_timestamp == latest)
        log.info(f"Programme date range: {earliest_iso} to {latest_iso}")


async def parse_xmltv_async(
    parser: XMLTVParser,
    file_path: Path | str,
    *,
    full: bool = True,
    parse_timeout_seconds: int | None = None
) -> XMLTVDocument:
    """
    Parse XMLTV file in a worker thread with timeout protection.

    Args:
        parser: Configured XMLTVParser
        file_path: Path to XMLTV file
        full: Decode channels too (False decodes programmes only)

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Returns:
        Parsed document, empty when parsing timed out
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    if full:
        parse_task = asyncio.to_thread(parser.parse_xmltv_full, file_path)
    else:
        parse_task = _programmes_only(parser, file_path)

    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError:
        parser.log.error(f"XML parsing timed out after {effective_timeout}s for {file_path}")
        return XMLTVDocument()


async def _programmes_only(parser: XMLTVParser, file_path: Path | str) -> XMLTVDocument:
    programmes = await asyncio.to_thread(parser.parse_xmltv, file_path)
    return XMLTVDocument(programmes=programmes)


def _release(element: etree._Element) -> None:
    """Free a decoded element and the siblings already processed before it."""
    element.clear(keep_tail=True)
    parent = element.getparent()
    if parent is None:
        return
    while element.getprevious() is not None:
        del parent[0]


def _text_of(element: etree._Element | None) -> str:
    if element is None or not element.text:
        return ''
    return element.text.strip()


def _get_text(element: etree._Element, tag: str) -> str:
    """Safely extract text from the first child with tag, '' when absent"""
    return _text_of(element.find(tag))


def _attr_of(element: etree._Element, tag: str, attribute: str) -> str:
    child = element.find(tag)
    if child is None:
        return ''
    return child.get(attribute) or ''
