"""
Shared dataclasses used across the IPTV refresh pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class ChannelEntry:
    """In-memory representation of a channel row before persistence."""
    xui_id: int = 0
    tvg_id: str = ""
    tvg_name: str = ""
    tvg_logo: str = ""
    group_title: str = ""
    url: str = ""
    country: str = ""
    created_at: datetime | None = None


@dataclass(slots=True)
class ProgrammeEntry:
    """In-memory representation of a programme row before persistence."""
    start: str
    stop: str
    start_timestamp: int
    stop_timestamp: int
    channel: str
    title: str = ""
    description: str = ""
    category: str = ""
    subtitle: str = ""
    episode_num: str = ""
    season: int | None = None
    episode: int | None = None
    icon: str = ""
    image: str = ""
    date: str = ""
    previously_shown: bool = False
    created_at: datetime | None = None


@dataclass(slots=True)
class XMLTVDocument:
    """Channels and programmes decoded from one XMLTV file."""
    channels: list[ChannelEntry] = field(default_factory=list)
    programmes: list[ProgrammeEntry] = field(default_factory=list)


__all__ = ["ChannelEntry", "ProgrammeEntry", "XMLTVDocument"]
