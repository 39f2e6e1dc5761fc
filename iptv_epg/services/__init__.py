"""
Services package for IPTV EPG Service

This package contains all business logic and service layer components.
"""
from iptv_epg.services.channel_query_service import get_channels, get_store_counts
from iptv_epg.services.refresh_coordinator import get_refresh_coordinator
from iptv_epg.services.refresh_service import download_cache_and_fill_db, iptv_scheduler
from iptv_epg.services.xmltv_parser_service import XMLTVParser

__all__ = [
    'get_channels',
    'get_store_counts',
    'get_refresh_coordinator',
    'download_cache_and_fill_db',
    'iptv_scheduler',
    'XMLTVParser',
]
