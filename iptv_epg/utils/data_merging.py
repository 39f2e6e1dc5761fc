"""
Data merging utilities

This module reconciles playlist channels (stream URLs) with the channel
records already derived from XMLTV.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from iptv_epg.utils.logging_helpers import LoggerLike

if TYPE_CHECKING:
    from iptv_epg.services.fetch_types import ChannelEntry

logger = logging.getLogger(__name__)


def channel_key(channel: ChannelEntry, index: int) -> str:
    """
    Identity key of a channel within one playlist batch.

    Args:
        channel: Channel entry
        index: Position of the channel in its batch

    Returns:
        tvg_id, else tvg_name, else a synthetic 'playlist_<index>' key
    """
    return channel.tvg_id or channel.tvg_name or f"playlist_{index}"


def reconcile_channels(
    existing_channels: Sequence[ChannelEntry],
    playlist_channels: Sequence[ChannelEntry],
    *,
    log: LoggerLike | None = None,
) -> list[ChannelEntry]:
    """
    Merge playlist channels into existing channels.

    A playlist channel whose tvg_id matches an existing channel updates it in
    place: url always, group_title and country only when the playlist carries
    a value. Anything else is added under its identity key. Existing channels
    without tvg_id are kept under their tvg_name; those with neither are dropped.

    Args:
        existing_channels: Channels currently stored (XMLTV-derived or earlier merges)
        playlist_channels: Channels parsed from the playlist, url set

    Keyword Args:
        log: Logger to report on

    Returns:
        Merged channels, deduplicated by identity key
    """
    log = log or logger
    merged: dict[str, ChannelEntry] = {}
    by_tvg_id: dict[str, ChannelEntry] = {}

    for channel in existing_channels:
        if channel.tvg_id:
            merged[channel.tvg_id] = channel
            by_tvg_id[channel.tvg_id] = channel
        elif channel.tvg_name:
            merged[channel.tvg_name] = channel
        else:
            log.debug("Dropping stored channel without tvg_id or tvg_name")

    matched = 0
    added = 0
    for index, playlist_channel in enumerate(playlist_channels):
        current = by_tvg_id.get(playlist_channel.tvg_id) if playlist_channel.tvg_id else None
        if current is not None:
            current.url = playlist_channel.url
            if playlist_channel.group_title:
                current.group_title = playlist_channel.group_title
            if playlist_channel.country:
                current.country = playlist_channel.country
            matched += 1
            continue

        key = channel_key(playlist_channel, index)
        if key not in merged:
            added += 1
        merged[key] = playlist_channel

    log.info(
        f"Reconciled playlist: {matched} matched existing channels, {added} new, {len(merged)} total"
    )
    return list(merged.values())
