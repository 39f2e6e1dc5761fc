"""
Database operations for IPTV data

This module contains the store operations for channels and programmes. Both
collections follow replace-on-refresh semantics: callers clear and bulk insert
inside one session transaction, so a failed write leaves the prior rows intact.
"""
import logging
from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime, timezone
from time import perf_counter
from typing import cast

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from iptv_epg.models import Channel, Programme
from iptv_epg.services.fetch_types import ChannelEntry, ProgrammeEntry


logger = logging.getLogger(__name__)


async def clear_channels(db: AsyncSession) -> int:
    """
    Delete every stored channel.

    Args:
        db: Database session

    Returns:
        Number of deleted channels
    """
    result = cast(CursorResult, await db.execute(delete(Channel)))
    deleted_count = max(result.rowcount or 0, 0)
    logger.info("Cleared %s channels", deleted_count)
    return deleted_count


async def add_channels(
    db: AsyncSession,
    channels: Sequence[ChannelEntry],
    chunk_size: int = 1000,
) -> int:
    """
    Bulk insert channels.

    Args:
        db: Database session
        channels: Channel entries to store
        chunk_size: Rows per INSERT batch

    Returns:
        Number of channels inserted
    """
    if not channels:
        logger.debug("No channels to store")
        return 0

    now = datetime.now(timezone.utc)
    payload = []
    for channel in channels:
        row = asdict(channel)
        row["created_at"] = channel.created_at or now
        payload.append(row)

    for start_index in range(0, len(payload), chunk_size):
        chunk = payload[start_index:start_index + chunk_size]
        await db.execute(insert(Channel), chunk)

    logger.info("Stored %s channels", len(payload))
    return len(payload)


async def get_channel_entries(db: AsyncSession) -> list[ChannelEntry]:
    """
    Load every stored channel as a ChannelEntry.

    Args:
        db: Database session

    Returns:
        List of channel entries in insertion order
    """
    result = await db.execute(select(Channel).order_by(Channel.id))
    return [
        ChannelEntry(
            xui_id=row.xui_id,
            tvg_id=row.tvg_id,
            tvg_name=row.tvg_name,
            tvg_logo=row.tvg_logo,
            group_title=row.group_title,
            url=row.url,
            country=row.country,
            created_at=row.created_at,
        )
        for row in result.scalars().all()
    ]


async def clear_programmes(db: AsyncSession) -> int:
    """
    Delete every stored programme.

    Args:
        db: Database session

    Returns:
        Number of deleted programmes
    """
    result = cast(CursorResult, await db.execute(delete(Programme)))
    deleted_count = max(result.rowcount or 0, 0)
    logger.info("Cleared %s programmes", deleted_count)
    return deleted_count


async def add_programmes(
    db: AsyncSession,
    programmes: Sequence[ProgrammeEntry],
    chunk_size: int = 5000,
) -> int:
    """
    Bulk insert programmes in chunks.

    Args:
        db: Database session
        programmes: Programme entries to store
        chunk_size: Rows per INSERT batch

    Returns:
        Number of programmes inserted
    """
    total_programmes = len(programmes)
    if not total_programmes:
        logger.debug("No programmes to store")
        return 0

    logger.info("Storing %s programmes", total_programmes)

    now = datetime.now(timezone.utc)
    chunk_number = 0
    for start_index in range(0, total_programmes, chunk_size):
        chunk_number += 1
        loop_start = perf_counter()

        payload: list[dict[str, object]] = []
        for programme in programmes[start_index:start_index + chunk_size]:
            row = asdict(programme)
            row["created_at"] = programme.created_at or now
            payload.append(row)

        await db.execute(insert(Programme), payload)

        logger.debug(
            "Chunk %s persisted: payload=%s, total_time=%.2fs",
            chunk_number,
            len(payload),
            perf_counter() - loop_start,
        )

    logger.info("Programme store complete: %s inserted", total_programmes)
    return total_programmes


async def get_programme_coverage(db: AsyncSession) -> int | None:
    """
    Latest programme stop time currently stored.

    Args:
        db: Database session

    Returns:
        Maximum stop_timestamp (epoch seconds), or None when no programmes exist
    """
    result = await db.execute(select(func.max(Programme.stop_timestamp)))
    return result.scalar_one_or_none()


async def count_programmes(db: AsyncSession) -> int:
    """Number of stored programmes."""
    result = await db.execute(select(func.count(Programme.id)))
    return result.scalar_one_or_none() or 0
