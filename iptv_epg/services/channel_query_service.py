"""
Channel Query Service

Read side for downstream consumers: lists the reconciled channel set.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from iptv_epg.models import Channel, Programme
from iptv_epg.schemas import ChannelListResponse, ChannelResponse
from iptv_epg.utils.timezone import utc_now

logger = logging.getLogger(__name__)


async def get_channels(db: AsyncSession, group: str | None = None) -> ChannelListResponse:
    """
    List stored channels

    Args:
        db: Database session
        group: Optional group_title filter (case-insensitive)

    Returns:
        Channels ordered by channel number then name
    """
    stmt = select(Channel).order_by(Channel.xui_id, Channel.tvg_name)
    if group:
        stmt = stmt.where(func.lower(Channel.group_title) == group.lower())

    result = await db.execute(stmt)
    rows = result.scalars().all()

    logger.info(f"Channel list request: group={group or '*'}, {len(rows)} channels")

    return ChannelListResponse(
        timestamp=utc_now().isoformat(),
        total=len(rows),
        channels=[
            ChannelResponse(
                xui_id=row.xui_id,
                tvg_id=row.tvg_id,
                tvg_name=row.tvg_name,
                tvg_logo=row.tvg_logo,
                group_title=row.group_title,
                url=row.url,
                country=row.country,
            )
            for row in rows
        ],
    )


async def get_store_counts(db: AsyncSession) -> dict[str, int]:
    """Row counts per collection, for health reporting."""
    channels = await db.execute(select(func.count(Channel.id)))
    programmes = await db.execute(select(func.count(Programme.id)))
    return {
        "channels": channels.scalar_one_or_none() or 0,
        "programmes": programmes.scalar_one_or_none() or 0,
    }
