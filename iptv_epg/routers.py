from typing import Annotated
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from iptv_epg.database import get_db
from iptv_epg.schemas import ChannelListResponse, RefreshResponse
from iptv_epg.services import (
    download_cache_and_fill_db,
    get_channels,
    get_refresh_coordinator,
    get_store_counts,
    iptv_scheduler,
)


logger = logging.getLogger(__name__)

main_router = APIRouter()

@main_router.get("/")
async def root() -> dict:
    """Root endpoint with service information"""
    next_run = iptv_scheduler.get_next_run_time()

    return {
        "service": "IPTV EPG Service",
        "version": "0.1.0",
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "refresh": "/refresh - Manually trigger a forced refresh (POST)",
            "channels": "/channels - List reconciled channels",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(db: Annotated[AsyncSession, Depends(get_db)]) -> dict:
    """Health check endpoint"""
    next_run = iptv_scheduler.get_next_run_time()
    return {
        "status": "ok",
        "scheduler_running": iptv_scheduler.is_running(),
        "refresh_in_progress": get_refresh_coordinator().is_refreshing(),
        "next_refresh": next_run.isoformat() if next_run else None,
        "stored": await get_store_counts(db),
    }


@main_router.post("/refresh", response_model=RefreshResponse)
async def trigger_refresh() -> dict:
    """
    Manually trigger a forced refresh

    Downloads the XMLTV guide and playlist regardless of cache or staleness
    """
    logger.info("Manual IPTV refresh triggered via API")
    result = await download_cache_and_fill_db(force=True)

    if "error" in result:
        raise HTTPException(status_code=500, detail=result["error"])

    return result


@main_router.get("/channels", response_model=ChannelListResponse)
async def list_channels(
    db: Annotated[AsyncSession, Depends(get_db)],
    group: Annotated[str | None, Query(description="Filter by group title")] = None,
) -> ChannelListResponse:
    """List reconciled channels for downstream serving"""
    return await get_channels(db, group)
