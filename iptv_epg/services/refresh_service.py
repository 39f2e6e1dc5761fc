"""
IPTV Refresh Service

Coordinates downloading, parsing, reconciliation and persistence of the XMLTV
guide and the M3U playlist. One run walks Idle -> Loading(XMLTV) ->
Loading(Playlist) -> CacheCleanup -> Idle; a failed step is recorded and the
run moves on.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal

import httpx
from sqlalchemy.exc import SQLAlchemyError

from iptv_epg.config import CustomSettings, mask_url, settings
from iptv_epg.database import session_scope
from iptv_epg.services.db_service import (
    add_channels,
    add_programmes,
    clear_channels,
    clear_programmes,
    get_channel_entries,
)
from iptv_epg.services.downloader_service import Fetcher
from iptv_epg.services.playlist_parser_service import parse_playlist
from iptv_epg.services.refresh_coordinator import get_refresh_coordinator
from iptv_epg.services.scheduler_service import IPTVScheduler
from iptv_epg.services.staleness_service import StalenessOracle
from iptv_epg.services.xmltv_parser_service import XMLTVParser, parse_xmltv_async
from iptv_epg.utils.data_merging import reconcile_channels
from iptv_epg.utils.file_operations import FileCache
from iptv_epg.utils.logging_helpers import (
    LoggerLike,
    log_merge_summary,
    log_section_end,
    log_section_start,
    new_run_logger,
)
from iptv_epg.utils.timezone import utc_now


logger = logging.getLogger(__name__)

XMLTV_CACHE_NAME = 'xmltv.xml'
PLAYLIST_CACHE_NAME = 'playlist.m3u'

# Failures that abort a single step but never the run
_STEP_ERRORS = (SQLAlchemyError, OSError, RuntimeError)


class RefreshState(str, Enum):
    IDLE = "idle"
    LOADING_XMLTV = "loading_xmltv"
    LOADING_PLAYLIST = "loading_playlist"
    CACHE_CLEANUP = "cache_cleanup"


@dataclass(slots=True)
class StepSummary:
    name: str
    started_at: datetime
    status: Literal["success", "skipped", "failed"] = "success"
    completed_at: datetime | None = None
    channels_written: int = 0
    programmes_written: int = 0
    message: str | None = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def finish(self, status: Literal["success", "skipped", "failed"], message: str | None = None) -> StepSummary:
        self.status = status
        self.message = message
        self.completed_at = utc_now()
        return self

    def to_dict(self) -> dict:
        payload = {
            "step": self.name,
            "status": self.status,
            "channels_written": self.channels_written,
            "programmes_written": self.programmes_written,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
        if self.message:
            payload["message"] = self.message
        return payload


class IPTVRefreshPipeline:
    """Runs one refresh cycle: XMLTV fill, playlist fill, cache cleanup."""

    def __init__(
        self,
        *,
        xmltv_url: str | None,
        playlist_url: str | None,
        fetcher: Fetcher,
        file_cache: FileCache,
        parser: XMLTVParser,
        staleness: StalenessOracle,
        scheduler: IPTVScheduler | None = None,
        channels_chunk_size: int = 1000,
        programmes_chunk_size: int = 5000,
        parse_timeout_sec: int = 0,
        log: LoggerLike | None = None,
    ) -> None:
        self.xmltv_url = xmltv_url
        self.playlist_url = playlist_url
        self.fetcher = fetcher
        self.file_cache = file_cache
        self.parser = parser
        self.staleness = staleness
        self.scheduler = scheduler
        self.channels_chunk_size = channels_chunk_size
        self.programmes_chunk_size = programmes_chunk_size
        self.parse_timeout_sec = parse_timeout_sec
        self.state = RefreshState.IDLE
        self._log = log or logger

    @classmethod
    def from_settings(
        cls,
        config: CustomSettings,
        *,
        scheduler: IPTVScheduler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        log: LoggerLike | None = None,
    ) -> IPTVRefreshPipeline:
        """Wire a pipeline from configuration, every component sharing one logger."""
        log = log or logger
        file_cache = FileCache(config.cache_dir, log=log)
        return cls(
            xmltv_url=config.xmltv_url,
            playlist_url=config.playlist_url,
            fetcher=Fetcher(
                file_cache,
                timeout=config.fetch_timeout_sec,
                max_retries=config.fetch_max_retries,
                backoff_factor=config.fetch_backoff_factor,
                transport=transport,
                log=log,
            ),
            file_cache=file_cache,
            parser=XMLTVParser(config.stream_base_url, log=log),
            staleness=StalenessOracle(config.epg_min_future_coverage_hours, log=log),
            scheduler=scheduler,
            channels_chunk_size=config.channels_chunk_size,
            programmes_chunk_size=config.programmes_chunk_size,
            parse_timeout_sec=config.xmltv_parse_timeout_sec,
            log=log,
        )

    def _enter(self, state: RefreshState) -> None:
        self._log.debug(f"State {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, force: bool = False) -> dict:
        """
        Run one full refresh cycle.

        Args:
            force: Bypass the staleness check and the file cache (scheduled runs)

        Returns:
            Summary of every step
        """
        started_at = utc_now()
        self._log.info(f"IPTV refresh started (force={force})")

        try:
            self._enter(RefreshState.LOADING_XMLTV)
            xmltv_step = await self._run_step("xmltv", self.fill_db_from_xmltv, force)

            self._enter(RefreshState.LOADING_PLAYLIST)
            playlist_step = await self._run_step("playlist", self.fill_db_channels_from_playlist, force)
        finally:
            self._enter(RefreshState.CACHE_CLEANUP)
            try:
                await self.file_cache.clear_cache()
            except OSError as e:
                self._log.error(f"Failed to clear file cache: {e}")

            self._enter(RefreshState.IDLE)

        # Only the startup run arms the scheduler; scheduled runs are forced
        scheduled = False
        if not force and self.scheduler is not None:
            try:
                self.scheduler.schedule_iptv_refresh()
                scheduled = True
            except (ValueError, RuntimeError) as e:
                self._log.error(f"Failed to schedule IPTV refresh: {e}", exc_info=True)

        steps = [xmltv_step, playlist_step]
        self._log.info(
            "IPTV refresh finished: "
            + ", ".join(f"{step.name}={step.status}" for step in steps)
        )
        return {
            "status": "success",
            "force": force,
            "started_at": started_at.isoformat(),
            "completed_at": utc_now().isoformat(),
            "scheduler_armed": scheduled,
            "steps": [step.to_dict() for step in steps],
        }

    async def _run_step(
        self,
        name: str,
        fill: Callable[[bool], Awaitable[StepSummary]],
        force: bool,
    ) -> StepSummary:
        """Run one fill; an unexpected error fails only this step."""
        started_at = utc_now()
        try:
            return await fill(force)
        except Exception as e:
            self._log.error(f"Unexpected error in {name} step: {e}", exc_info=True)
            return StepSummary(name=name, started_at=started_at).finish(
                "failed", f"Unexpected error: {type(e).__name__}: {e}"
            )

    async def fill_db_from_xmltv(self, force: bool = False) -> StepSummary:
        """Replace channels and programmes from the XMLTV guide when stale or forced."""
        step = StepSummary(name="xmltv", started_at=utc_now())
        log_section_start(self._log, "XMLTV fill")

        if not self.xmltv_url:
            self._log.warning("No XMLTV URL configured, skipping XMLTV fill")
            return step.finish("skipped", "XMLTV source not configured")

        if not force and not await self.staleness.is_stale():
            self._log.info("XMLTV data is up to date")
            return step.finish("skipped", "Programme data is up to date")

        self._log.info(f"Fetching XMLTV from {mask_url(self.xmltv_url)}...")
        content = await self.fetcher.fetch(self.xmltv_url, XMLTV_CACHE_NAME, force)
        if not content:
            self._log.error("No XMLTV content available")
            return step.finish("failed", "No XMLTV content available")

        try:
            xmltv_path = await self.file_cache.write_cached_file(XMLTV_CACHE_NAME, content)
        except OSError as e:
            self._log.error(f"Failed to write XMLTV to cache: {e}")
            return step.finish("failed", f"Cache write failed: {e}")
        if xmltv_path is None:
            self._log.error("XMLTV path is unavailable. Cannot read file.")
            return step.finish("failed", "XMLTV cache path unavailable")

        # Parser streams from disk from here on
        del content

        document = await parse_xmltv_async(
            self.parser,
            xmltv_path,
            full=True,
            parse_timeout_seconds=self.parse_timeout_sec,
        )
        if not document.channels and not document.programmes:
            self._log.error("XMLTV produced no channels or programmes; keeping stored data")
            return step.finish("failed", "XMLTV document yielded no data")

        try:
            async with session_scope() as session:
                if document.channels:
                    self._log.info(f"Found {len(document.channels)} channels in XMLTV")
                    await clear_channels(session)
                    step.channels_written = await add_channels(
                        session, document.channels, self.channels_chunk_size
                    )
                if document.programmes:
                    await clear_programmes(session)
                    step.programmes_written = await add_programmes(
                        session, document.programmes, self.programmes_chunk_size
                    )
        except _STEP_ERRORS as e:
            self._log.error(f"Failed to store XMLTV data: {e}", exc_info=True)
            step.channels_written = 0
            step.programmes_written = 0
            return step.finish("failed", f"Store write failed: {e}")

        log_section_end(self._log, "XMLTV fill")
        return step.finish("success")

    async def fill_db_channels_from_playlist(self, force: bool = False) -> StepSummary:
        """Merge playlist stream URLs into the stored channels."""
        step = StepSummary(name="playlist", started_at=utc_now())
        log_section_start(self._log, "Playlist fill")

        if not self.playlist_url:
            self._log.info("No playlist URL configured, skipping M3U parsing")
            return step.finish("skipped", "Playlist source not configured")

        content = await self.fetcher.fetch(self.playlist_url, PLAYLIST_CACHE_NAME, force)
        if not content:
            self._log.warning("No playlist content received")
            return step.finish("failed", "No playlist content available")

        try:
            await self.file_cache.write_cached_file(PLAYLIST_CACHE_NAME, content)
        except OSError as e:
            self._log.warning(f"Could not cache playlist: {e}")

        self._log.info("Parsing M3U playlist for channel URLs...")
        playlist_channels = parse_playlist(content, log=self._log)
        del content

        if not playlist_channels:
            self._log.warning("Playlist contained no channels; keeping stored channels")
            return step.finish("skipped", "Playlist contained no channels")

        try:
            async with session_scope() as session:
                existing_channels = await get_channel_entries(session)
                merged_channels = reconcile_channels(
                    existing_channels, playlist_channels, log=self._log
                )
                log_merge_summary(
                    self._log,
                    len(existing_channels),
                    len(playlist_channels),
                    len(merged_channels),
                )
                if merged_channels:
                    await clear_channels(session)
                    step.channels_written = await add_channels(
                        session, merged_channels, self.channels_chunk_size
                    )
        except _STEP_ERRORS as e:
            self._log.error(f"Failed to store merged channels: {e}", exc_info=True)
            step.channels_written = 0
            return step.finish("failed", f"Store write failed: {e}")

        self._log.info(f"Saved {step.channels_written} merged channels to database")
        log_section_end(self._log, "Playlist fill")
        return step.finish("success")


async def run_scheduled_refresh() -> dict:
    """Scheduler callback: forced refresh that never re-arms the scheduler."""
    return await download_cache_and_fill_db(force=True)


iptv_scheduler = IPTVScheduler(
    run_scheduled_refresh,
    interval_hours=settings.iptv_refresh_interval_hours,
    cron=settings.iptv_refresh_cron,
    misfire_grace_sec=settings.iptv_refresh_misfire_grace_sec,
)


async def download_cache_and_fill_db(force: bool = False) -> dict:
    """
    Main entry point for a refresh cycle with concurrency protection.

    Startup calls this unforced (staleness-gated, arms the scheduler); the
    scheduler calls it forced.

    Returns:
        Dictionary with step statistics or error/skip message.
    """
    async def _run() -> dict:
        run_log = new_run_logger(logger)
        pipeline = IPTVRefreshPipeline.from_settings(
            settings,
            scheduler=iptv_scheduler,
            log=run_log,
        )
        try:
            return await pipeline.run(force)
        except Exception as exc:  # Catch-all so ingestion never takes the host down
            run_log.error(f"Unexpected error during IPTV refresh: {exc}", exc_info=True)
            return {"error": str(exc)}

    return await get_refresh_coordinator().execute(_run)
