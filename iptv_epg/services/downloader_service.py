"""
Feed Downloader Service

Retrieves remote feeds with bounded retries, preferring the local file cache
unless a refresh is forced. Separated from orchestration logic for better testability.
"""
import logging

import httpx

from iptv_epg.config import mask_url
from iptv_epg.utils.file_operations import FileCache, download_content
from iptv_epg.utils.logging_helpers import LoggerLike


logger = logging.getLogger(__name__)


class Fetcher:
    """Cache-aware feed fetcher. Never raises on network failure."""

    def __init__(
        self,
        file_cache: FileCache,
        *,
        timeout: float = 120.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
        log: LoggerLike | None = None,
    ) -> None:
        self.file_cache = file_cache
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._transport = transport
        self._log = log or logger

    async def fetch(self, url: str, cache_key: str, force_refresh: bool = False) -> bytes | None:
        """
        Fetch a feed, using the cached copy when allowed

        Args:
            url: Remote feed URL
            cache_key: Logical cache name (e.g. 'xmltv.xml')
            force_refresh: Skip the cache and always download

        Returns:
            Feed content, or None if neither cache nor network produced any
        """
        if not force_refresh:
            cached = await self.file_cache.get_cached_file(cache_key)
            if cached:
                self._log.info(f"Using cached {cache_key} ({len(cached)} bytes)")
                return cached

        self._log.info(
            f"{'Force flag set' if force_refresh else 'No cached content available'}, "
            f"fetching {cache_key} from {mask_url(url)}"
        )
        content = await download_content(
            url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            backoff_factor=self.backoff_factor,
            transport=self._transport,
            log=self._log,
        )
        if content is None:
            self._log.error(f"Fetch exhausted for {cache_key}; no content available")
        elif not content:
            self._log.warning(f"Empty response body for {cache_key}")
            return None
        return content
