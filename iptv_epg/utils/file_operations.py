"""
File operation utilities

This module handles remote downloads with retry logic and the local file cache
that holds feed content between download and parsing.
"""
import logging
from pathlib import Path
import asyncio

import aiofiles
import httpx

from iptv_epg.config import mask_url
from iptv_epg.utils.logging_helpers import LoggerLike


logger = logging.getLogger(__name__)


async def download_content(
    url: str,
    timeout: float = 120.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    log: LoggerLike | None = None,
) -> bytes | None:
    """
    Download a resource from URL with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx.
    Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        url: URL to download from
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)

    Keyword Args:
        transport: Optional httpx transport (used by tests)
        log: Logger to report progress on

    Returns:
        Response body, or None when every attempt failed
    """
    log = log or logger
    safe_url = mask_url(url)
    log.info(f"Downloading {safe_url}...")

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()

                file_size = len(response.content) / (1024 * 1024)
                log.info(f"Downloaded {file_size:.2f} MB from {safe_url}")

                return response.content

        except httpx.HTTPStatusError as e:
            # HTTP errors - don't retry on 4xx (client error), retry on 5xx (server error)
            if 400 <= e.response.status_code < 500:
                log.error(f"HTTP {e.response.status_code} (client error) for {safe_url}, not retrying")
                return None

            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                log.warning(
                    f"Download attempt {attempt + 1}/{max_retries} failed "
                    f"(HTTP {e.response.status_code} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                log.error(f"Download failed after {max_retries} attempts (HTTP {e.response.status_code})")

        except httpx.TransportError as e:
            # Timeouts, connection resets, DNS failures - retry
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                log.warning(
                    f"Download attempt {attempt + 1}/{max_retries} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                log.error(f"Download failed after {max_retries} attempts (transient error: {type(e).__name__})")

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Redirect loops, undecodable bodies, malformed URLs - retrying won't help
            log.error(f"Download of {safe_url} failed ({type(e).__name__}: {e}), not retrying")
            return None

    return None


def cleanup_temp_file(file_path: Path) -> bool:
    """
    Safely delete a cached file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up cached file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete cached file {file_path}: {e}")
        return False


class FileCache:
    """Local file cache addressed by logical name (e.g. 'xmltv.xml')."""

    def __init__(self, cache_dir: Path | str, *, log: LoggerLike | None = None) -> None:
        self.cache_dir = Path(cache_dir)
        self._log = log or logger

    def _resolve(self, name: str) -> Path:
        # Logical names are flat; strip any directory component
        return self.cache_dir / Path(name).name

    async def get_cached_file(self, name: str) -> bytes | None:
        """Return cached content for name, or None on miss or read error."""
        path = self._resolve(name)
        if not path.is_file():
            self._log.debug(f"Cache miss for {name}")
            return None
        try:
            async with aiofiles.open(path, 'rb') as f:
                content = await f.read()
        except OSError as e:
            self._log.warning(f"Error reading cached file {name}: {e}")
            return None
        self._log.debug(f"Cache hit for {name} ({len(content)} bytes)")
        return content

    async def get_cached_file_path(self, name: str) -> Path | None:
        """Return the on-disk path for name, creating the cache directory if needed."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._log.error(f"Cache directory {self.cache_dir} unavailable: {e}")
            return None
        return self._resolve(name)

    async def write_cached_file(self, name: str, content: bytes) -> Path | None:
        """
        Write content under name.

        Returns:
            Path written to, or None if the cache path is unavailable

        Raises:
            OSError: If the write itself fails
        """
        path = await self.get_cached_file_path(name)
        if path is None:
            return None
        async with aiofiles.open(path, 'wb') as f:
            await f.write(content)
        self._log.debug(f"Cached {len(content)} bytes as {name}")
        return path

    async def clear_cache(self) -> int:
        """Delete every cached file. Returns the number of files removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.iterdir():
            if path.is_file() and cleanup_temp_file(path):
                removed += 1
        self._log.info(f"Cleared {removed} cached file(s) from {self.cache_dir}")
        return removed
