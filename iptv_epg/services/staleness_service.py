"""
Programme Staleness Check

Decides whether stored programme data still covers enough of the future to
skip re-downloading the XMLTV guide.
"""
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from iptv_epg.database import session_scope
from iptv_epg.services.db_service import get_programme_coverage
from iptv_epg.utils.logging_helpers import LoggerLike
from iptv_epg.utils.timezone import to_epoch_seconds, utc_now


logger = logging.getLogger(__name__)


async def _stored_coverage() -> int | None:
    async with session_scope() as session:
        return await get_programme_coverage(session)


class StalenessOracle:
    """Stale when stored programmes end before now + the minimum coverage horizon."""

    def __init__(
        self,
        min_future_coverage_hours: int = 12,
        *,
        coverage_loader: Callable[[], Awaitable[int | None]] | None = None,
        log: LoggerLike | None = None,
    ) -> None:
        self.min_future_coverage = timedelta(hours=min_future_coverage_hours)
        self._load_coverage = coverage_loader or _stored_coverage
        self._log = log or logger

    async def is_stale(self, now: datetime | None = None) -> bool:
        """
        Check stored programme coverage

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            True if programme data should be refreshed
        """
        now = now or utc_now()
        try:
            latest_stop = await self._load_coverage()
        except (SQLAlchemyError, RuntimeError) as e:
            self._log.warning(f"Could not read programme coverage, treating data as stale: {e}")
            return True

        if latest_stop is None:
            self._log.info("No programmes stored; programme data is stale")
            return True

        required_until = to_epoch_seconds(now + self.min_future_coverage)
        if latest_stop < required_until:
            self._log.info(
                f"Programme data covers until {latest_stop}, need {required_until}; data is stale"
            )
            return True

        self._log.debug(f"Programme data covers until {latest_stop}; no refresh needed")
        return False
