"""
Structured logging helpers for consistent log formatting.

Components receive their logger at construction; a refresh run wraps the
module logger in a run-scoped adapter so every line of one cycle carries the
same run id.
"""
import logging
from typing import Any, MutableMapping
from uuid import uuid4


LoggerLike = logging.Logger | logging.LoggerAdapter


class RunLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the refresh run id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        run_id = self.extra.get("run_id", "-") if self.extra else "-"
        return f"[run {run_id}] {msg}", kwargs


def new_run_logger(logger: logging.Logger, run_id: str | None = None) -> RunLoggerAdapter:
    """
    Build a logger scoped to a single refresh run.

    Args:
        logger: Base logger to wrap
        run_id: Optional explicit run id (random short id when omitted)

    Returns:
        Adapter that prefixes messages with the run id
    """
    return RunLoggerAdapter(logger, {"run_id": run_id or uuid4().hex[:8]})


def log_section_start(logger: LoggerLike, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: LoggerLike, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_merge_summary(
    logger: LoggerLike,
    existing_count: int,
    playlist_count: int,
    merged_count: int
) -> None:
    """Log reconciliation summary."""
    logger.info(
        f"Merge summary - Existing: {existing_count}, Playlist: {playlist_count}, Merged: {merged_count}"
    )
