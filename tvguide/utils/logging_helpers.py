"""
Structured logging helpers for consistent log formatting.
"""
import logging

from tvguide.services.fetch_types import UpdateResult


def sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        authority, _, path = rest.partition("/")
        if "@" in authority:
            host = authority.rsplit("@", 1)[1]
            suffix = f"/{path}" if path or rest.endswith("/") else ""
            return f"{protocol}://***:***@{host}{suffix}"
        return url
    except (ValueError, IndexError):
        return url


def log_update_summary(logger: logging.Logger, result: UpdateResult) -> None:
    """
    Log the outcome of a feed update.

    Args:
        logger: Logger instance
        result: Result of the update
    """
    if result.save is None:
        logger.info(f"Feed update finished: {result.status}")
        return

    logger.info(
        f"Feed update finished: {result.status} - parsed {result.channels_parsed} channels, "
        f"{result.programmes_parsed} programmes; inserted {result.save.programmes_inserted}, "
        f"pruned {result.save.programmes_deleted}, skipped {result.save.programmes_skipped}"
    )
