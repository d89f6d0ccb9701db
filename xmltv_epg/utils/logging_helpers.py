"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging without excessive decorative separators.
"""
import logging
from datetime import datetime, timezone


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_refresh_start(logger: logging.Logger) -> None:
    """Log guide refresh start."""
    logger.info(f"Guide refresh started at {datetime.now(timezone.utc).isoformat()}")


def log_refresh_end(logger: logging.Logger, duration_seconds: float) -> None:
    """Log guide refresh end."""
    logger.info(
        f"Guide refresh completed at {datetime.now(timezone.utc).isoformat()} "
        f"({duration_seconds:.1f}s)"
    )


def log_guide_summary(
    logger: logging.Logger,
    channels_count: int,
    listings_count: int,
    size_bytes: int
) -> None:
    """
    Log the size of a rendered guide.

    Args:
        logger: Logger instance
        channels_count: Number of channels in the document
        listings_count: Number of programmes in the document
        size_bytes: Rendered document size
    """
    logger.info(
        f"Generated XMLTV with {channels_count} channels and {listings_count} programs "
        f"({size_bytes / 1024:.1f} KB)"
    )


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url
