"""
============================================================================
KUMASYNC - HELPERS UTILITY
============================================================================
Collection of helper functions and utilities.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from utils.logger import get_logger


logger = get_logger(__name__)


# Values below this are epoch seconds, values at or above it epoch milliseconds
EPOCH_MS_THRESHOLD = 1e10

_REMOTE_DATETIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}(\.\d{1,6})?$"
)


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.

    Every datetime handled by the application is naive and expressed
    in UTC.
    """

    @staticmethod
    def utc_now() -> datetime:
        """Get current UTC datetime (naive)."""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def format_datetime(dt: datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
        """
        Format datetime to string.

        Args:
            dt: Datetime to format
            fmt: Format string

        Returns:
            Formatted string
        """
        return dt.strftime(fmt)

    @staticmethod
    def to_iso(dt: Optional[datetime]) -> Optional[str]:
        """Serialize a naive UTC datetime as ISO-8601 with a Z suffix."""
        if dt is None:
            return None
        return dt.isoformat(timespec="milliseconds") + "Z"

    @staticmethod
    def from_epoch(value: float) -> datetime:
        """Convert epoch seconds to a naive UTC datetime."""
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)

    @staticmethod
    def parse_timestamp(value: Any) -> Optional[datetime]:
        """
        Parse a remote timestamp into a naive UTC datetime.

        Decision table:

        ============================  =====================================
        input                         interpretation
        ============================  =====================================
        ``None`` / empty string       ``None``
        ``bool``                      ``None`` (never a timestamp)
        aware ``datetime``            converted to UTC, tzinfo dropped
        naive ``datetime``            returned unchanged (already UTC)
        number < 1e10                 epoch seconds
        number >= 1e10                epoch milliseconds
        numeric string                same as the number it spells
        ``YYYY-MM-DD HH:MM:SS[.f]``   UTC wall time (status pages emit UTC)
        ISO-8601 with offset or Z     converted to UTC
        anything else                 ``None``
        ============================  =====================================
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return value.astimezone(timezone.utc).replace(tzinfo=None)
            return value

        if isinstance(value, (int, float)):
            seconds = value / 1000 if value >= EPOCH_MS_THRESHOLD else value
            try:
                return TimeHelper.from_epoch(seconds)
            except (OverflowError, OSError, ValueError):
                return None

        if not isinstance(value, str):
            return None

        text = value.strip()
        if not text:
            return None

        try:
            return TimeHelper.parse_timestamp(float(text))
        except ValueError:
            pass

        if _REMOTE_DATETIME.match(text):
            try:
                return datetime.fromisoformat(text.replace(" ", "T"))
            except ValueError:
                return None

        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return TimeHelper.parse_timestamp(parsed)

    @staticmethod
    def seconds_to_human_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        seconds = int(seconds)
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)

    @staticmethod
    def window_start(now: datetime, seconds: Union[int, float]) -> datetime:
        """Start of a trailing window ending at ``now``."""
        return now - timedelta(seconds=seconds)


# ============================================================================
# STRING UTILITIES
# ============================================================================

class StringHelper:
    """
    String manipulation utilities.
    """

    @staticmethod
    def truncate(text: str, max_length: int = 100, suffix: str = "...") -> str:
        """Truncate text to a maximum length."""
        if len(text) <= max_length:
            return text
        return text[:max_length - len(suffix)] + suffix

    @staticmethod
    def generate_random_string(length: int = 9) -> str:
        """Generate a random lowercase alphanumeric string."""
        alphabet = string.ascii_lowercase + string.digits
        return "".join(secrets.choice(alphabet) for _ in range(length))


# ============================================================================
# BATCH PROCESSOR
# ============================================================================

class BatchProcessor:
    """
    Process items in batches.
    """

    @staticmethod
    async def process_in_batches(
        items: List[Any],
        batch_size: int,
        process_func: Callable[[List[Any]], Awaitable[List[Any]]],
        delay_between_batches: float = 0.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> List[Any]:
        """
        Process items in batches.

        A batch is only started once the previous one has returned.

        Args:
            items: List of items to process
            batch_size: Number of items per batch
            process_func: Async function to process each batch
            delay_between_batches: Delay between batches in seconds
            sleep: Sleep coroutine used for the pause

        Returns:
            List of results, in item order
        """
        results: List[Any] = []
        batches = DataHelper.chunk_list(items, max(1, batch_size))

        for index, batch in enumerate(batches):
            logger.debug(f"Processing batch {index + 1}/{len(batches)} ({len(batch)} items)")

            batch_results = await process_func(batch)
            results.extend(batch_results)

            if delay_between_batches > 0 and index < len(batches) - 1:
                await sleep(delay_between_batches)

        return results


# ============================================================================
# DATA STRUCTURE HELPERS
# ============================================================================

class DataHelper:
    """
    Data structure manipulation helpers.
    """

    @staticmethod
    def chunk_list(lst: List[Any], chunk_size: int) -> List[List[Any]]:
        """
        Split list into chunks.

        Args:
            lst: List to split
            chunk_size: Size of each chunk

        Returns:
            List of chunks
        """
        return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]

    @staticmethod
    def filter_dict(d: Dict, keys: List[str]) -> Dict:
        """Keep only the given keys of a dictionary."""
        return {k: v for k, v in d.items() if k in keys}
