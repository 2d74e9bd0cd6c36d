"""
============================================================================
KUMASYNC - VALIDATORS UTILITY
============================================================================
Validation functions for source URLs, status page slugs and
administrative request input.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import validators as external_validators

from config.constants import Limits
from exceptions.validation import (
    InvalidFormatError,
    InvalidIntervalError,
    InvalidURLError,
    MissingFieldError,
)
from utils.logger import get_logger


logger = get_logger(__name__)


# ============================================================================
# URL VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL validation and normalization.
    """

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Check if URL is a valid http(s) URL.

        Hosts without a TLD (``localhost``, container names) are accepted
        since self-hosted status pages commonly live on them.
        """
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            return False

        result = external_validators.url(url, simple_host=True)
        return result is True

    @staticmethod
    def normalize_base_url(url: str) -> str:
        """Strip whitespace and trailing slashes from a base URL."""
        return url.strip().rstrip("/")

    @staticmethod
    def extract_domain(url: str) -> Optional[str]:
        """Extract the network location of a URL."""
        parsed = urlparse(url)
        return parsed.netloc or None


# ============================================================================
# SOURCE VALIDATORS
# ============================================================================

class SourceValidator:
    """
    Validation of source create and update requests.
    """

    SLUG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

    REQUIRED_FIELDS = ("name", "url", "slug")

    @staticmethod
    def validate_slug(slug: str) -> str:
        """Validate a status page slug."""
        slug = slug.strip()
        if len(slug) > Limits.SLUG_MAX or not SourceValidator.SLUG_PATTERN.match(slug):
            raise InvalidFormatError(
                "Status Page Slug may only contain letters, digits, '-' and '_'",
                field="slug",
                expected="slug",
            )
        return slug

    @staticmethod
    def validate_url(url: str) -> str:
        """Validate and normalize a source base URL."""
        normalized = URLValidator.normalize_base_url(url)
        if not URLValidator.is_valid_url(normalized):
            raise InvalidURLError(
                "URL must be a valid http(s) address",
                url=url,
                reason="invalid_url",
            )
        return normalized

    @classmethod
    def validate_source(cls, data: Any, partial: bool = False) -> Dict[str, str]:
        """
        Validate a source payload.

        Args:
            data: Decoded JSON body
            partial: Allow missing fields (update requests)

        Returns:
            Cleaned ``name``/``url``/``slug`` values that were supplied

        Raises:
            MissingFieldError: A required field is missing or blank
            InvalidFormatError: The body or a field has the wrong shape
            InvalidURLError: The base URL is not a valid http(s) URL
        """
        if not isinstance(data, dict):
            raise InvalidFormatError("Request body must be a JSON object", expected="object")

        # Dashboard forms post the slug as status_page_slug
        values = {
            "name": data.get("name"),
            "url": data.get("url"),
            "slug": data.get("slug", data.get("status_page_slug")),
        }

        for field, value in values.items():
            if value is not None and not isinstance(value, str):
                raise InvalidFormatError(f"{field} must be a string", field=field, expected="string")

        missing = [
            field for field in cls.REQUIRED_FIELDS
            if values[field] is None or not values[field].strip()
        ]
        if partial:
            missing = [field for field in missing if values[field] is not None]

        if missing:
            raise MissingFieldError(
                "Name, URL, and Status Page Slug are required",
                fields=missing,
            )

        cleaned: Dict[str, str] = {}
        if values["name"] is not None:
            name = values["name"].strip()
            if len(name) > Limits.SOURCE_NAME_MAX:
                raise InvalidFormatError("name is too long", field="name")
            cleaned["name"] = name
        if values["url"] is not None:
            cleaned["url"] = cls.validate_url(values["url"])
        if values["slug"] is not None:
            cleaned["slug"] = cls.validate_slug(values["slug"])

        return cleaned


# ============================================================================
# DATA VALIDATORS
# ============================================================================

class DataValidator:
    """
    General data validation utilities.
    """

    @staticmethod
    def parse_int(value: Any, field: str, default: Optional[int] = None) -> Optional[int]:
        """
        Parse an integer from a JSON or query string value.

        Raises:
            InvalidFormatError: The value is not an integer
        """
        if value is None or value == "":
            return default

        if isinstance(value, bool):
            raise InvalidFormatError(f"{field} must be an integer", field=field, expected="integer")

        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidFormatError(f"{field} must be an integer", field=field, expected="integer")

    @staticmethod
    def require_interval(value: Any, min_interval: int) -> int:
        """
        Validate an externally requested scheduler interval.

        Raises:
            InvalidIntervalError: The interval is not a number or is below the floor
        """
        if isinstance(value, bool):
            raise InvalidIntervalError("Sync interval must be a number", interval=value)

        try:
            interval = int(value)
        except (TypeError, ValueError):
            raise InvalidIntervalError("Sync interval must be a number", interval=value)

        if interval < min_interval:
            raise InvalidIntervalError(
                f"Sync interval must be at least {min_interval} seconds",
                interval=interval,
                min_interval=min_interval,
            )

        return interval
