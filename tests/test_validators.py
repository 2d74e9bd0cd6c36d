import pytest

from exceptions.validation import (
    InvalidFormatError,
    InvalidIntervalError,
    InvalidURLError,
    MissingFieldError,
)
from utils.validators import DataValidator, SourceValidator, URLValidator


class TestSourceValidator:
    def test_valid_payload_is_normalized(self):
        cleaned = SourceValidator.validate_source({
            "name": "  Example ",
            "url": "https://status.example.com/ ",
            "slug": "main",
        })

        assert cleaned == {"name": "Example", "url": "https://status.example.com", "slug": "main"}

    def test_status_page_slug_alias(self):
        cleaned = SourceValidator.validate_source({
            "name": "Local",
            "url": "http://localhost:3001",
            "status_page_slug": "home-lab",
        })

        assert cleaned["slug"] == "home-lab"

    def test_missing_fields(self):
        with pytest.raises(MissingFieldError) as exc_info:
            SourceValidator.validate_source({"name": "Example", "url": ""})

        assert exc_info.value.message == "Name, URL, and Status Page Slug are required"
        assert exc_info.value.details["fields"] == ["url", "slug"]
        assert exc_info.value.http_status == 400

    def test_partial_allows_absent_fields(self):
        assert SourceValidator.validate_source({"name": "Renamed"}, partial=True) == {"name": "Renamed"}

    def test_partial_rejects_blank_fields(self):
        with pytest.raises(MissingFieldError):
            SourceValidator.validate_source({"name": "  "}, partial=True)

    def test_invalid_url(self):
        with pytest.raises(InvalidURLError):
            SourceValidator.validate_source({"name": "x", "url": "ftp://ex.com", "slug": "main"})

    def test_invalid_slug(self):
        with pytest.raises(InvalidFormatError):
            SourceValidator.validate_source({"name": "x", "url": "https://ex.com", "slug": "a/b"})

    def test_non_object_body(self):
        with pytest.raises(InvalidFormatError):
            SourceValidator.validate_source(["not", "an", "object"])


def test_url_validator():
    assert URLValidator.is_valid_url("https://ex.com")
    assert not URLValidator.is_valid_url("ex.com")
    assert URLValidator.extract_domain("https://ex.com:8443/x") == "ex.com:8443"


class TestDataValidator:
    def test_parse_int(self):
        assert DataValidator.parse_int("42", "limit") == 42
        assert DataValidator.parse_int(None, "limit", default=50) == 50
        with pytest.raises(InvalidFormatError):
            DataValidator.parse_int("abc", "limit")
        with pytest.raises(InvalidFormatError):
            DataValidator.parse_int(True, "limit")

    def test_require_interval_floor(self):
        assert DataValidator.require_interval(30, 30) == 30
        with pytest.raises(InvalidIntervalError) as exc_info:
            DataValidator.require_interval(10, 30)

        assert exc_info.value.message == "Sync interval must be at least 30 seconds"

    def test_require_interval_not_a_number(self):
        with pytest.raises(InvalidIntervalError):
            DataValidator.require_interval("soon", 30)
