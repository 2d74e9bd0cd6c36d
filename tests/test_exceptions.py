from exceptions.base import KumaSyncException
from exceptions.database import NotFoundError, PersistenceError
from exceptions.remote import SyncTimeoutError


def test_log_format_carries_details_and_cause():
    cause = OSError("disk full")
    error = PersistenceError("Failed to record sync start", operation="insert", table="sync_history", cause=cause)

    line = error.log_format()

    assert line.startswith("Exception: PersistenceError | Code: 2002 | Message: Failed to record sync start")
    assert "'operation': 'insert'" in line
    assert "'table': 'sync_history'" in line
    assert line.endswith("Cause: disk full")
    assert error.full_message == "[2002] Failed to record sync start"


def test_log_format_without_extras():
    assert KumaSyncException("plain").log_format() == "Exception: KumaSyncException | Code: 1000 | Message: plain"


def test_http_status_per_family():
    assert NotFoundError("Source with ID 1 not found").http_status == 404
    assert SyncTimeoutError("too slow").http_status == 504
    assert PersistenceError().http_status == 500
