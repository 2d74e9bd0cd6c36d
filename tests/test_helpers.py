from datetime import datetime, timedelta, timezone

import pytest

from utils.helpers import BatchProcessor, DataHelper, StringHelper, TimeHelper
from tests.conftest import RecordingSleep


class TestParseTimestamp:
    @pytest.mark.parametrize("value", [None, "", "   ", True, "not a date", [1, 2]])
    def test_unparseable_values(self, value):
        assert TimeHelper.parse_timestamp(value) is None

    def test_remote_wall_time_is_utc(self):
        assert TimeHelper.parse_timestamp("2024-03-01 12:30:05") == datetime(2024, 3, 1, 12, 30, 5)

    def test_fractional_seconds(self):
        parsed = TimeHelper.parse_timestamp("2024-03-01 12:30:05.250")
        assert parsed == datetime(2024, 3, 1, 12, 30, 5, 250000)

    def test_offset_is_converted(self):
        assert TimeHelper.parse_timestamp("2024-03-01T14:30:05+02:00") == datetime(2024, 3, 1, 12, 30, 5)
        assert TimeHelper.parse_timestamp("2024-03-01T12:30:05Z") == datetime(2024, 3, 1, 12, 30, 5)

    def test_epoch_seconds_and_milliseconds(self):
        expected = datetime(2023, 11, 14, 22, 13, 20)
        assert TimeHelper.parse_timestamp(1_700_000_000) == expected
        assert TimeHelper.parse_timestamp(1_700_000_000_000) == expected
        assert TimeHelper.parse_timestamp("1700000000") == expected

    def test_aware_datetime_drops_tz(self):
        aware = datetime(2024, 1, 1, 5, 0, tzinfo=timezone(timedelta(hours=5)))
        assert TimeHelper.parse_timestamp(aware) == datetime(2024, 1, 1, 0, 0)


def test_to_iso_uses_z_suffix():
    assert TimeHelper.to_iso(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"
    assert TimeHelper.to_iso(None) is None


def test_seconds_to_human_readable():
    assert TimeHelper.seconds_to_human_readable(0) == "0s"
    assert TimeHelper.seconds_to_human_readable(9015) == "2h 30m 15s"
    assert TimeHelper.seconds_to_human_readable(90000) == "1d 1h"


def test_random_string_alphabet():
    value = StringHelper.generate_random_string(9)
    assert len(value) == 9
    assert value.isalnum() and value == value.lower()


def test_chunk_list():
    assert DataHelper.chunk_list([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]


@pytest.mark.asyncio
async def test_batches_run_sequentially_with_pause():
    sleep = RecordingSleep()
    seen = []

    async def process(batch):
        seen.append(list(batch))
        return [item * 10 for item in batch]

    results = await BatchProcessor.process_in_batches(
        list(range(1, 8)), 3, process, delay_between_batches=1.0, sleep=sleep
    )

    assert seen == [[1, 2, 3], [4, 5, 6], [7]]
    assert results == [10, 20, 30, 40, 50, 60, 70]
    assert sleep.delays == [1.0, 1.0]
