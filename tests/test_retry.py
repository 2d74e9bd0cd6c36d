import pytest

from sync.retry import with_retry
from tests.conftest import RecordingSleep


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0
        self.errors = []

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            error = RuntimeError(f"failure {self.calls}")
            self.errors.append(error)
            raise error
        return self.result


@pytest.mark.asyncio
async def test_succeeds_on_third_attempt():
    sleep = RecordingSleep()
    operation = Flaky(failures=2)

    result = await with_retry(operation, max_attempts=3, base_delay=1.0, sleep=sleep)

    assert result == "ok"
    assert operation.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_reraises_last_error():
    sleep = RecordingSleep()
    operation = Flaky(failures=5)

    with pytest.raises(RuntimeError) as exc_info:
        await with_retry(operation, max_attempts=3, base_delay=0.5, sleep=sleep)

    assert exc_info.value is operation.errors[-1]
    assert operation.calls == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_non_positive_attempts_run_once():
    sleep = RecordingSleep()
    operation = Flaky(failures=1)

    with pytest.raises(RuntimeError):
        await with_retry(operation, max_attempts=0, sleep=sleep)

    assert operation.calls == 1
    assert sleep.delays == []
