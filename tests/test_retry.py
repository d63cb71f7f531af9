# tests/test_retry.py
import pytest

from retry import RetryConfig, calculate_backoff, retry


def test_backoff_grows_and_caps():
    config = RetryConfig(initial_delay=1.0, max_delay=5.0, jitter=False)
    assert [calculate_backoff(a, config) for a in range(4)] == [1.0, 2.0, 4.0, 5.0]


def test_jitter_stays_in_range():
    config = RetryConfig(initial_delay=2.0, jitter=True, jitter_range=0.1)
    for _ in range(50):
        assert 1.8 <= calculate_backoff(0, config) <= 2.2


def test_retries_then_succeeds():
    calls = []
    delays = []

    @retry(exceptions=(ConnectionError,), max_attempts=3, jitter=False, sleep=delays.append)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("nope")
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 3
    assert delays == [1.0, 2.0]


def test_reraises_after_last_attempt():
    seen = []

    @retry(exceptions=(ConnectionError,), max_attempts=2, sleep=lambda s: None,
           on_retry=lambda attempt, e, delay: seen.append(attempt))
    def down():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        down()
    assert seen == [0]


def test_other_exceptions_pass_through():
    @retry(exceptions=(ConnectionError,), sleep=lambda s: None)
    def bad():
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        bad()
