import functools

import pytest

from mlbootstrap.utils.retry import RetryError, retry


class Flaky:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ValueError(f"failure {self.calls}")
        return "ok"


def test_retry_sleeps_between_attempts_only(sleep):
    fn = Flaky(failures=2)
    wrapped = retry(retries=5, delay=0.25, retry_on=(ValueError,), sleep=sleep)(fn)

    assert wrapped() == "ok"
    assert fn.calls == 3
    assert sleep.calls == [0.25, 0.25]


def test_retry_exhaustion_raises_with_cause(sleep):
    fn = Flaky(failures=10)
    seen = []
    wrapped = retry(
        retries=4,
        delay=1,
        retry_on=(ValueError,),
        on_retry=lambda attempt, exc: seen.append(attempt),
        sleep=sleep,
    )(fn)

    with pytest.raises(RetryError) as ei:
        wrapped()

    assert ei.value.attempts == 4
    assert isinstance(ei.value.__cause__, ValueError)
    assert fn.calls == 4
    assert seen == [1, 2, 3, 4]
    # no sleep after the last attempt
    assert len(sleep.calls) == 3


def test_retry_does_not_catch_other_exceptions(sleep):
    def boom():
        raise KeyError("nope")

    wrapped = retry(retries=3, delay=1, retry_on=(ValueError,), sleep=sleep)(boom)
    with pytest.raises(KeyError):
        wrapped()
    assert sleep.calls == []


def test_retry_exhaustion_names_partials(sleep):
    def fail(reason):
        raise ValueError(reason)

    wrapped = retry(retries=2, delay=1, retry_on=(ValueError,), sleep=sleep)(functools.partial(fail, "down"))

    with pytest.raises(RetryError, match="failed after 2 retries") as ei:
        wrapped()
    assert str(ei.value.__cause__) == "down"
