import pytest

from inventory_recon.retry import RetryPolicy, linear_backoff


class Flaky(Exception):
    pass


class Fatal(Exception):
    pass


def failing_then(result, failures):
    calls = {"count": 0}

    def func():
        calls["count"] += 1
        if calls["count"] <= len(failures):
            raise failures[calls["count"] - 1]
        return result

    return func, calls


def test_linear_backoff_grows_with_attempt_number():
    assert [linear_backoff(n, step=2.0) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]


def test_retries_retryable_errors_until_success(sleeps):
    policy = RetryPolicy(max_attempts=3, is_retryable=lambda e: isinstance(e, Flaky), sleep=sleeps,
                         backoff=lambda n: n * 2)
    func, calls = failing_then("ok", [Flaky(), Flaky()])

    assert policy.call(func) == "ok"
    assert calls["count"] == 3
    assert sleeps.delays == [2, 4]


def test_gives_up_after_max_attempts(sleeps):
    policy = RetryPolicy(max_attempts=3, is_retryable=lambda e: True, sleep=sleeps,
                         backoff=lambda n: n * 2)
    func, calls = failing_then("never", [Flaky(), Flaky(), Flaky()])

    with pytest.raises(Flaky):
        policy.call(func)
    assert calls["count"] == 3
    assert sleeps.delays == [2, 4]


def test_non_retryable_error_is_raised_immediately(sleeps):
    policy = RetryPolicy(max_attempts=3, is_retryable=lambda e: isinstance(e, Flaky), sleep=sleeps)
    func, calls = failing_then("never", [Fatal()])

    with pytest.raises(Fatal):
        policy.call(func)
    assert calls["count"] == 1
    assert sleeps.delays == []
