import threading

import pytest

from solana_pnl_tracker.errors import FatalRpcError, RetriesExhausted, ScanCancelled, TransientRpcError
from solana_pnl_tracker.retry import RetryPolicy, pause, with_retry


class Flaky:
    def __init__(self, failures, exc=TransientRpcError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("429 Too Many Requests", "getTransaction", 429)
        return "ok"


def test_recovers_after_transient_failures(sleep):
    fn = Flaky(2)
    assert with_retry(fn, "getTransaction", sleep=sleep, rand=lambda: 0.0) == "ok"
    assert fn.calls == 3
    assert sleep.waits == [pytest.approx(0.5), pytest.approx(0.9)]


def test_exhaustion_retries_exactly_max_then_raises(sleep):
    policy = RetryPolicy(max_retries=5)
    fn = Flaky(10 ** 6)
    with pytest.raises(RetriesExhausted) as ei:
        with_retry(fn, "getTransaction", policy, sleep=sleep)
    assert fn.calls == policy.max_retries + 1
    assert len(sleep.waits) == policy.max_retries
    assert ei.value.attempts == policy.max_retries + 1
    assert isinstance(ei.value, FatalRpcError)
    assert isinstance(ei.value.__cause__, TransientRpcError)
    bound = sum(policy.delays()) + policy.max_retries * policy.max_jitter
    assert sum(sleep.waits) <= bound


def test_backoff_is_capped(sleep):
    policy = RetryPolicy(max_retries=8, base_delay=1.0, growth=3.0, max_delay=5.0, max_jitter=0.0)
    with pytest.raises(RetriesExhausted):
        with_retry(Flaky(100), "x", policy, sleep=sleep)
    assert max(sleep.waits) == pytest.approx(5.0)
    assert sleep.waits[:3] == [pytest.approx(1.0), pytest.approx(3.0), pytest.approx(5.0)]


def test_jitter_is_added_within_bounds(sleep):
    policy = RetryPolicy(max_retries=3, base_delay=0.5, max_jitter=0.2)
    with pytest.raises(RetriesExhausted):
        with_retry(Flaky(100), "x", policy, sleep=sleep, rand=lambda: 0.999)
    for wait, base in zip(sleep.waits, policy.delays()):
        assert base <= wait < base + 0.2


def test_fatal_errors_are_not_retried(sleep):
    fn = Flaky(1, exc=FatalRpcError)
    with pytest.raises(FatalRpcError):
        with_retry(fn, "x", sleep=sleep)
    assert fn.calls == 1
    assert sleep.waits == []


def test_other_exceptions_propagate(sleep):
    def boom():
        raise KeyError("nope")

    with pytest.raises(KeyError):
        with_retry(boom, "x", sleep=sleep)
    assert sleep.waits == []


def test_cancel_before_call():
    ev = threading.Event()
    ev.set()
    fn = Flaky(0)
    with pytest.raises(ScanCancelled):
        with_retry(fn, "x", cancel=ev)
    assert fn.calls == 0


def test_cancel_interrupts_backoff_wait():
    ev = threading.Event()

    def fn():
        ev.set()
        raise TransientRpcError("timeout")

    with pytest.raises(ScanCancelled):
        with_retry(fn, "x", RetryPolicy(base_delay=30.0), cancel=ev)


def test_pause_skips_non_positive(sleep):
    pause(0, sleep=sleep)
    pause(-1, sleep=sleep)
    pause(0.3, sleep=sleep)
    assert sleep.waits == [0.3]
