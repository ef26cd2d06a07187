import threading

import pytest

from chatnotify.rate_limit import FixedWindowRateLimiter


def test_capacity_three_allows_three_per_window(clock):
    limiter = FixedWindowRateLimiter(3, 60.0, clock=clock)
    assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]


def test_window_resets_after_duration(clock):
    limiter = FixedWindowRateLimiter(2, 60.0, clock=clock)
    assert limiter.try_acquire() and limiter.try_acquire()
    assert not limiter.try_acquire()

    clock.advance(59.0)
    assert not limiter.try_acquire()

    clock.advance(1.0)
    assert limiter.try_acquire()
    assert limiter.remaining() == 1


def test_boundary_burst_is_bounded_by_twice_capacity(clock):
    limiter = FixedWindowRateLimiter(5, 60.0, clock=clock)
    clock.advance(59.0)
    granted = sum(limiter.try_acquire() for _ in range(10))
    clock.advance(1.0)
    granted += sum(limiter.try_acquire() for _ in range(10))
    assert granted == 10


@pytest.mark.parametrize("capacity,window", [(0, 60.0), (-1, 60.0), (3, 0), (3, -5)])
def test_invalid_configuration_is_rejected(capacity, window):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(capacity, window)


def test_concurrent_acquire_never_exceeds_capacity(clock):
    limiter = FixedWindowRateLimiter(50, 60.0, clock=clock)
    results = []
    lock = threading.Lock()

    def worker():
        local = [limiter.try_acquire() for _ in range(20)]
        with lock:
            results.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 160
    assert sum(results) == 50
