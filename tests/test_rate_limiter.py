from app.services.rate_limiter import NoopRateLimiter, SlidingWindowRateLimiter
from tests.conftest import FakeClock


def make_limiter(max_events=3, window=60):
    clock = FakeClock()
    return SlidingWindowRateLimiter(max_events, window, clock=clock.monotonic), clock


def test_allows_up_to_ceiling():
    limiter, _ = make_limiter()
    assert [limiter.hit("a") for _ in range(4)] == [True, True, True, False]


def test_identities_are_independent():
    limiter, _ = make_limiter(max_events=1)
    assert limiter.hit("a")
    assert limiter.hit("b")
    assert not limiter.hit("a")


def test_window_slides():
    limiter, clock = make_limiter(max_events=2, window=10)
    assert limiter.hit("a")
    clock.advance(5)
    assert limiter.hit("a")

    # t=11: the t=0 hit has left the window, the t=5 one has not
    clock.advance(6)
    assert limiter.hit("a")
    assert not limiter.hit("a")


def test_rejected_hits_keep_client_throttled():
    limiter, clock = make_limiter(max_events=2, window=10)
    limiter.hit("a")
    limiter.hit("a")

    for _ in range(5):
        clock.advance(3)
        assert not limiter.hit("a")

    clock.advance(11)
    assert limiter.hit("a")


def test_sweep_drops_idle_identities():
    limiter, clock = make_limiter(window=10)
    limiter.hit("a")
    clock.advance(5)
    limiter.hit("b")
    assert len(limiter) == 2

    clock.advance(6)
    assert limiter.sweep() == 1
    assert len(limiter) == 1

    clock.advance(10)
    assert limiter.sweep() == 1
    assert len(limiter) == 0


def test_noop_limiter():
    limiter = NoopRateLimiter()
    assert all(limiter.hit("a") for _ in range(100))
    assert limiter.sweep() == 0
    assert len(limiter) == 0
