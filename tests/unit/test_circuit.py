from blockflow.utils.circuit import CircuitBreaker, CircuitBreakers, CircuitState


class _Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_opens_after_threshold_consecutive_failures():
    breaker = CircuitBreaker(threshold=3, reset_timeout=10, clock=_Clock())

    breaker.record_failure()
    breaker.record_failure()
    assert breaker.allow()

    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow()


def test_success_resets_the_count():
    breaker = CircuitBreaker(threshold=2, clock=_Clock())

    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failures == 1


def test_half_open_trial_after_reset_timeout():
    clock = _Clock()
    breaker = CircuitBreaker(threshold=1, reset_timeout=10, clock=clock)
    breaker.record_failure()
    assert not breaker.allow()

    clock.now += 10
    assert breaker.allow()
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow()

    clock.now += 10
    assert breaker.allow()
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failures == 0


def test_breakers_are_keyed():
    breakers = CircuitBreakers(threshold=1)
    breakers.get("HTTP_REQUEST").record_failure()

    assert not breakers.get("HTTP_REQUEST").allow()
    assert breakers.get("TRANSFORM").allow()
    assert breakers.enabled
    assert not CircuitBreakers(threshold=0).enabled
