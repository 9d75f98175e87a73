"""Tests for CircuitBreaker and CircuitBreakerRegistry."""

import pytest

from courier.execution import CircuitBreaker, CircuitBreakerRegistry, CircuitState


@pytest.fixture()
def breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(
        name="slack", failure_threshold=5, reset_timeout_ms=1000, half_open_max=1, clock=clock
    )


def _trip(breaker: CircuitBreaker) -> None:
    for _ in range(breaker.failure_threshold):
        breaker.record_failure()


class TestClosed:

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.try_acquire() is True
        assert breaker.can_acquire() is True

    def test_opens_at_threshold(self, breaker):
        for _ in range(4):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.try_acquire() is False

    def test_success_zeroes_failures(self, breaker):
        for _ in range(4):
            breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.failure_count == 1
        assert breaker.state == CircuitState.CLOSED


class TestOpen:

    def test_rejects_until_reset_timeout(self, breaker, clock):
        _trip(breaker)

        clock.advance_ms(999)
        assert breaker.try_acquire() is False
        assert breaker.stats.rejected_requests == 1
        assert breaker.stats.total_requests == 6

        clock.advance_ms(1)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_can_acquire_is_false_while_open(self, breaker):
        _trip(breaker)
        assert breaker.can_acquire() is False


class TestHalfOpen:

    def test_single_trial_slot(self, breaker, clock):
        _trip(breaker)
        clock.advance_ms(1000)

        assert breaker.try_acquire() is True
        assert breaker.half_open_attempts == 1
        assert breaker.try_acquire() is False

    def test_can_acquire_does_not_consume_slot(self, breaker, clock):
        _trip(breaker)
        clock.advance_ms(1000)

        assert breaker.can_acquire() is True
        assert breaker.can_acquire() is True
        assert breaker.half_open_attempts == 0
        assert breaker.try_acquire() is True

    def test_trial_success_closes(self, breaker, clock):
        _trip(breaker)
        clock.advance_ms(1000)
        breaker.try_acquire()

        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.half_open_attempts == 0

    def test_trial_failure_reopens(self, breaker, clock):
        _trip(breaker)
        clock.advance_ms(1000)
        breaker.try_acquire()

        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.half_open_attempts == 0
        assert breaker.try_acquire() is False

        clock.advance_ms(1000)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_multiple_trial_slots(self, clock):
        breaker = CircuitBreaker(
            name="discord", failure_threshold=1, reset_timeout_ms=0, half_open_max=2, clock=clock
        )
        breaker.record_failure()

        assert breaker.try_acquire() is True
        assert breaker.try_acquire() is True
        assert breaker.try_acquire() is False

    def test_release_returns_trial_slot(self, breaker, clock):
        _trip(breaker)
        clock.advance_ms(1000)
        breaker.try_acquire()

        breaker.release()

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.half_open_attempts == 0
        assert breaker.try_acquire() is True

    def test_release_is_noop_when_closed(self, breaker):
        breaker.release()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.half_open_attempts == 0


class TestReset:

    def test_reset_forces_closed(self, breaker):
        _trip(breaker)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.try_acquire() is True

    def test_state_changes_counted(self, breaker, clock):
        _trip(breaker)
        clock.advance_ms(1000)
        breaker.try_acquire()
        breaker.record_success()

        assert breaker.stats.state_changes == 3
        assert breaker.stats.failure_rate == pytest.approx(5 / 6 * 100)


class TestRegistry:

    def test_get_or_create_applies_defaults(self, clock):
        registry = CircuitBreakerRegistry(failure_threshold=2, clock=clock)

        slack = registry.get_or_create("slack")

        assert slack.failure_threshold == 2
        assert registry.get_or_create("slack") is slack
        assert registry.get("telegram") is None
        assert registry.list_all() == ["slack"]

    def test_kwargs_override_defaults(self):
        registry = CircuitBreakerRegistry(failure_threshold=2)
        assert registry.get_or_create("slack", failure_threshold=9).failure_threshold == 9

    def test_snapshot_and_reset_all(self, clock):
        registry = CircuitBreakerRegistry(failure_threshold=1, clock=clock)
        registry.get_or_create("slack").record_failure()
        registry.get_or_create("discord")

        assert registry.snapshot() == {"slack": "open", "discord": "closed"}

        registry.reset_all()
        assert registry.snapshot() == {"slack": "closed", "discord": "closed"}

    def test_remove_and_clear(self):
        registry = CircuitBreakerRegistry()
        registry.get_or_create("a")
        registry.get_or_create("b")

        registry.remove("a")
        assert registry.list_all() == ["b"]

        registry.clear()
        assert registry.list_all() == []
