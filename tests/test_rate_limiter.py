"""
Tests for request pacing, backoff and cooldowns.

Time never really passes: a fake clock is advanced by the fake sleep.
"""

import pytest

from src.mail_triage.config import parse_engine_config
from src.mail_triage.rate_limiter import RateLimiter, RateLimitState


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    @property
    def slept(self) -> float:
        return sum(self.sleeps)


def _settings(rate_limiting=None, backoff=None, messages=None):
    config = parse_engine_config(
        {
            "ClassificationSettings": {
                "Prompt": "p",
                "Classifications": {"OTHER": {}},
                "RateLimiting": rate_limiting or {},
                "EmailProcessing": {},
                "Messages": messages or {},
                "AiClassification": {"EnableAiClassification": False},
                "Retry": {"BackoffMultipliers": backoff or {}},
            }
        }
    )
    return config.classification_settings


@pytest.fixture
def clock():
    return FakeClock()


def _limiter(clock, progress=None, **kwargs) -> RateLimiter:
    return RateLimiter(_settings(**kwargs), progress=progress, clock=clock, sleep=clock.sleep)


class TestDelays:
    def test_error_delay(self, clock):
        limiter = _limiter(clock, backoff={"ErrorRetryBase": 10, "ExponentialBase": 2})
        assert limiter.error_delay(2) == 40

    def test_error_base_defaults_to_base_cooldown(self, clock):
        limiter = _limiter(clock, rate_limiting={"BaseCooldownSeconds": 7})
        assert limiter.error_delay(1) == 14

    def test_timeout_delay_defaults(self, clock):
        limiter = _limiter(clock)
        assert limiter.timeout_delay(1) == 10
        assert limiter.timeout_delay(3) == 40

    def test_rate_limit_delay_is_capped(self, clock):
        limiter = _limiter(clock, rate_limiting={"BaseCooldownSeconds": 10, "MaxCooldownMinutes": 1})
        assert limiter.rate_limit_delay(1) == 30
        assert limiter.rate_limit_delay(5) == 60

    def test_extended_cooldown(self, clock):
        limiter = _limiter(clock, rate_limiting={"BaseCooldownSeconds": 10, "MaxCooldownMinutes": 5})
        assert limiter.extended_cooldown_seconds() == 60

    def test_extended_cooldown_without_base(self, clock):
        assert _limiter(clock).extended_cooldown_seconds() == 60


class TestWaitForSlot:
    def test_window_full_waits_until_oldest_is_sixty_seconds_old(self, clock):
        limiter = _limiter(clock, rate_limiting={"RequestsPerMinute": 3})
        start = clock.now
        for _ in range(3):
            limiter.wait_for_slot()
            limiter.record_attempt()

        # only the 1.5 s pacing between the three calls
        assert clock.slept == pytest.approx(3.0)

        limiter.wait_for_slot()

        assert clock.now - start == pytest.approx(60)
        assert len(limiter.state.request_history) == 2

    def test_min_delay_defaults_to_1500_ms(self, clock):
        limiter = _limiter(clock)
        limiter.record_attempt()
        clock.now += 0.5

        limiter.wait_for_slot()

        assert clock.sleeps == [pytest.approx(1.0)]

    def test_zero_min_delay_uses_default(self, clock):
        limiter = _limiter(clock, rate_limiting={"MinDelayBetweenRequestsMs": 0})
        limiter.record_attempt()

        limiter.wait_for_slot()

        assert clock.sleeps == [pytest.approx(1.5)]

    def test_configured_min_delay(self, clock):
        limiter = _limiter(clock, rate_limiting={"MinDelayBetweenRequestsMs": 250})
        limiter.record_attempt()

        limiter.wait_for_slot()

        assert clock.sleeps == [pytest.approx(0.25)]

    def test_back_to_back_calls_do_not_wait_twice(self, clock):
        limiter = _limiter(clock)
        limiter.record_attempt()

        limiter.wait_for_slot()
        limiter.wait_for_slot()

        assert clock.slept == pytest.approx(1.5)

    def test_active_pause_is_waited_out(self, clock):
        updates = []
        limiter = _limiter(clock, progress=lambda text, current, total: updates.append((text, current, total)))
        limiter.pause(3)

        limiter.wait_for_slot()

        assert clock.slept == pytest.approx(3)
        assert limiter.state.is_paused is False
        assert updates[0] == ("Cooldown: waiting 00:03", -1, -1)
        assert len(updates) == 3


class TestFailures:
    def test_rate_limit_always_waits_and_clears_pause(self, clock):
        limiter = _limiter(clock, rate_limiting={"BaseCooldownSeconds": 2})

        waited = limiter.handle_rate_limit(1)

        assert waited == 6
        assert clock.slept == pytest.approx(6)
        assert limiter.cooldown_remaining() == 0

    def test_extended_cooldown_after_threshold(self, clock):
        limiter = _limiter(
            clock,
            rate_limiting={"BaseCooldownSeconds": 10, "MaxCooldownMinutes": 5, "MaxConsecutiveFailures": 3},
            backoff={"ExtendedCooldownFactor": 6},
        )

        assert limiter.register_failure() is False
        assert limiter.register_failure() is False
        assert clock.slept == 0

        assert limiter.register_failure() is True

        assert clock.slept == pytest.approx(60)
        assert limiter.state.consecutive_failures == 0

    def test_success_resets_failures(self, clock):
        limiter = _limiter(clock)
        limiter.register_failure()
        limiter.register_success()
        assert limiter.state.consecutive_failures == 0

    def test_wait_status_template(self, clock):
        updates = []
        limiter = _limiter(
            clock,
            progress=lambda text, current, total: updates.append(text),
            messages={"WaitStatus": "[{REASON}] {TIME}"},
        )

        limiter.wait_with_progress(2.5, "Error retry")

        assert updates == ["[Error retry] 00:03", "[Error retry] 00:02", "[Error retry] 00:01"]
        assert clock.sleeps == [1.0, 1.0, 0.5]


def test_state_reset() -> None:
    state = RateLimitState()
    state.request_history.append(1.0)
    state.is_paused = True
    state.consecutive_failures = 2
    state.last_request_time = 1.0

    state.reset()

    assert len(state.request_history) == 0
    assert state.is_paused is False
    assert state.consecutive_failures == 0
    assert state.last_request_time is None
