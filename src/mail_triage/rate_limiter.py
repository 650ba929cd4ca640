"""Request pacing, backoff and cooldowns for AI calls.

Objective:
    Keep a batch within the AI provider's limits and recover from throttling
    or repeated failures without hammering the endpoint.

Responsibilities:
    - Sliding 60 second request window (``RequestsPerMinute``).
    - Minimum delay between two requests (``MinDelayBetweenRequestsMs``).
    - Backoff delays for timeouts, generic errors and rate-limit answers.
    - Pause / cooldown state, including the extended cooldown after too many
      consecutive failures.
    - Progress updates while waiting (index ``-1`` = indeterminate).

High-level call tree:
    - :class:`RateLimiter`
        - :meth:`RateLimiter.wait_for_slot` (before dispatching)
        - :meth:`RateLimiter.record_attempt` (every attempt)
        - :meth:`RateLimiter.handle_rate_limit`
        - :meth:`RateLimiter.register_failure`
            - :meth:`RateLimiter.maybe_extended_cooldown`
        - :meth:`RateLimiter.wait_with_progress`

Operational notes:
    - A :class:`RateLimitState` belongs to exactly one batch run and is reset
      at the start of each run. It is never shared between threads.
    - ``clock`` and ``sleep`` are injectable; tests drive the limiter with a
      fake clock whose sleep advances time.
    - Zero-valued settings fall back to the built-in defaults below.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import ClassificationSettings
from .templates import format_duration, format_template

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

WINDOW_SECONDS = 60.0
DEFAULT_MIN_DELAY_MS = 1500
DEFAULT_BASE_COOLDOWN_SECONDS = 10
DEFAULT_MAX_COOLDOWN_MINUTES = 5
DEFAULT_MAX_CONSECUTIVE_FAILURES = 3
DEFAULT_TIMEOUT_RETRY_BASE = 5
DEFAULT_EXPONENTIAL_BASE = 2
DEFAULT_EXTENDED_COOLDOWN_FACTOR = 6
DEFAULT_EXTENDED_COOLDOWN_SECONDS = 60


@dataclass
class RateLimitState:
    """Mutable pacing state of one batch run.

    Attributes:
        request_history: Monotonic timestamps of recent attempts, oldest first.
        last_request_time: Timestamp of the most recent attempt.
        is_paused: Whether a cooldown is in effect.
        pause_until: End of the current cooldown.
        consecutive_failures: Failed attempts since the last success.
    """

    request_history: deque = field(default_factory=deque)
    last_request_time: Optional[float] = None
    is_paused: bool = False
    pause_until: float = 0.0
    consecutive_failures: int = 0

    def reset(self) -> None:
        self.request_history.clear()
        self.last_request_time = None
        self.is_paused = False
        self.pause_until = 0.0
        self.consecutive_failures = 0

    def prune(self, now: float, window: float = WINDOW_SECONDS) -> None:
        """Drop history entries older than ``window`` seconds."""
        while self.request_history and now - self.request_history[0] >= window:
            self.request_history.popleft()


class RateLimiter:
    """
    Rate limiter and backoff controller for AI requests.

    Attributes:
        settings: Classification settings (rate limiting, retry, messages).
        state: Pacing state of the current run.
        progress: Optional callback receiving wait updates.
    """

    def __init__(
        self,
        settings: ClassificationSettings,
        progress: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        state: Optional[RateLimitState] = None,
    ) -> None:
        self.settings = settings
        self.progress = progress
        self.clock = clock
        self.sleep = sleep
        self.state = state if state is not None else RateLimitState()

    # Effective settings

    @property
    def _limits(self):
        return self.settings.rate_limiting

    @property
    def _multipliers(self):
        return self.settings.retry.backoff_multipliers

    @property
    def min_delay_seconds(self) -> float:
        ms = self._limits.min_delay_between_requests_ms or DEFAULT_MIN_DELAY_MS
        return ms / 1000.0

    @property
    def base_cooldown_seconds(self) -> int:
        return self._limits.base_cooldown_seconds or DEFAULT_BASE_COOLDOWN_SECONDS

    @property
    def max_cooldown_seconds(self) -> int:
        return (self._limits.max_cooldown_minutes or DEFAULT_MAX_COOLDOWN_MINUTES) * 60

    @property
    def max_consecutive_failures(self) -> int:
        return self._limits.max_consecutive_failures or DEFAULT_MAX_CONSECUTIVE_FAILURES

    @property
    def exponential_base(self) -> int:
        return self._multipliers.exponential_base or DEFAULT_EXPONENTIAL_BASE

    @property
    def timeout_retry_base(self) -> int:
        return self._multipliers.timeout_retry_base or DEFAULT_TIMEOUT_RETRY_BASE

    @property
    def error_retry_base(self) -> int:
        return (
            self._multipliers.error_retry_base
            or self._limits.base_cooldown_seconds
            or DEFAULT_BASE_COOLDOWN_SECONDS
        )

    # Delay computations

    def timeout_delay(self, attempt: int) -> float:
        """Wait after a timed-out attempt (1-based)."""
        return float(self.timeout_retry_base * self.exponential_base**attempt)

    def error_delay(self, attempt: int) -> float:
        """Wait after a failed attempt (1-based)."""
        return float(self.error_retry_base * self.exponential_base**attempt)

    def rate_limit_delay(self, attempt: int) -> float:
        """Cooldown after a rate-limit answer, capped at the max cooldown."""
        base = self.base_cooldown_seconds
        return float(min(base + base * 2**attempt, self.max_cooldown_seconds))

    def extended_cooldown_seconds(self) -> float:
        """Cooldown after too many consecutive failures."""
        base = self._limits.base_cooldown_seconds
        if base > 0:
            factor = self._multipliers.extended_cooldown_factor or DEFAULT_EXTENDED_COOLDOWN_FACTOR
            seconds = base * factor
        else:
            seconds = DEFAULT_EXTENDED_COOLDOWN_SECONDS
        return float(min(seconds, self.max_cooldown_seconds))

    # State transitions

    def reset(self) -> None:
        self.state.reset()

    def cooldown_remaining(self) -> float:
        """Seconds left in the current pause, 0 when not paused."""
        if not self.state.is_paused:
            return 0.0
        return max(0.0, self.state.pause_until - self.clock())

    def pause(self, seconds: float) -> None:
        self.state.is_paused = True
        self.state.pause_until = self.clock() + seconds

    def resume(self) -> None:
        self.state.is_paused = False
        self.state.pause_until = 0.0

    def record_attempt(self) -> None:
        """Record a dispatched attempt in the request window."""
        now = self.clock()
        self.state.request_history.append(now)
        self.state.last_request_time = now

    def register_success(self) -> None:
        self.state.consecutive_failures = 0

    def register_failure(self) -> bool:
        """Count a failed attempt and apply the extended cooldown if due.

        Returns:
            bool: True if an extended cooldown was applied.
        """
        self.state.consecutive_failures += 1
        return self.maybe_extended_cooldown()

    def maybe_extended_cooldown(self) -> bool:
        """Pause for the extended cooldown once failures reach the threshold.

        Returns:
            bool: True if the cooldown was applied. ``consecutive_failures``
            is reset to 0 afterwards.
        """
        if self.state.consecutive_failures < self.max_consecutive_failures:
            return False

        seconds = self.extended_cooldown_seconds()
        logger.warning(
            "%s consecutive failures; pausing for %s",
            self.state.consecutive_failures,
            format_duration(seconds),
        )
        self.pause(seconds)
        self.wait_with_progress(seconds, "Extended cooldown")
        self.resume()
        self.state.consecutive_failures = 0
        return True

    def handle_rate_limit(self, attempt: int) -> float:
        """Apply the rate-limit cooldown for a throttled attempt.

        The wait always runs, even after the last attempt.

        Args:
            attempt: 1-based attempt number.

        Returns:
            float: Seconds waited.
        """
        seconds = self.rate_limit_delay(attempt)
        logger.warning(
            "Rate limited (attempt %s); cooling down for %s", attempt, format_duration(seconds)
        )
        self.pause(seconds)
        self.wait_with_progress(seconds, "Rate limit cooldown")
        self.resume()
        return seconds

    # Waiting

    def _report(self, text: str) -> None:
        if self.progress is not None:
            self.progress(text, -1, -1)

    def wait_with_progress(self, seconds: float, reason: str) -> None:
        """Block for ``seconds``, reporting the remaining time every second.

        Args:
            seconds: Total wait.
            reason: Short label rendered as ``{REASON}``.
        """
        remaining = float(seconds)
        template = self.settings.messages.wait_status
        while remaining > 0:
            self._report(
                format_template(template, {"REASON": reason, "TIME": format_duration(remaining)})
            )
            step = min(1.0, remaining)
            self.sleep(step)
            remaining -= step

    def wait_for_slot(self) -> None:
        """Block until a new request may be dispatched.

        Order: finish an active pause, then respect the per-minute window,
        then the minimum delay since the previous request.
        """
        state = self.state

        if state.is_paused:
            remaining = state.pause_until - self.clock()
            if remaining > 0:
                self.wait_with_progress(remaining, "Cooldown")
            self.resume()

        state.prune(self.clock())

        rpm = self._limits.requests_per_minute
        if rpm > 0 and len(state.request_history) >= rpm:
            wait = state.request_history[0] + WINDOW_SECONDS - self.clock()
            if wait > 0:
                logger.info(
                    "Request window full (%s/min); waiting %s", rpm, format_duration(wait)
                )
                self.wait_with_progress(wait, "Rate limit")
            state.prune(self.clock())

        if state.last_request_time is not None:
            elapsed = self.clock() - state.last_request_time
            if elapsed < self.min_delay_seconds:
                self.sleep(self.min_delay_seconds - elapsed)
