"""
Rate Limiter - Prevents API throttling by limiting request frequency

Limiters are plain objects injected into the upstream clients, so each client
owns its own window state instead of sharing module-level counters.
"""
import threading
import time
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    """
    Allow at most ``max_requests`` calls per ``window_seconds``.

    When the window is full, wait() sleeps until the window rolls over and
    starts a fresh one. Safe to share between the worker threads of one client.

    Usage:
        limiter = FixedWindowRateLimiter(max_requests=150, window_seconds=60)

        for batch in batches:
            limiter.wait()  # Will sleep if the window is full
            make_api_call(batch)
    """

    def __init__(
        self,
        max_requests: int = 150,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self.window_start = clock()
        self.request_count = 0

    def wait(self):
        """Block until a request slot is available in the current window"""
        with self._lock:
            now = self._clock()
            if now - self.window_start >= self.window_seconds:
                self.window_start = now
                self.request_count = 0

            if self.request_count >= self.max_requests:
                sleep_time = self.window_seconds - (now - self.window_start)
                logger.info(f"Rate limit reached ({self.max_requests}/{self.window_seconds:.0f}s), waiting {sleep_time:.1f}s")
                if sleep_time > 0:
                    self._sleep(sleep_time)
                self.window_start = self._clock()
                self.request_count = 0

            self.request_count += 1
