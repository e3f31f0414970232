from dataclasses import dataclass


@dataclass
class RateWindow:
    """Fixed-size window counter for outbound calls."""

    limit: int
    window_size_ms: int = 60_000
    window_start: int = 0
    request_count: int = 0

    def acquire(self, now: int) -> float | None:
        """Count one call at ``now``.

        Returns None when the call is allowed, otherwise the number of seconds
        until the window resets (the call is not counted).
        """
        if now - self.window_start > self.window_size_ms:
            self.request_count = 0
            self.window_start = now

        if self.request_count >= self.limit:
            wait_ms = self.window_size_ms - (now - self.window_start)
            return max(wait_ms, 0) / 1000

        self.request_count += 1
        return None
