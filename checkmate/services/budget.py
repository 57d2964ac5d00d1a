import time
from typing import Optional


class Deadline:
    """Overall time budget of one request, measured on the monotonic clock from construction."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.started_at = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def cap(self, timeout: Optional[float] = None) -> float:
        """The smaller of ``timeout`` and the remaining budget."""
        remaining = self.remaining()
        if timeout is None:
            return remaining
        return min(timeout, remaining)


def timeout_message(deadline: Deadline) -> str:
    return f"Investigation timed out: exceeded the {deadline.seconds:.0f} second limit."
