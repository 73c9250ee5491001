"""Invocation deadlines.

A `Deadline` is the cancellation token of one invocation. Blocking network
calls bound their timeouts by the time it has left and raise `Cancelled` once
it has passed or has been cancelled explicitly.
"""

import time
from typing import Callable, Optional

from aws_lambda_powertools.utilities.typing import LambdaContext

from cfn_container_image_provider.exceptions import Cancelled


class Deadline:
    """Point in time after which an invocation must stop doing work.

    Args:
        seconds (Optional[float]): Seconds from now until the deadline.
            None means no deadline.
        clock (Callable[[], float]): Monotonic clock, in seconds.
    """

    def __init__(self, seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds
        self._cancelled = False

    @classmethod
    def from_context(cls, context: LambdaContext, margin: float = 0.0) -> "Deadline":
        """Deadline of a Lambda invocation, keeping `margin` seconds in reserve."""
        remaining = context.get_remaining_time_in_millis() / 1000.0
        return cls(seconds=remaining - margin)

    def cancel(self):
        self._cancelled = True

    @property
    def remaining(self) -> Optional[float]:
        """Seconds left, or None if there is no deadline."""
        if self._expires_at is None:
            return None
        return self._expires_at - self._clock()

    @property
    def expired(self) -> bool:
        remaining = self.remaining
        return self._cancelled or (remaining is not None and remaining <= 0)

    def check(self, operation: str = "operation"):
        """Raise `Cancelled` if the deadline passed.

        Args:
            operation (str): What was about to run, used in the error message.
        """
        if self._cancelled:
            raise Cancelled(f"{operation} cancelled")
        if self.expired:
            raise Cancelled(f"{operation} cancelled, invocation deadline exceeded")

    def timeout(self, limit: float, operation: str = "operation") -> float:
        """Timeout for a blocking call: `limit`, capped by the time left.

        Raises:
            Cancelled: If the deadline already passed.
        """
        self.check(operation)
        remaining = self.remaining
        if remaining is None:
            return limit
        return min(limit, remaining)
