# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Per-chunk retry budget and backoff.

Each chunk may be retried up to `max_retries` times. Once the budget is
spent, a further transient failure is treated as fatal. Between attempts
the session waits for a delay chosen by one of two strategies:

- **fixed** (default): the same delay (1 second) before every retry.
- **exponential**: `delay * 2 ** (retry - 1)`, clamped to
  `[min_delay, max_delay]` (2 to 10 seconds by default).

The strategy is chosen once per session through configuration; it never
varies from chunk to chunk.

Example:
    >>> from upchunk.chunking import Chunk
    >>> from upchunk.retry import RetryPolicy
    >>> policy = RetryPolicy(max_retries=3, strategy="exponential")
    >>> chunk = Chunk(0, 10)
    >>> [policy.schedule(chunk) for _ in range(3)]
    [2.0, 2.0, 4.0]
    >>> policy.exhausted(chunk)
    True
"""

from __future__ import annotations

from upchunk.chunking import Chunk

STRATEGIES = ("fixed", "exponential")

DEFAULT_MAX_RETRIES = 5
DEFAULT_DELAY = 1.0
DEFAULT_MIN_DELAY = 2.0
DEFAULT_MAX_DELAY = 10.0


class RetryPolicy:
    """Decides whether a chunk may be retried and how long to wait first.

    Attributes:
        max_retries: Retries allowed per chunk (0 disables retrying).
        strategy: "fixed" or "exponential".
        delay: Fixed delay, or the base of the exponential series (seconds).
        min_delay: Lower clamp for the exponential strategy.
        max_delay: Upper clamp for the exponential strategy.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        strategy: str = "fixed",
        delay: float = DEFAULT_DELAY,
        min_delay: float = DEFAULT_MIN_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if strategy not in STRATEGIES:
            raise ValueError(
                f"unknown retry strategy {strategy!r}; expected one of {STRATEGIES}"
            )
        if delay < 0 or min_delay < 0 or max_delay < min_delay:
            raise ValueError(
                f"invalid retry delays: delay={delay}, min={min_delay}, max={max_delay}"
            )
        self.max_retries = max_retries
        self.strategy = strategy
        self.delay = float(delay)
        self.min_delay = float(min_delay)
        self.max_delay = float(max_delay)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_retries={self.max_retries}, strategy={self.strategy!r}, "
            f"delay={self.delay}, min_delay={self.min_delay}, max_delay={self.max_delay})"
        )

    def exhausted(self, chunk: Chunk) -> bool:
        """True when the chunk has no retries left."""
        return chunk.retry_count >= self.max_retries

    def delay_for(self, retry_count: int) -> float:
        """Seconds to wait before retry number `retry_count` (1-based)."""
        if self.strategy == "fixed":
            return self.delay
        raw = self.delay * 2 ** max(retry_count - 1, 0)
        return min(max(raw, self.min_delay), self.max_delay)

    def schedule(self, chunk: Chunk) -> float:
        """Consume one retry from the chunk's budget.

        Args:
            chunk: The chunk whose last attempt was retryable.

        Returns:
            The delay in seconds before the next attempt.

        Raises:
            ValueError: If the chunk's budget is already spent. Callers check
                exhausted() first and escalate to a fatal failure instead.
        """
        if self.exhausted(chunk):
            raise ValueError(
                f"retry budget exhausted for chunk [{chunk.start}, {chunk.end})"
            )
        chunk.retry_count += 1
        return self.delay_for(chunk.retry_count)
