"""
Tests for upchunk.retry module.

Tests the retry policy including:
- Budget accounting per chunk
- Fixed and exponential delays
- Argument validation
"""

from __future__ import annotations

import pytest

from upchunk.chunking import Chunk
from upchunk.retry import RetryPolicy


class TestRetryBudget:
    """Tests for retry budget accounting."""

    def test_schedule_increments_retry_count(self):
        """Test that each scheduled retry consumes one unit of budget."""
        policy = RetryPolicy(max_retries=2)
        chunk = Chunk(0, 10)

        policy.schedule(chunk)
        assert chunk.retry_count == 1
        assert not policy.exhausted(chunk)

        policy.schedule(chunk)
        assert chunk.retry_count == 2
        assert policy.exhausted(chunk)

    def test_schedule_refuses_when_exhausted(self):
        """Test that an exhausted chunk cannot be scheduled again."""
        policy = RetryPolicy(max_retries=1)
        chunk = Chunk(0, 10, retry_count=1)

        with pytest.raises(ValueError, match="exhausted"):
            policy.schedule(chunk)
        assert chunk.retry_count == 1

    def test_zero_budget_is_immediately_exhausted(self):
        """Test that max_retries=0 disables retrying."""
        assert RetryPolicy(max_retries=0).exhausted(Chunk(0, 1))

    def test_budget_is_per_chunk(self):
        """Test that retries on one chunk do not affect another."""
        policy = RetryPolicy(max_retries=1)
        first, second = Chunk(0, 10), Chunk(10, 20)

        policy.schedule(first)

        assert policy.exhausted(first)
        assert not policy.exhausted(second)


class TestDelays:
    """Tests for delay strategies."""

    def test_fixed_delay_is_constant(self):
        """Test that the fixed strategy always waits the same time."""
        policy = RetryPolicy(max_retries=5)

        assert [policy.delay_for(n) for n in range(1, 6)] == [1.0] * 5

    def test_exponential_delay_is_clamped(self):
        """Test that exponential delays grow and stay within 2..10 seconds."""
        policy = RetryPolicy(max_retries=10, strategy="exponential")

        delays = [policy.delay_for(n) for n in range(1, 7)]

        assert delays == [2.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_exponential_custom_bounds(self):
        """Test exponential backoff with a custom base and bounds."""
        policy = RetryPolicy(
            strategy="exponential", delay=0.5, min_delay=0.5, max_delay=3.0
        )

        assert [policy.delay_for(n) for n in range(1, 5)] == [0.5, 1.0, 2.0, 3.0]

    def test_schedule_returns_delay_for_new_count(self):
        """Test that schedule() returns the delay for the retry it books."""
        policy = RetryPolicy(strategy="exponential", delay=1.0, min_delay=0.0)
        chunk = Chunk(0, 10)

        assert [policy.schedule(chunk) for _ in range(3)] == [1.0, 2.0, 4.0]


class TestValidation:
    """Tests for constructor validation."""

    def test_unknown_strategy(self):
        """Test that only fixed and exponential are accepted."""
        with pytest.raises(ValueError, match="unknown retry strategy"):
            RetryPolicy(strategy="linear")

    def test_negative_budget(self):
        """Test that a negative budget is rejected."""
        with pytest.raises(ValueError, match="max_retries"):
            RetryPolicy(max_retries=-1)

    def test_inverted_bounds(self):
        """Test that max_delay below min_delay is rejected."""
        with pytest.raises(ValueError, match="invalid retry delays"):
            RetryPolicy(min_delay=5.0, max_delay=1.0)
