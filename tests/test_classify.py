"""
Tests for upchunk.classify module.

Tests outcome classification including:
- Success, retryable and fatal status codes
- Transport errors and cancellations
- Retry budget escalation
- Per-instance code sets
"""

from __future__ import annotations

import pytest
import requests

from upchunk.classify import Outcome, ResponseClassifier, TransportOutcome


@pytest.fixture
def classifier() -> ResponseClassifier:
    return ResponseClassifier()


class TestStatusCodes:
    """Tests for status code verdicts."""

    @pytest.mark.parametrize("code", [200, 201, 202, 204, 308])
    def test_success_codes(self, classifier, code):
        """Test that accepted-range codes are SUCCESS."""
        assert classifier.classify(TransportOutcome(status_code=code)) is Outcome.SUCCESS

    @pytest.mark.parametrize("code", [408, 502, 503, 504])
    def test_retryable_codes(self, classifier, code):
        """Test that transient server codes are RETRYABLE."""
        assert (
            classifier.classify(TransportOutcome(status_code=code)) is Outcome.RETRYABLE
        )

    @pytest.mark.parametrize("code", [301, 302, 400, 401, 403, 404, 409, 500, 501])
    def test_other_codes_are_fatal(self, classifier, code):
        """Test that everything else, redirects included, is FATAL."""
        assert classifier.classify(TransportOutcome(status_code=code)) is Outcome.FATAL

    def test_exhausted_budget_turns_retryable_into_fatal(self, classifier):
        """Test that a chunk without retries left fails instead of retrying."""
        outcome = TransportOutcome(status_code=503)

        assert classifier.classify(outcome, retries_exhausted=True) is Outcome.FATAL

    def test_exhausted_budget_does_not_affect_success(self, classifier):
        """Test that a success on the last attempt is still a success."""
        outcome = TransportOutcome(status_code=200)

        assert classifier.classify(outcome, retries_exhausted=True) is Outcome.SUCCESS


class TestTransportErrors:
    """Tests for outcomes without a status code."""

    def test_network_error_is_retryable(self, classifier):
        """Test that connection failures are treated as transient."""
        outcome = TransportOutcome.from_error(requests.ConnectionError("refused"))

        assert classifier.classify(outcome) is Outcome.RETRYABLE

    def test_timeout_is_retryable(self, classifier):
        """Test that timeouts are treated as transient."""
        outcome = TransportOutcome.from_error(requests.Timeout("read timed out"))

        assert classifier.classify(outcome) is Outcome.RETRYABLE

    def test_cancellation_is_cancelled(self, classifier):
        """Test that an aborted attempt is not a failure."""
        outcome = TransportOutcome.from_error(RuntimeError("abort"), cancelled=True)

        assert classifier.classify(outcome) is Outcome.CANCELLED
        assert (
            classifier.classify(outcome, retries_exhausted=True) is Outcome.CANCELLED
        )

    def test_describe(self):
        """Test human-readable outcome descriptions."""
        assert TransportOutcome(status_code=404).describe() == "HTTP 404"
        assert (
            TransportOutcome.from_error(ValueError("x"), cancelled=True).describe()
            == "cancelled"
        )
        assert TransportOutcome.from_error(ValueError("x")).describe() == "ValueError: x"


class TestCustomCodes:
    """Tests for per-instance code sets."""

    def test_custom_sets_are_independent(self):
        """Test that two classifiers can disagree about the same code."""
        strict = ResponseClassifier(success_codes={200}, retryable_codes={503})
        lenient = ResponseClassifier(success_codes={200, 409}, retryable_codes={500})

        assert strict.classify(TransportOutcome(status_code=409)) is Outcome.FATAL
        assert lenient.classify(TransportOutcome(status_code=409)) is Outcome.SUCCESS
        assert strict.classify(TransportOutcome(status_code=500)) is Outcome.FATAL
        assert lenient.classify(TransportOutcome(status_code=500)) is Outcome.RETRYABLE

    def test_overlapping_sets_rejected(self):
        """Test that a code cannot be both success and retryable."""
        with pytest.raises(ValueError, match="both success and retryable"):
            ResponseClassifier(success_codes={200, 503}, retryable_codes={503})
