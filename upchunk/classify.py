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

"""Classification of chunk send outcomes.

Every attempt to send a chunk ends in a TransportOutcome: either the server
answered with a status code, or the transport failed before an answer
arrived. ResponseClassifier maps that outcome to one of four verdicts:

- SUCCESS: the server accepted the range (200, 201, 202, 204, 308)
- CANCELLED: the attempt was aborted by pause() or cancel()
- RETRYABLE: a transient failure (408, 502, 503, 504, or a transport error
    such as a refused connection or a timeout)
- FATAL: anything else, or a chunk that has no retries left

The status code sets belong to the classifier instance, so two sessions
can run side by side with different policies.

Example:
    >>> from upchunk.classify import Outcome, ResponseClassifier, TransportOutcome
    >>> classifier = ResponseClassifier()
    >>> classifier.classify(TransportOutcome(status_code=503))
    <Outcome.RETRYABLE: 'retryable'>
    >>> classifier.classify(TransportOutcome(status_code=503), retries_exhausted=True)
    <Outcome.FATAL: 'fatal'>
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

DEFAULT_SUCCESS_CODES: frozenset[int] = frozenset({200, 201, 202, 204, 308})
DEFAULT_RETRYABLE_CODES: frozenset[int] = frozenset({408, 502, 503, 504})


class Outcome(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class TransportOutcome:
    """Result of a single send attempt.

    Exactly one of `status_code` or `error` is set. `cancelled` is only
    meaningful together with `error`.

    Attributes:
        status_code: HTTP status returned by the server.
        error: Transport-level exception raised before a response arrived.
        cancelled: True when the error was caused by pause() or cancel().
    """

    status_code: int | None = None
    error: BaseException | None = None
    cancelled: bool = False

    @classmethod
    def from_error(
        cls, error: BaseException, *, cancelled: bool = False
    ) -> TransportOutcome:
        return cls(error=error, cancelled=cancelled)

    def describe(self) -> str:
        if self.status_code is not None:
            return f"HTTP {self.status_code}"
        if self.cancelled:
            return "cancelled"
        return f"{type(self.error).__name__}: {self.error}"


class ResponseClassifier:
    """Maps transport outcomes to Outcome verdicts."""

    def __init__(
        self,
        success_codes: Iterable[int] = DEFAULT_SUCCESS_CODES,
        retryable_codes: Iterable[int] = DEFAULT_RETRYABLE_CODES,
    ) -> None:
        self.success_codes = frozenset(success_codes)
        self.retryable_codes = frozenset(retryable_codes)
        overlap = self.success_codes & self.retryable_codes
        if overlap:
            raise ValueError(
                f"status codes cannot be both success and retryable: {sorted(overlap)}"
            )

    def classify(
        self, outcome: TransportOutcome, *, retries_exhausted: bool = False
    ) -> Outcome:
        """Classify one send attempt.

        Args:
            outcome: What the transport reported.
            retries_exhausted: True when the chunk has used its whole retry
                budget; a would-be RETRYABLE verdict becomes FATAL.

        Returns:
            The verdict for this attempt.
        """
        if outcome.status_code is None:
            if outcome.cancelled:
                return Outcome.CANCELLED
            verdict = Outcome.RETRYABLE
        elif outcome.status_code in self.success_codes:
            return Outcome.SUCCESS
        elif outcome.status_code in self.retryable_codes:
            verdict = Outcome.RETRYABLE
        else:
            return Outcome.FATAL

        if retries_exhausted:
            return Outcome.FATAL
        return verdict
