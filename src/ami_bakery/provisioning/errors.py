"""Error taxonomy for the image-baking step.

Fatal errors (precondition, creation, wait, describe) end the step with a
halt. Persistence and cleanup errors are surfaced as warnings only.
"""

from __future__ import annotations

from enum import Enum


class WaitOutcome(str, Enum):
    """Classification of a single poll tick or of a finished wait."""

    STILL_PENDING = 'still-pending'
    REACHED_TARGET = 'reached-target'
    REACHED_FAILURE_STATE = 'reached-failure-state'
    TIMED_OUT = 'timed-out'
    TRANSPORT_ERROR = 'transport-error'
    CANCELLED = 'cancelled'


class BakeryError(Exception):
    """Base class for image-baking errors."""


class PreconditionError(BakeryError):
    """Required upstream pipeline state is missing."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f'pipeline state is missing required field {field_name!r}')


class CreationError(BakeryError):
    """The control plane rejected the image creation request."""


class DescribeError(BakeryError):
    """The final descriptor fetch for a created image failed."""


class PersistenceError(BakeryError):
    """Recording completion in the progress store failed."""


class CleanupError(BakeryError):
    """Compensating deregistration failed; the image may still exist."""


class WaitError(BakeryError):
    """Waiting for an image to reach its target state failed."""

    outcome: WaitOutcome = WaitOutcome.REACHED_FAILURE_STATE

    def __init__(self, message: str, *, state: str | None = None) -> None:
        self.state = state
        super().__init__(message)


class RemoteFailureStateError(WaitError):
    """The resource reported a state that is neither pending nor the target."""

    outcome = WaitOutcome.REACHED_FAILURE_STATE


class WaitTimeoutError(WaitError):
    """The overall wait timeout elapsed."""

    outcome = WaitOutcome.TIMED_OUT


class TransportRetriesExhaustedError(WaitError):
    """Refreshing the resource state kept failing."""

    outcome = WaitOutcome.TRANSPORT_ERROR


class WaitCancelled(WaitError):
    """The owning run was cancelled while waiting."""

    outcome = WaitOutcome.CANCELLED
