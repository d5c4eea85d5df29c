"""Image provisioning: error taxonomy, state waiter and the create-AMI step.

The step itself lives in ``ami_bakery.provisioning.create_image``.
"""

from .errors import (
    BakeryError,
    CleanupError,
    CreationError,
    DescribeError,
    PersistenceError,
    PreconditionError,
    RemoteFailureStateError,
    TransportRetriesExhaustedError,
    WaitCancelled,
    WaitError,
    WaitOutcome,
    WaitTimeoutError,
)
from .waiter import StateChangeConf, StateWaiter, image_state_refresh

__all__ = [
    "BakeryError",
    "CleanupError",
    "CreationError",
    "DescribeError",
    "PersistenceError",
    "PreconditionError",
    "RemoteFailureStateError",
    "StateChangeConf",
    "StateWaiter",
    "TransportRetriesExhaustedError",
    "WaitCancelled",
    "WaitError",
    "WaitOutcome",
    "WaitTimeoutError",
    "image_state_refresh",
]
