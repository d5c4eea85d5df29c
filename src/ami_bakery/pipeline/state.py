"""Typed pipeline state shared between the steps of one run."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from ..models import ImageDescriptor, ImageRequest
from ..protocols import Ui


class StepAction(str, Enum):
    """What a step tells the runner after ``run``."""

    CONTINUE = 'continue'
    HALT = 'halt'


class RunOutcome(str, Enum):
    """How a pipeline run ended; passed explicitly to ``cleanup``."""

    SUCCEEDED = 'succeeded'
    CANCELLED = 'cancelled'
    HALTED = 'halted'

    @property
    def needs_compensation(self) -> bool:
        return self is not RunOutcome.SUCCEEDED


@dataclass(slots=True)
class PipelineState:
    """State passed by reference through every step of a run.

    Attributes:
        ui: Messaging sink for user-visible progress and errors.
        request: Image creation input, set by an earlier step.
        instance_id: Id of the already-launched source instance.
        source_image: Descriptor of the image the instance was launched from.
        amis: Region -> created image id. Each step writes only its own
            region key.
        image: Final descriptor of the created image.
        error: First fatal error of the run, if any.
        cancel_event: Set when the run is cancelled.
    """

    ui: Ui
    request: ImageRequest | None = None
    instance_id: str | None = None
    source_image: ImageDescriptor | None = None
    amis: dict[str, str] = field(default_factory=dict)
    image: ImageDescriptor | None = None
    error: Exception | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Signal cancellation to every step polling this state."""
        self.cancel_event.set()

    def record_error(self, err: Exception) -> None:
        """Keep the first fatal error; later ones are only surfaced."""
        if self.error is None:
            self.error = err
