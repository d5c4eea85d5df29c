"""Collaborator protocol interfaces for dependency injection.

The step only talks to these protocols. Concrete implementations (boto3
for the control plane, SQLAlchemy for the progress store, console output
for messages) and in-memory doubles for tests both satisfy them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import ImageDescriptor, ImageRequest
    from .pipeline.state import PipelineState, RunOutcome, StepAction


@runtime_checkable
class ImageClient(Protocol):
    """Control-plane image lifecycle operations for one region."""

    @property
    def region(self) -> str: ...

    async def create_image(self, request: ImageRequest, instance_id: str) -> str: ...
    async def describe_image(self, image_id: str) -> ImageDescriptor: ...
    async def deregister_image(self, image_id: str) -> None: ...


@runtime_checkable
class Ui(Protocol):
    """Fire-and-forget user messaging sink."""

    def say(self, text: str) -> None: ...
    def message(self, text: str) -> None: ...
    def error(self, text: str) -> None: ...


@runtime_checkable
class ProgressStore(Protocol):
    """Cross-run record of which (region, kind) pairs are baked."""

    async def mark_done(self, kind: str, region: str, image_id: str) -> int: ...


@runtime_checkable
class Step(Protocol):
    """One unit of a pipeline run."""

    async def run(self, state: PipelineState) -> StepAction: ...
    async def cleanup(self, state: PipelineState, outcome: RunOutcome) -> None: ...
