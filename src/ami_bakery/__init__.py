"""ami-bakery: bake machine images with cross-run idempotency.

The ``StepCreateImage`` pipeline step requests an AMI from a launched
instance, waits for it to become available, records the region as baked in
a sqlite progress table and deregisters the image again if the run is
cancelled or halted.
"""

from .models import (
    ImageDescriptor,
    ImageHandle,
    ImageKind,
    ImageRequest,
    ProgressRecord,
    classify_image_kind,
)
from .pipeline import PipelineState, RunOutcome, StepAction, run_steps
from .provisioning.create_image import StepCreateImage
from .settings import BakerySettings

__all__ = [
    "BakerySettings",
    "ImageDescriptor",
    "ImageHandle",
    "ImageKind",
    "ImageRequest",
    "PipelineState",
    "ProgressRecord",
    "RunOutcome",
    "StepAction",
    "StepCreateImage",
    "classify_image_kind",
    "run_steps",
]
