"""Value types shared by the step, the control-plane adapter and the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ImageKind(str, Enum):
    """Idempotency classification of a baked image.

    Derived from the virtualization type of the *source* image, not of
    the image being created.
    """

    PV = 'pv'
    HVM = 'hvm'


def classify_image_kind(virtualization_type: str | None) -> ImageKind:
    """``paravirtual`` sources bake ``pv`` images; everything else is ``hvm``."""
    if virtualization_type == 'paravirtual':
        return ImageKind.PV
    return ImageKind.HVM


@dataclass(frozen=True, slots=True)
class ImageRequest:
    """Immutable creation input, built upstream of the step.

    ``block_device_mappings`` is already in the provider's request shape.
    """

    name: str
    block_device_mappings: tuple[Mapping[str, Any], ...] = ()
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ImageHandle:
    """Identifier of a created image and the region it lives in."""

    image_id: str
    region: str


@dataclass(frozen=True, slots=True)
class ImageDescriptor:
    """Fully-resolved metadata of an image, as returned by a describe call."""

    image_id: str
    state: str
    name: str = ''
    virtualization_type: str | None = None
    region: str | None = None
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """One row of the bake progress table."""

    region: str
    kind: str
    done: bool
    image_id: str | None = None

    @property
    def status(self) -> str:
        return 'done' if self.done else 'pending'
