"""In-memory collaborator implementations for local runs and tests.

They satisfy the protocol interfaces but keep everything in lists and dicts.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Sequence

from .models import ImageDescriptor, ImageRequest, ProgressRecord
from .provisioning.errors import PersistenceError
from .providers.errors import ImageClientError, ImageNotFoundError

# One scripted describe result: a state, None for "not visible yet", or an
# exception to raise.
ScriptedState = str | None | Exception


class InMemoryImageClient:
    """Image client that replays a scripted sequence of image states.

    Every ``describe_image`` call consumes the next scripted entry; the last
    entry repeats once the script is exhausted.
    """

    def __init__(
        self,
        *,
        region: str = 'us-east-1',
        image_id: str = 'img-111',
        states: Sequence[ScriptedState] = ('pending', 'available'),
        create_error: Exception | None = None,
        deregister_error: Exception | None = None,
        virtualization_type: str = 'hvm',
    ) -> None:
        if not states:
            raise ValueError('states must not be empty')
        self._region = region
        self._image_id = image_id
        self._script: deque[ScriptedState] = deque(states)
        self._create_error = create_error
        self._deregister_error = deregister_error
        self._virtualization_type = virtualization_type
        self._created: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    @property
    def region(self) -> str:
        return self._region

    @property
    def deregistered(self) -> list[str]:
        return [image_id for op, image_id in self.calls if op == 'deregister_image']

    async def create_image(self, request: ImageRequest, instance_id: str) -> str:
        self.calls.append(('create_image', instance_id))
        if self._create_error is not None:
            raise self._create_error
        self._created.add(self._image_id)
        return self._image_id

    async def describe_image(self, image_id: str) -> ImageDescriptor:
        self.calls.append(('describe_image', image_id))
        if image_id not in self._created:
            raise ImageNotFoundError(image_id)
        entry = self._script.popleft() if len(self._script) > 1 else self._script[0]
        if isinstance(entry, Exception):
            raise entry
        if entry is None:
            raise ImageNotFoundError(image_id)
        return ImageDescriptor(
            image_id=image_id,
            state=entry,
            name=f'image-{image_id}',
            virtualization_type=self._virtualization_type,
            region=self._region,
        )

    async def deregister_image(self, image_id: str) -> None:
        self.calls.append(('deregister_image', image_id))
        if self._deregister_error is not None:
            raise self._deregister_error
        if image_id not in self._created:
            raise ImageClientError(f'image {image_id} not found', code='InvalidAMIID.NotFound')
        self._created.discard(image_id)


class InMemoryProgressStore:
    """Progress store keyed by ``(region, kind)``.

    ``fail_with`` makes ``mark_done`` raise, for exercising the non-fatal
    persistence path.
    """

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self._rows: dict[tuple[str, str], ProgressRecord] = {}
        self._fail_with = fail_with
        self.mark_done_calls: list[tuple[str, str, str]] = []

    def seed(self, regions: Iterable[str], kinds: Iterable[str]) -> None:
        kinds = list(kinds)
        for region in regions:
            for kind in kinds:
                self._rows.setdefault(
                    (region, kind), ProgressRecord(region=region, kind=kind, done=False),
                )

    async def mark_done(self, kind: str, region: str, image_id: str) -> int:
        self.mark_done_calls.append((kind, region, image_id))
        if self._fail_with is not None:
            raise PersistenceError(str(self._fail_with)) from self._fail_with
        if (region, kind) not in self._rows:
            return 0
        self._rows[(region, kind)] = ProgressRecord(
            region=region, kind=kind, done=True, image_id=image_id,
        )
        return 1

    async def get_record(self, region: str, kind: str) -> ProgressRecord | None:
        return self._rows.get((region, kind))

    async def pending_regions(self, kind: str) -> list[str]:
        return sorted(
            region for (region, k), record in self._rows.items()
            if k == kind and not record.done
        )
