"""Create-AMI pipeline step.

Flow of ``run``:
  1. Read the image request, source instance and source image from state.
  2. Request the image; publish its id under ``state.amis[region]``.
  3. Wait for the image to leave ``pending`` and become ``available``.
  4. Mark the ``(region, kind)`` progress row done, where kind is derived
     from the source image's virtualization type.
  5. Fetch the final descriptor.

Creation, wait and describe failures halt the pipeline. A failed progress
update is only a warning: the image exists, the region just stays
unregistered so a retried run may bake it again.

``cleanup`` deregisters the image when the run ended cancelled or halted,
unless the image was already recorded as done or the step finished: a
done row must always point at an image that still exists.
"""

from __future__ import annotations

import logging
from typing import TypeVar

from ..db.progress_store import SqlProgressStore
from ..models import ImageDescriptor, ImageHandle, classify_image_kind
from ..pipeline.state import PipelineState, RunOutcome, StepAction
from ..protocols import ImageClient, ProgressStore
from ..providers.ec2_client import Ec2ImageClient
from ..providers.errors import ImageClientError
from ..settings import BakerySettings
from .compensation import deregister_created_image
from .errors import (
    BakeryError,
    CreationError,
    DescribeError,
    PersistenceError,
    PreconditionError,
    WaitError,
)
from .waiter import StateChangeConf, StateWaiter, image_state_refresh

logger = logging.getLogger(__name__)

PENDING_STATES = ('pending',)
TARGET_STATE = 'available'

_T = TypeVar('_T')


class StepCreateImage:
    """Creates an AMI from the source instance of the current run.

    Attributes:
        handle: Id and region of the created image, set as soon as the
            control plane accepted the request.
        image: Final descriptor, set only when ``run`` completed.
        committed: True once the progress row was marked done or ``run``
            returned CONTINUE; the image is then kept on a later halt.
    """

    def __init__(
        self,
        *,
        client: ImageClient,
        store: ProgressStore,
        waiter: StateWaiter | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._waiter = waiter or StateWaiter()
        self.handle: ImageHandle | None = None
        self.image: ImageDescriptor | None = None
        self.committed = False
        self._compensated = False

    @classmethod
    def from_settings(
        cls,
        settings: BakerySettings,
        *,
        client: ImageClient | None = None,
        store: ProgressStore | None = None,
    ) -> StepCreateImage:
        """Build the step from validated settings.

        Raises SettingsError if ``settings.validate()`` reports problems.
        """
        settings.require_valid()
        return cls(
            client=client or Ec2ImageClient(region=settings.region),
            store=store or SqlProgressStore.from_settings(settings),
            waiter=StateWaiter.from_settings(settings),
        )

    async def run(self, state: PipelineState) -> StepAction:
        request = _require(state.request, 'request')
        instance_id = _require(state.instance_id, 'instance_id')
        source_image = _require(state.source_image, 'source_image')
        ui = state.ui
        region = self._client.region

        ui.say(f'Creating the AMI: {request.name}')
        try:
            image_id = await self._client.create_image(request, instance_id)
        except ImageClientError as exc:
            return self._fail(state, CreationError(f'Error creating AMI: {exc}'), exc)

        self.handle = ImageHandle(image_id=image_id, region=region)
        state.amis[region] = image_id
        ui.message(f'AMI: {image_id}')

        conf = StateChangeConf(
            pending=PENDING_STATES,
            target=TARGET_STATE,
            refresh=image_state_refresh(self._client, image_id),
            cancel_event=state.cancel_event,
        )
        ui.say('Waiting for AMI to become ready...')
        try:
            await self._waiter.wait(conf)
        except WaitError as exc:
            err = type(exc)(f'Error waiting for AMI: {exc}', state=exc.state)
            return self._fail(state, err, exc)
        ui.message(f'AMI {image_id} is {TARGET_STATE}')

        kind = classify_image_kind(source_image.virtualization_type).value
        ui.say('AMI created. Updating the database now.')
        try:
            affected = await self._store.mark_done(kind, region, image_id)
        except PersistenceError as exc:
            # A retried run will not see this region as done and bakes it again.
            ui.error(f'Failed to record AMI {image_id} for {region}/{kind}: {exc}')
            logger.warning(
                'Progress record not updated: image_id=%s',
                image_id,
                extra={'image_id': image_id, 'region': region, 'ami_type': kind},
                exc_info=True,
            )
        else:
            self.committed = True
            ui.say(f'Updated database with {affected} row(s) affected')

        try:
            self.image = await self._client.describe_image(image_id)
        except ImageClientError as exc:
            return self._fail(state, DescribeError(f'Error searching for AMI: {exc}'), exc)
        state.image = self.image
        self.committed = True

        logger.info(
            'AMI ready: image_id=%s region=%s',
            image_id,
            region,
            extra={'image_id': image_id, 'region': region, 'ami_type': kind},
        )
        return StepAction.CONTINUE

    async def cleanup(self, state: PipelineState, outcome: RunOutcome) -> None:
        if not outcome.needs_compensation:
            return
        if self.handle is None or self._compensated:
            return
        if self.committed:
            logger.info(
                'Keeping recorded AMI despite %s run: image_id=%s',
                outcome.value,
                self.handle.image_id,
                extra={'image_id': self.handle.image_id, 'region': self.handle.region},
            )
            return
        self._compensated = True
        await deregister_created_image(self._client, state.ui, self.handle)

    def _fail(
        self,
        state: PipelineState,
        err: BakeryError,
        cause: Exception,
    ) -> StepAction:
        err.__cause__ = cause
        state.record_error(err)
        state.ui.error(str(err))
        logger.error(
            'Create AMI step halted: %s',
            err,
            extra={
                'region': self._client.region,
                'image_id': self.handle.image_id if self.handle else None,
            },
        )
        return StepAction.HALT


def _require(value: _T | None, field_name: str) -> _T:
    if value is None:
        raise PreconditionError(field_name)
    return value
