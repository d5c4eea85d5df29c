"""Compensating deregistration of an image created by a failed run."""

from __future__ import annotations

import logging

from ..models import ImageHandle
from ..protocols import ImageClient, Ui
from .errors import CleanupError

logger = logging.getLogger(__name__)


async def deregister_created_image(
    client: ImageClient,
    ui: Ui,
    handle: ImageHandle,
) -> bool:
    """Issue one deregister call for ``handle`` and report the result.

    Best-effort: failures are surfaced as a warning and never raised, and
    the deletion is not waited on. Returns True if the call succeeded.
    """
    ui.say('Deregistering the AMI because of cancellation or error...')
    try:
        await client.deregister_image(handle.image_id)
    except Exception as exc:
        err = CleanupError(f'Error deregistering AMI, may still be around: {exc}')
        ui.error(str(err))
        logger.warning(
            'Compensating deregister failed: image_id=%s',
            handle.image_id,
            extra={'image_id': handle.image_id, 'region': handle.region},
            exc_info=True,
        )
        return False
    return True
