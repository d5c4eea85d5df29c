"""Poll-until-state waiter for asynchronously created resources.

One parameterized loop serves every resource kind: the caller supplies the
pending states, the target state, a refresh coroutine and the run's
cancellation event. The waiter owns the timing policy (interval, overall
timeout, transport retry budget).

Termination per tick:
  refresh raised          -> retry, up to ``max_transport_retries`` in a row
  refresh returned None   -> not visible yet, pending up to ``not_found_checks``
  state == target         -> success
  state in pending        -> keep polling
  any other state         -> RemoteFailureStateError, no retry
  elapsed >= timeout      -> WaitTimeoutError
  cancel_event set        -> WaitCancelled, checked before every refresh and
                             while pausing between ticks
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from ..providers.errors import ImageNotFoundError
from .errors import (
    RemoteFailureStateError,
    TransportRetriesExhaustedError,
    WaitCancelled,
    WaitOutcome,
    WaitTimeoutError,
)

if TYPE_CHECKING:
    from ..protocols import ImageClient
    from ..settings import BakerySettings

logger = logging.getLogger(__name__)

RefreshFunc = Callable[[], Awaitable[str | None]]

DEFAULT_POLL_INTERVAL = 2.0  # seconds
DEFAULT_TIMEOUT = 3600.0  # seconds
DEFAULT_MAX_TRANSPORT_RETRIES = 3
DEFAULT_NOT_FOUND_CHECKS = 20


@dataclass(frozen=True, slots=True)
class StateChangeConf:
    """What to wait for."""

    pending: tuple[str, ...]
    target: str
    refresh: RefreshFunc
    cancel_event: asyncio.Event | None = None


def classify_state(conf: StateChangeConf, state: str | None) -> WaitOutcome:
    """Map one refreshed state onto a tick outcome."""
    if state is None:
        return WaitOutcome.STILL_PENDING
    if state == conf.target:
        return WaitOutcome.REACHED_TARGET
    if state in conf.pending:
        return WaitOutcome.STILL_PENDING
    return WaitOutcome.REACHED_FAILURE_STATE


class StateWaiter:
    """Polls a refresh coroutine until the target state is reached."""

    def __init__(
        self,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        max_transport_retries: int = DEFAULT_MAX_TRANSPORT_RETRIES,
        not_found_checks: int = DEFAULT_NOT_FOUND_CHECKS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if poll_interval < 0:
            raise ValueError('poll_interval must be >= 0')
        if timeout <= 0:
            raise ValueError('timeout must be > 0')
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._max_transport_retries = max_transport_retries
        self._not_found_checks = not_found_checks
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: BakerySettings) -> StateWaiter:
        settings.require_valid()
        return cls(
            poll_interval=settings.poll_interval_seconds,
            timeout=settings.wait_timeout_seconds,
            max_transport_retries=settings.max_transport_retries,
            not_found_checks=settings.not_found_checks,
        )

    async def wait(self, conf: StateChangeConf) -> str:
        """Poll until ``conf.target`` is reached and return it.

        Raises a ``WaitError`` subclass for every other termination.
        """
        started = self._clock()
        transport_failures = 0
        not_found = 0
        state: str | None = None

        while True:
            _raise_if_cancelled(conf)
            try:
                state = await conf.refresh()
            except Exception as exc:
                transport_failures += 1
                if transport_failures > self._max_transport_retries:
                    raise TransportRetriesExhaustedError(
                        f'state refresh failed {transport_failures} times in a row: {exc}'
                    ) from exc
                logger.warning(
                    'State refresh failed (attempt %d/%d), retrying in %.1fs: %s',
                    transport_failures,
                    self._max_transport_retries + 1,
                    self._poll_interval,
                    exc,
                    extra={'target_state': conf.target},
                )
            else:
                transport_failures = 0
                outcome = classify_state(conf, state)
                if outcome is WaitOutcome.REACHED_TARGET:
                    return state
                if outcome is WaitOutcome.REACHED_FAILURE_STATE:
                    raise RemoteFailureStateError(
                        f'unexpected state {state!r}, wanted target {conf.target!r}',
                        state=state,
                    )
                if state is None:
                    not_found += 1
                    if not_found > self._not_found_checks:
                        raise RemoteFailureStateError(
                            f'resource not found after {not_found} checks',
                        )
                else:
                    not_found = 0
                logger.debug(
                    'Waiting for state %s, currently %s',
                    conf.target,
                    state,
                    extra={'target_state': conf.target, 'current_state': state},
                )

            elapsed = self._clock() - started
            if elapsed >= self._timeout:
                raise WaitTimeoutError(
                    f'timeout after {elapsed:.0f}s waiting for state {conf.target!r}',
                    state=state,
                )
            await self._pause(conf, min(self._poll_interval, self._timeout - elapsed))

    async def _pause(self, conf: StateChangeConf, delay: float) -> None:
        if conf.cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(conf.cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise WaitCancelled('wait cancelled by pipeline')


def _raise_if_cancelled(conf: StateChangeConf) -> None:
    if conf.cancel_event is not None and conf.cancel_event.is_set():
        raise WaitCancelled('wait cancelled by pipeline')


def image_state_refresh(client: ImageClient, image_id: str) -> RefreshFunc:
    """Refresh coroutine reporting the state of one image.

    A freshly created image id can be briefly unknown to the control
    plane; that is reported as ``None`` instead of an error.
    """

    async def refresh() -> str | None:
        try:
            descriptor = await client.describe_image(image_id)
        except ImageNotFoundError:
            return None
        return descriptor.state

    return refresh
