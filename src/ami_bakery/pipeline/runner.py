"""Sequential step runner.

Runs steps in order until one halts or the run is cancelled, then hands
the explicit outcome to ``cleanup`` of every executed step, newest
first. Cleanup is skipped entirely when the run succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Sequence

from ..observability.logging import run_id_ctx
from ..protocols import Step
from ..provisioning.errors import PreconditionError
from .state import PipelineState, RunOutcome, StepAction

logger = logging.getLogger(__name__)


async def run_steps(
    steps: Sequence[Step],
    state: PipelineState,
    *,
    run_id: str | None = None,
) -> RunOutcome:
    """Execute ``steps`` against ``state`` and return how the run ended.

    ``asyncio.CancelledError`` and unexpected step exceptions still
    trigger cleanup before they propagate.
    """
    token = run_id_ctx.set(run_id or uuid.uuid4().hex)
    executed: list[Step] = []
    outcome = RunOutcome.SUCCEEDED
    try:
        try:
            for step in steps:
                if state.is_cancelled:
                    outcome = RunOutcome.CANCELLED
                    break
                executed.append(step)
                action = await step.run(state)
                if action is StepAction.HALT:
                    outcome = (
                        RunOutcome.CANCELLED if state.is_cancelled else RunOutcome.HALTED
                    )
                    break
        except asyncio.CancelledError:
            state.cancel()
            await _compensate(executed, state, RunOutcome.CANCELLED)
            raise
        except Exception as exc:
            # Ordering bugs propagate as-is; only step failures are recorded.
            if not isinstance(exc, PreconditionError):
                state.record_error(exc)
            await _compensate(executed, state, RunOutcome.HALTED)
            raise

        logger.info(
            'Pipeline run finished: outcome=%s steps=%d',
            outcome.value,
            len(executed),
            extra={'outcome': outcome.value},
        )
        if outcome.needs_compensation:
            await _compensate(executed, state, outcome)
        return outcome
    finally:
        run_id_ctx.reset(token)


async def _compensate(
    executed: Sequence[Step],
    state: PipelineState,
    outcome: RunOutcome,
) -> None:
    for step in reversed(executed):
        try:
            await step.cleanup(state, outcome)
        except Exception:
            logger.warning(
                'Cleanup of %s failed',
                type(step).__name__,
                extra={'outcome': outcome.value},
                exc_info=True,
            )
