"""Step runner tests: outcomes, cleanup ordering and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from ami_bakery.db.progress_store import SqlProgressStore
from ami_bakery.inmemory import InMemoryImageClient, InMemoryProgressStore
from ami_bakery.observability.logging import run_id_ctx
from ami_bakery.pipeline.runner import run_steps
from ami_bakery.pipeline.state import PipelineState, RunOutcome, StepAction
from ami_bakery.provisioning.create_image import StepCreateImage
from ami_bakery.provisioning.errors import PreconditionError, WaitCancelled
from ami_bakery.provisioning.waiter import StateWaiter


class RecordingStep:
    """Step double that records run/cleanup calls into a shared log."""

    def __init__(self, name: str, log: list, *, action: StepAction = StepAction.CONTINUE,
                 raises: Exception | None = None) -> None:
        self.name = name
        self.log = log
        self.action = action
        self.raises = raises

    async def run(self, state: PipelineState) -> StepAction:
        self.log.append(('run', self.name))
        if self.raises is not None:
            raise self.raises
        return self.action

    async def cleanup(self, state: PipelineState, outcome: RunOutcome) -> None:
        self.log.append(('cleanup', self.name, outcome))


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_success_skips_cleanup(self, pipeline_state):
        log: list = []
        steps = [RecordingStep('a', log), RecordingStep('b', log)]

        outcome = await run_steps(steps, pipeline_state)

        assert outcome is RunOutcome.SUCCEEDED
        assert log == [('run', 'a'), ('run', 'b')]

    @pytest.mark.asyncio
    async def test_halt_stops_and_cleans_up_in_reverse(self, pipeline_state):
        log: list = []
        steps = [
            RecordingStep('a', log),
            RecordingStep('b', log, action=StepAction.HALT),
            RecordingStep('c', log),
        ]

        outcome = await run_steps(steps, pipeline_state)

        assert outcome is RunOutcome.HALTED
        assert log == [
            ('run', 'a'),
            ('run', 'b'),
            ('cleanup', 'b', RunOutcome.HALTED),
            ('cleanup', 'a', RunOutcome.HALTED),
        ]

    @pytest.mark.asyncio
    async def test_cancelled_before_start_runs_nothing(self, pipeline_state):
        log: list = []
        pipeline_state.cancel()

        outcome = await run_steps([RecordingStep('a', log)], pipeline_state)

        assert outcome is RunOutcome.CANCELLED
        assert log == []

    @pytest.mark.asyncio
    async def test_step_exception_cleans_up_and_propagates(self, pipeline_state):
        log: list = []
        steps = [
            RecordingStep('a', log),
            RecordingStep('b', log, raises=PreconditionError('instance_id')),
        ]

        with pytest.raises(PreconditionError):
            await run_steps(steps, pipeline_state)

        assert ('cleanup', 'a', RunOutcome.HALTED) in log
        assert pipeline_state.error is None

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self, pipeline_state):
        boom = RuntimeError('boom')

        with pytest.raises(RuntimeError):
            await run_steps([RecordingStep('a', [], raises=boom)], pipeline_state)

        assert pipeline_state.error is boom

    @pytest.mark.asyncio
    async def test_run_id_is_scoped_to_the_run(self, pipeline_state):
        seen: list = []

        class RunIdCapture(RecordingStep):
            async def run(self, state):
                seen.append(run_id_ctx.get())
                return StepAction.CONTINUE

        await run_steps([RunIdCapture('p', [])], pipeline_state, run_id='run-42')

        assert seen == ['run-42']
        assert run_id_ctx.get() is None


class TestCreateImageInPipeline:
    @pytest.mark.asyncio
    async def test_failed_image_is_deregistered_after_halt(self, pipeline_state):
        client = InMemoryImageClient(states=('pending', 'failed'))
        step = StepCreateImage(
            client=client,
            store=InMemoryProgressStore(),
            waiter=StateWaiter(poll_interval=0),
        )

        outcome = await run_steps([step], pipeline_state)

        assert outcome is RunOutcome.HALTED
        assert pipeline_state.amis == {'us-east-1': 'img-111'}
        assert client.deregistered == ['img-111']

    @pytest.mark.asyncio
    async def test_successful_image_is_kept(self, pipeline_state):
        client = InMemoryImageClient()
        step = StepCreateImage(
            client=client,
            store=InMemoryProgressStore(),
            waiter=StateWaiter(poll_interval=0),
        )

        outcome = await run_steps([step], pipeline_state)

        assert outcome is RunOutcome.SUCCEEDED
        assert client.deregistered == []

    @pytest.mark.asyncio
    async def test_cancel_during_wait_compensates(self, pipeline_state):
        client = InMemoryImageClient(states=('pending',))
        step = StepCreateImage(
            client=client,
            store=InMemoryProgressStore(),
            waiter=StateWaiter(poll_interval=30, timeout=600),
        )

        async def cancel_soon():
            await asyncio.sleep(0.05)
            pipeline_state.cancel()

        canceller = asyncio.create_task(cancel_soon())
        outcome = await asyncio.wait_for(run_steps([step], pipeline_state), timeout=5)
        await canceller

        assert outcome is RunOutcome.CANCELLED
        assert isinstance(pipeline_state.error, WaitCancelled)
        assert client.deregistered == ['img-111']

    @pytest.mark.asyncio
    async def test_task_cancellation_still_compensates(self, pipeline_state):
        client = InMemoryImageClient(states=('pending',))
        step = StepCreateImage(
            client=client,
            store=InMemoryProgressStore(),
            waiter=StateWaiter(poll_interval=30, timeout=600),
        )

        task = asyncio.create_task(run_steps([step], pipeline_state))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert pipeline_state.is_cancelled
        assert client.deregistered == ['img-111']

    @pytest.mark.asyncio
    async def test_later_halt_keeps_recorded_image(self, pipeline_state, tmp_path):
        store = SqlProgressStore(str(tmp_path / 'pacman.db'))
        await store.create_schema()
        await store.seed_pending(['us-east-1'], ['hvm'])
        client = InMemoryImageClient()
        step = StepCreateImage(
            client=client,
            store=store,
            waiter=StateWaiter(poll_interval=0),
        )
        log: list = []

        outcome = await run_steps(
            [step, RecordingStep('copy', log, action=StepAction.HALT)],
            pipeline_state,
        )

        assert outcome is RunOutcome.HALTED
        assert client.deregistered == []
        record = await store.get_record('us-east-1', 'hvm')
        assert (record.status, record.image_id) == ('done', 'img-111')

    @pytest.mark.asyncio
    async def test_cancel_after_step_finished_keeps_image(self, pipeline_state):
        client = InMemoryImageClient()
        step = StepCreateImage(
            client=client,
            store=InMemoryProgressStore(),
            waiter=StateWaiter(poll_interval=0),
        )

        class CancelsRun(RecordingStep):
            async def run(self, state):
                state.cancel()
                return StepAction.HALT

        outcome = await run_steps([step, CancelsRun('next', [])], pipeline_state)

        assert outcome is RunOutcome.CANCELLED
        assert client.deregistered == []
