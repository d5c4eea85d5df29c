"""Pipeline state, messaging sinks and the sequential step runner."""

from .runner import run_steps
from .state import PipelineState, RunOutcome, StepAction
from .ui import ConsoleUi, RecordingUi

__all__ = [
    "ConsoleUi",
    "PipelineState",
    "RecordingUi",
    "RunOutcome",
    "StepAction",
    "run_steps",
]
