"""Pytest configuration for ami_bakery tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from ami_bakery.models import ImageDescriptor, ImageRequest
from ami_bakery.pipeline.state import PipelineState
from ami_bakery.pipeline.ui import RecordingUi


@pytest.fixture
def ui() -> RecordingUi:
    return RecordingUi()


@pytest.fixture
def pipeline_state(ui: RecordingUi) -> PipelineState:
    """State as left by the upstream launch steps."""
    return PipelineState(
        ui=ui,
        request=ImageRequest(
            name='base-image-2026-10-19',
            block_device_mappings=(
                {'DeviceName': '/dev/sda1', 'Ebs': {'VolumeSize': 16}},
            ),
        ),
        instance_id='i-0abc123',
        source_image=ImageDescriptor(
            image_id='ami-source',
            state='available',
            virtualization_type='hvm',
        ),
    )
