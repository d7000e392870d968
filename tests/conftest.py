"""Shared pytest configuration and fixtures for the capture test suite."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the src directory is importable without an install
PROJECT_ROOT = Path(__file__).parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rs_capture.api.param_type import StreamType
from rs_capture.services.capture_errors import DeviceError, NoDeviceError
from rs_capture.services.frame_exporter import ExportResult
from rs_capture.services.frames import Aligner, CameraIntrinsics, Frame, FrameBundle, FrameSource


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring a connected RealSense camera"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a RealSense camera",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Synthetic frames and devices
# =============================================================================

HEIGHT, WIDTH = 4, 6
DEPTH_SCALE = 0.001

DEPTH_INTRINSICS = CameraIntrinsics(
    width=WIDTH, height=HEIGHT, ppx=3.0, ppy=2.0, fx=5.5, fy=5.25,
    model="brown_conrady", coeffs=(0.1, 0.0, 0.0, 0.0, -0.2),
)


def make_frame(stream: StreamType, timestamp: float = 0.0) -> Frame:
    if stream == StreamType.DEPTH:
        data = np.arange(HEIGHT * WIDTH, dtype=np.uint16).reshape(HEIGHT, WIDTH) * 100
        return Frame(stream, data, "z16", WIDTH, HEIGHT, timestamp, DEPTH_INTRINSICS)
    if stream == StreamType.COLOR:
        data = np.full((HEIGHT, WIDTH, 3), 128, dtype=np.uint8)
        return Frame(stream, data, "bgr8", WIDTH, HEIGHT, timestamp)
    data = np.full((HEIGHT, WIDTH), 64, dtype=np.uint8)
    return Frame(stream, data, "y8", WIDTH, HEIGHT, timestamp)


def make_bundle(streams=(StreamType.COLOR, StreamType.DEPTH), timestamp: float = 0.0) -> FrameBundle:
    return FrameBundle.of(make_frame(s, timestamp) for s in streams)


class FakeFrameSource(FrameSource):
    """
    Delivers synthetic bundles. After `limit` pulls it raises DeviceError,
    which is how a disconnected camera ends an unbounded run.
    """

    def __init__(self, streams=(StreamType.COLOR, StreamType.DEPTH), limit=None, connected=True):
        self.streams = streams
        self.limit = limit
        self.connected = connected
        self.pulls = 0
        self.started = False
        self.stopped = False

    def start(self, stream_requests=None):
        if not self.connected:
            raise NoDeviceError("No RealSense device connected.")
        self.started = True

    def wait_for_bundle(self):
        if self.limit is not None and self.pulls >= self.limit:
            raise DeviceError("device disconnected")
        self.pulls += 1
        return make_bundle(self.streams, timestamp=self.pulls * 33.3)

    @property
    def depth_scale(self):
        return DEPTH_SCALE

    def depth_intrinsics(self):
        return DEPTH_INTRINSICS

    def stop(self):
        self.stopped = True


class FakeAligner(Aligner):
    """Passes bundles through; drops the listed channels on the given (1-based) call."""

    def __init__(self, drop_on_call=None, drop=(StreamType.DEPTH,)):
        self.calls = []
        self.drop_on_call = drop_on_call
        self.drop = drop

    def align(self, bundle, target):
        self.calls.append(target)
        if len(self.calls) == self.drop_on_call:
            return FrameBundle({s: f for s, f in bundle.frames.items() if s not in self.drop})
        return bundle


class RecordingExporter:
    """Stands in for FrameExporter; fails the metadata write on the listed ticks."""

    def __init__(self, fail_ticks=()):
        self.fail_ticks = set(fail_ticks)
        self.calls = []

    def export_record(self, base_path, tick, bundle, intrinsics, reference=StreamType.COLOR):
        self.calls.append((base_path, tick, intrinsics, reference))
        return ExportResult(tick=tick, metadata_path=f"{base_path}depth_{tick}.json",
                            metadata_written=tick not in self.fail_ticks)

    @property
    def ticks(self):
        return [c[1] for c in self.calls]


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def source() -> FakeFrameSource:
    return FakeFrameSource()


@pytest.fixture
def aligner() -> FakeAligner:
    return FakeAligner()


@pytest.fixture
def exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def clock():
    """Frozen wall clock."""
    return lambda: 1700000000.4
