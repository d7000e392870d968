import abc
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from rs_capture.api.param_schema import StreamRequest
from rs_capture.api.param_type import StreamType


@dataclass(frozen=True)
class CameraIntrinsics:
    width: int
    height: int
    ppx: float
    ppy: float
    fx: float
    fy: float
    model: str
    coeffs: Tuple[float, float, float, float, float]


@dataclass
class Frame:
    """One channel of a bundle. Falsy when it carries no pixels."""
    stream: StreamType
    data: Optional[np.ndarray]
    format: str
    width: int
    height: int
    timestamp: float = 0.0
    intrinsics: Optional[CameraIntrinsics] = None

    def __bool__(self) -> bool:
        return self.data is not None and self.data.size > 0


@dataclass
class FrameBundle:
    """
    Synchronized frames captured at one instant, keyed by stream type in the
    order the device delivered them.

    `native` holds the backend frameset so an aligner of the same backend can
    process it without a round trip through numpy.
    """
    frames: Dict[StreamType, Frame] = field(default_factory=dict)
    native: Any = None

    @classmethod
    def of(cls, frames: Iterable[Frame], native: Any = None) -> "FrameBundle":
        return cls({f.stream: f for f in frames}, native)

    def stream_types(self) -> List[StreamType]:
        return list(self.frames)

    def get(self, stream: StreamType) -> Optional[Frame]:
        return self.frames.get(stream)

    @property
    def depth(self) -> Optional[Frame]:
        return self.frames.get(StreamType.DEPTH)


class FrameSource(abc.ABC):
    """Device that delivers one synchronized bundle per call."""

    @abc.abstractmethod
    def start(self, stream_requests: Optional[List[StreamRequest]] = None) -> None:
        ...

    @abc.abstractmethod
    def wait_for_bundle(self) -> FrameBundle:
        """Blocks until the next bundle is ready. Raises DeviceError when capture is interrupted."""
        ...

    @property
    @abc.abstractmethod
    def depth_scale(self) -> float:
        ...

    def stop(self) -> None:
        pass


class Aligner(abc.ABC):
    """Resamples the depth channel of a bundle into the pixel grid of another stream."""

    @abc.abstractmethod
    def align(self, bundle: FrameBundle, target: StreamType) -> FrameBundle:
        """May return a bundle with missing channels if device buffers underrun."""
        ...
