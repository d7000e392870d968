import logging
from typing import Dict, List, Optional

import numpy as np
import pyrealsense2 as rs

from rs_capture.api.param_schema import StreamRequest
from rs_capture.api.param_type import StreamType
from rs_capture.core.config import settings
from rs_capture.services.capture_errors import DeviceError, InvalidConfig, NoDeviceError
from rs_capture.services.frames import Aligner, CameraIntrinsics, Frame, FrameBundle, FrameSource

logger = logging.getLogger(__name__)


RS_STREAMS = {
    StreamType.DEPTH: rs.stream.depth,
    StreamType.COLOR: rs.stream.color,
    StreamType.INFRARED: rs.stream.infrared,
    StreamType.FISHEYE: rs.stream.fisheye,
    StreamType.CONFIDENCE: rs.stream.confidence,
}
STREAM_TYPES = {v: k for k, v in RS_STREAMS.items()}


def _enum_name(value) -> str:
    # pyrealsense2 enums print as 'format.z16', 'distortion.brown_conrady'
    return str(value).split(".")[-1]


def default_stream_requests() -> List[StreamRequest]:
    width, height, fps = settings.STREAM_WIDTH, settings.STREAM_HEIGHT, settings.STREAM_FPS
    return [
        StreamRequest(stream=StreamType.COLOR, width=width, height=height, format=settings.COLOR_FORMAT, fps=fps),
        StreamRequest(stream=StreamType.DEPTH, width=width, height=height, format=settings.DEPTH_FORMAT, fps=fps),
    ]


def to_camera_intrinsics(intr) -> CameraIntrinsics:
    return CameraIntrinsics(
        width=intr.width,
        height=intr.height,
        ppx=intr.ppx,
        ppy=intr.ppy,
        fx=intr.fx,
        fy=intr.fy,
        model=_enum_name(intr.model),
        coeffs=tuple(intr.coeffs),
    )


def to_frame_bundle(frameset) -> FrameBundle:
    """Converts an SDK frameset into a FrameBundle, skipping motion frames and unknown streams."""
    frames = []
    seen = set()
    for frame in frameset:
        if not frame.is_video_frame():
            continue
        profile = frame.get_profile()
        stream = STREAM_TYPES.get(profile.stream_type())
        # Only the first infrared imager of a stereo pair is kept
        if stream is None or stream in seen:
            continue
        seen.add(stream)
        video_frame = frame.as_video_frame()
        frames.append(Frame(
            stream=stream,
            data=np.asanyarray(video_frame.get_data()),
            format=_enum_name(profile.format()),
            width=video_frame.get_width(),
            height=video_frame.get_height(),
            timestamp=frame.get_timestamp(),
            intrinsics=to_camera_intrinsics(profile.as_video_stream_profile().get_intrinsics()),
        ))
    return FrameBundle.of(frames, native=frameset)


class RealSenseFrameSource(FrameSource):
    """
    FrameSource backed by a librealsense pipeline.

    Constructing the source does not touch the device; `start` does.
    """

    def __init__(self, frame_timeout_ms: Optional[int] = None, poll_ms: Optional[int] = None):
        self.frame_timeout_ms = settings.FRAME_TIMEOUT_MS if frame_timeout_ms is None else frame_timeout_ms
        self.poll_ms = poll_ms or settings.DEVICE_POLL_MS
        self.is_initialized = False
        self.pipeline = None
        self.profile = None
        self.serial = None
        self._depth_scale = None

    @property
    def depth_scale(self) -> float:
        return self._depth_scale

    def start(self, stream_requests: Optional[List[StreamRequest]] = None):
        """Starts streaming, only if not already started."""
        if self.is_initialized:
            logger.info("RealSense pipeline is already started.")
            return

        requests = stream_requests or default_stream_requests()
        formats = [getattr(rs.format, req.format, None) for req in requests]
        for req, fmt in zip(requests, formats):
            if fmt is None:
                raise InvalidConfig(f"Unknown pixel format '{req.format}' for the {req.stream.value} stream")

        try:
            logger.info("Attempting to start RealSense pipeline...")
            context = rs.context()
            if len(context.devices) == 0:
                logger.warning("No RealSense device connected.")
                raise NoDeviceError("No RealSense device connected.")

            self.pipeline = rs.pipeline()
            config = rs.config()
            for req, fmt in zip(requests, formats):
                config.enable_stream(RS_STREAMS[req.stream], req.width, req.height, fmt, req.fps)

            self.profile = self.pipeline.start(config)
        except RuntimeError as e:
            self.pipeline = None
            raise DeviceError(f"Failed to start RealSense pipeline: {e}") from e

        device = self.profile.get_device()
        self.serial = device.get_info(rs.camera_info.serial_number)
        try:
            self._depth_scale = device.first_depth_sensor().get_depth_scale()
        except RuntimeError as e:
            self._stop_pipeline()
            raise DeviceError("Device does not have a depth sensor") from e

        self.is_initialized = True
        logger.info(f"RealSense pipeline started on device {self.serial}, depth scale: {self._depth_scale}")

    def wait_for_bundle(self) -> FrameBundle:
        if not self.is_initialized:
            raise DeviceError("RealSense pipeline is not started.")

        if self.frame_timeout_ms is not None:
            try:
                frames = self.pipeline.wait_for_frames(timeout_ms=self.frame_timeout_ms)
            except RuntimeError as e:
                raise DeviceError(f"Error with RealSense camera: {e}") from e
            return to_frame_bundle(frames)

        while True:
            ok, frames = self.pipeline.try_wait_for_frames(timeout_ms=self.poll_ms)
            if ok:
                return to_frame_bundle(frames)
            if not self._device_connected():
                raise DeviceError(f"RealSense device {self.serial} disconnected.")
            logger.debug(f"Still waiting for frames from {self.serial}")

    def _device_connected(self) -> bool:
        serials = [d.get_info(rs.camera_info.serial_number) for d in rs.context().query_devices()]
        return self.serial in serials

    def depth_intrinsics(self) -> CameraIntrinsics:
        """Intrinsics of the active depth stream profile."""
        if not self.is_initialized:
            raise DeviceError("RealSense pipeline is not started.")
        depth_profile = self.profile.get_stream(rs.stream.depth).as_video_stream_profile()
        return to_camera_intrinsics(depth_profile.get_intrinsics())

    def stop(self):
        """Stops the pipeline, checking if it was ever started."""
        if self.is_initialized:
            self._stop_pipeline()
        else:
            logger.info("RealSense pipeline was not active, nothing to stop.")

    def _stop_pipeline(self):
        try:
            self.pipeline.stop()
            logger.info("RealSense pipeline stopped.")
        except RuntimeError as e:
            logger.error(f"Error while stopping pipeline: {e}")
        finally:
            self.is_initialized = False
            self.pipeline = None
            self.profile = None


class RealSenseAligner(Aligner):
    """Aligns depth with rs.align, keeping one align block per target stream."""

    def __init__(self):
        self._align: Dict[StreamType, "rs.align"] = {}

    def align(self, bundle: FrameBundle, target: StreamType) -> FrameBundle:
        if target not in self._align:
            self._align[target] = rs.align(RS_STREAMS[target])
        processed = self._align[target].process(bundle.native)
        return to_frame_bundle(processed)


# Shared by the HTTP service; started on first use.
rs_frame_source = RealSenseFrameSource()
