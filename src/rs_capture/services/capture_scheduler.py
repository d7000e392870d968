import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from rs_capture.api.param_schema import IntrinsicsRecord
from rs_capture.api.param_type import StopReason, StreamType
from rs_capture.common.utils import median_depth_m
from rs_capture.core.config import settings
from rs_capture.services.capture_errors import InvalidConfig, NoAlignTarget, NoDepthStream
from rs_capture.services.frame_exporter import ExportResult, FrameExporter
from rs_capture.services.frames import Aligner, FrameSource

logger = logging.getLogger(__name__)


def find_align_target(streams: Sequence[StreamType]) -> StreamType:
    """
    Picks the stream to align depth with.

    Color wins whenever it is present. Without color, the last non-depth
    stream in bundle order is used.

    Raises:
        NoDepthStream: no depth stream in `streams`.
        NoAlignTarget: depth is the only stream.
    """
    align_to = None
    depth_stream_found = False
    color_stream_found = False
    for stream in streams:
        if stream == StreamType.DEPTH:
            depth_stream_found = True
            continue
        if not color_stream_found:
            align_to = stream
        if stream == StreamType.COLOR:
            color_stream_found = True

    if not depth_stream_found:
        raise NoDepthStream("No Depth stream available")
    if align_to is None:
        raise NoAlignTarget("No stream found to align with Depth")
    return align_to


@dataclass
class ScheduleState:
    target_rate: int
    source_rate: int
    skip_interval: int
    remaining: Optional[int] = None
    tick: int = 0

    def keeps(self, tick: int) -> bool:
        return tick % self.skip_interval == 0

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0


@dataclass
class ConfigResult:
    state: Optional[ScheduleState] = None
    error: Optional[InvalidConfig] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self):
        if self.error is not None:
            raise self.error


@dataclass
class RunSummary:
    ticks: int = 0
    exported: int = 0
    failed: int = 0
    stop_reason: Optional[StopReason] = None
    results: List[ExportResult] = field(default_factory=list)

    @property
    def files(self) -> List[str]:
        files = []
        for r in self.results:
            if r.ok:
                files.append(r.metadata_path)
                files.extend(r.written)
        return files


class CaptureScheduler:
    """
    Turns the continuous stream of bundles from a FrameSource into export jobs
    at roughly `target_rate` frames per second.

    Usage:
        scheduler = CaptureScheduler(source, aligner, exporter)
        scheduler.configure(10, "out/", max_count=5).raise_for_error()
        scheduler.warm_up(30)
        summary = scheduler.run()
    """

    def __init__(self,
                 source: FrameSource,
                 aligner: Aligner,
                 exporter: Optional[FrameExporter] = None,
                 source_rate_cap: Optional[int] = None):
        self.source = source
        self.aligner = aligner
        self.exporter = exporter or FrameExporter()
        self.source_rate_cap = source_rate_cap or settings.SOURCE_RATE_CAP
        self.output_path = None
        self.state = None

    def configure(self, target_rate: int, output_path: str, max_count: int = 0) -> ConfigResult:
        """
        Validates the rate and output bound and derives the skip interval.

        The interval is `source_rate_cap // target_rate`, so rates that do not
        divide the cap run slightly fast (7 fps keeps every 4th frame, 7.5 fps).

        Returns:
            A ConfigResult holding either the new ScheduleState or an InvalidConfig.
        """
        if target_rate <= 0 or target_rate > self.source_rate_cap:
            return ConfigResult(error=InvalidConfig(
                f"Frame rate must be between 1 and {self.source_rate_cap}, got {target_rate}"))
        if max_count < 0:
            return ConfigResult(error=InvalidConfig(f"Maximum export count must not be negative, got {max_count}"))

        self.output_path = output_path
        self.state = ScheduleState(
            target_rate=target_rate,
            source_rate=self.source_rate_cap,
            skip_interval=self.source_rate_cap // target_rate,
            remaining=max_count or None,
        )
        logger.info(f"Capturing at {target_rate} fps: keeping every {self.state.skip_interval} frame(s)"
                    + (f", at most {max_count} export(s)" if max_count else ""))
        return ConfigResult(state=self.state)

    def warm_up(self, n: int):
        """Discards `n` bundles so auto-exposure and gain can settle."""
        for _ in range(n):
            self.source.wait_for_bundle()
        if n:
            logger.info(f"Warm-up done, dropped {n} frame(s).")

    def run(self) -> RunSummary:
        if self.state is None:
            raise InvalidConfig("Scheduler must be configured before it runs")

        state = self.state
        summary = RunSummary()
        while True:
            if state.exhausted:
                summary.stop_reason = StopReason.MAX_COUNT_REACHED
                break

            state.tick += 1
            tick = state.tick
            bundle = self.source.wait_for_bundle()
            summary.ticks += 1
            if not state.keeps(tick):
                continue

            align_to = find_align_target(bundle.stream_types())
            aligned = self.aligner.align(bundle, align_to)

            aligned_depth_frame = aligned.get(StreamType.DEPTH)
            other_frame = aligned.get(align_to)
            if not aligned_depth_frame or not other_frame:
                logger.warning(f"Tick {tick}: aligned depth or {align_to.value} frame unavailable, stopping.")
                summary.stop_reason = StopReason.FRAMES_UNAVAILABLE
                break

            record = IntrinsicsRecord.from_intrinsics(aligned_depth_frame.intrinsics, self.source.depth_scale)
            logger.debug(f"Tick {tick}: median depth "
                         f"{median_depth_m(aligned_depth_frame.data, record.scale):.3f} m")

            result = self.exporter.export_record(self.output_path, tick, aligned, record, reference=align_to)
            summary.results.append(result)
            if not result.ok:
                summary.failed += 1
                continue

            summary.exported += 1
            if state.remaining is not None:
                state.remaining -= 1

        logger.info(f"Capture stopped ({summary.stop_reason.value}) after {summary.ticks} tick(s), "
                    f"{summary.exported} exported.")
        return summary
