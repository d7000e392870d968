import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import cv2
import numpy as np

from rs_capture.api.param_schema import IntrinsicsRecord
from rs_capture.api.param_type import StreamType
from rs_capture.common.utils import build_export_path, colorize_depth
from rs_capture.core.config import settings
from rs_capture.services.capture_errors import ImageWriteFailure, MetadataWriteFailure
from rs_capture.services.frames import FrameBundle

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    tick: int
    metadata_path: str
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    metadata_written: bool = False

    @property
    def ok(self) -> bool:
        return self.metadata_written


class FrameExporter:
    """
    Writes one aligned bundle to disk: the intrinsics record first, then the
    reference image, the colorized depth and the raw 16-bit depth.

    All four files of a tick share a single wall clock reading.
    """

    def __init__(self, clock: Callable[[], float] = time.time, colormap_alpha: Optional[float] = None):
        self.clock = clock
        self.colormap_alpha = settings.COLORMAP_ALPHA if colormap_alpha is None else colormap_alpha

    def export_record(self,
                      base_path: str,
                      tick: int,
                      bundle: FrameBundle,
                      intrinsics: IntrinsicsRecord,
                      reference: StreamType = StreamType.COLOR
                      ) -> ExportResult:
        unix_time = int(self.clock())
        metadata_path = build_export_path(base_path, "depth", tick, unix_time, ".json")
        result = ExportResult(tick=tick, metadata_path=metadata_path)

        try:
            self._write_metadata(metadata_path, intrinsics)
        except MetadataWriteFailure as e:
            logger.warning(f"Skipping tick {tick}: {e}")
            return result
        result.metadata_written = True

        depth_image = bundle.get(StreamType.DEPTH).data.astype(np.uint16, copy=False)
        images = [
            ("color", lambda: bundle.get(reference).data),
            ("ir", lambda: self._colorize(depth_image)),
            ("depth", lambda: depth_image),
        ]
        for channel, render in images:
            path = build_export_path(base_path, channel, tick, unix_time, ".png")
            try:
                self._write_image(path, render())
                result.written.append(path)
            except ImageWriteFailure as e:
                logger.warning(f"Tick {tick}: {e}")
                result.failed.append(channel)

        logger.info(f"Exported tick {tick}: {', '.join(result.written) or 'no images'}")
        return result

    def _write_metadata(self, path: str, intrinsics: IntrinsicsRecord):
        try:
            with open(path, "w") as f:
                f.write(intrinsics.to_text())
        except OSError as e:
            raise MetadataWriteFailure(f"Could not write intrinsics record {path}: {e}") from e

    def _colorize(self, depth_image: np.ndarray) -> np.ndarray:
        try:
            return colorize_depth(depth_image, alpha=self.colormap_alpha)
        except cv2.error as e:
            raise ImageWriteFailure(f"Could not colorize depth: {e}") from e

    def _write_image(self, path: str, image: np.ndarray):
        try:
            written = cv2.imwrite(path, image)
        except cv2.error as e:
            raise ImageWriteFailure(f"Could not encode {path}: {e}") from e
        if not written:
            raise ImageWriteFailure(f"Could not write {path}")
