import logging
import threading

from fastapi import APIRouter, Depends, HTTPException

from rs_capture.api.param_schema import CaptureSessionRequest, CaptureSessionSummary, IntrinsicsRecord
from rs_capture.common.utils import ensure_trailing_separator, prepare_output_dir
from rs_capture.core.config import settings
from rs_capture.services.capture_errors import CaptureError, NoDeviceError
from rs_capture.services.capture_scheduler import CaptureScheduler
from rs_capture.services.frame_exporter import FrameExporter
from rs_capture.services.frames import Aligner
from rs_capture.services.realsense_source import RealSenseAligner, RealSenseFrameSource, rs_frame_source


logger = logging.getLogger(__name__)

router = APIRouter()

_session_lock = threading.Lock()


def get_frame_source() -> RealSenseFrameSource:
    return rs_frame_source


def get_aligner() -> Aligner:
    return RealSenseAligner()


@router.post("/capture_session/", response_model=CaptureSessionSummary)
def capture_session(
    request: CaptureSessionRequest,
    source: RealSenseFrameSource = Depends(get_frame_source),
    aligner: Aligner = Depends(get_aligner),
):
    """
    Runs one bounded capture session on the connected RealSense camera and
    returns the files it wrote.

    - **target_rate**: Output frame rate, 1 to 30.
    - **output_dir**: Directory on the server the files are written to.
    - **max_count**: Number of exports after which the session ends.
    - **warmup**: (Optional) Frames dropped before capturing, defaults to the server setting.
    """
    scheduler = CaptureScheduler(source, aligner, FrameExporter())
    result = scheduler.configure(request.target_rate, ensure_trailing_separator(request.output_dir), request.max_count)
    if not result.ok:
        raise HTTPException(status_code=400, detail=str(result.error))
    try:
        prepare_output_dir(request.output_dir)
    except OSError as e:
        raise HTTPException(status_code=400, detail=f"Cannot write to output directory {request.output_dir}: {e}")

    if not _session_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="A capture session is already running.")
    try:
        source.start()
        scheduler.warm_up(settings.WARMUP_FRAMES if request.warmup is None else request.warmup)
        summary = scheduler.run()
    except NoDeviceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except CaptureError as e:
        logger.error(f"Capture session failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        _session_lock.release()

    return CaptureSessionSummary(
        skip_interval=result.state.skip_interval,
        ticks=summary.ticks,
        exported=summary.exported,
        failed=summary.failed,
        stop_reason=summary.stop_reason,
        files=summary.files,
    )


@router.get("/intrinsics/", response_model=IntrinsicsRecord)
def intrinsics(source: RealSenseFrameSource = Depends(get_frame_source)):
    """
    Returns the depth scale and depth stream intrinsics of the connected camera.
    """
    try:
        source.start()
        return IntrinsicsRecord.from_intrinsics(source.depth_intrinsics(), source.depth_scale)
    except NoDeviceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except CaptureError as e:
        raise HTTPException(status_code=500, detail=str(e))
