import logging

from fastapi import FastAPI

from rs_capture.api.endpoints import router as api_router
from rs_capture.core.config import settings
from rs_capture.services.capture_errors import CaptureError
from rs_capture.services.realsense_source import rs_frame_source


app_logger = logging.getLogger("rs_capture")
app_logger.setLevel(settings.LOG_LEVEL.upper())


app = FastAPI(
    title="RealSense Aligned Capture API",
    description="An API for capturing depth-aligned color, colorized depth and raw depth frames to disk.",
    version="0.1.0",
)


@app.on_event("startup")
async def startup_event():
    """Open the RealSense camera so the first session does not pay for it."""
    try:
        rs_frame_source.start()
    except CaptureError as e:
        app_logger.warning(f"Could not initialize RealSense camera on startup: {e}. Capture endpoints will retry.")


@app.on_event("shutdown")
async def shutdown_event():
    """Gracefully shut down the RealSense pipeline."""
    rs_frame_source.stop()


app.include_router(api_router, prefix="/api/v1", tags=["Capture"])
