from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Stream profile requested from the device
    STREAM_WIDTH: int = 1280
    STREAM_HEIGHT: int = 720
    STREAM_FPS: int = 30
    COLOR_FORMAT: str = "bgr8"
    DEPTH_FORMAT: str = "z16"

    # Capture loop
    SOURCE_RATE_CAP: int = 30
    WARMUP_FRAMES: int = 30
    # None blocks until the device delivers a frameset
    FRAME_TIMEOUT_MS: Optional[int] = None
    DEVICE_POLL_MS: int = 1000

    # Export
    COLORMAP_ALPHA: float = 0.03

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


settings = Settings()
