from enum import Enum


class StreamType(str, Enum):
    """Enum for the streams a frame bundle can carry."""
    DEPTH = "depth"
    COLOR = "color"
    INFRARED = "infrared"
    FISHEYE = "fisheye"
    CONFIDENCE = "confidence"

class StopReason(str, Enum):
    """Enum for why a capture run ended."""
    MAX_COUNT_REACHED = "max_count_reached"
    FRAMES_UNAVAILABLE = "frames_unavailable"
