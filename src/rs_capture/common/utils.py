import os

import cv2
import numpy as np


def build_export_path(base_path: str, channel: str, tick: int, unix_time: int, extension: str) -> str:
    """
    Builds the file name of one exported channel.

    The tick and the unix time are concatenated without a separator, e.g.
    `out/color_121734567890.png` for tick 12.

    Args:
        base_path: Output directory prefix, expected to end with a separator.
        channel: Channel name ('color', 'ir', 'depth').
        tick: Loop tick the bundle was pulled on.
        unix_time: Wall clock time in whole seconds.
        extension: File extension including the dot.

    Returns:
        The full file path.
    """
    return f"{base_path}{channel}_{tick}{unix_time}{extension}"


def ensure_trailing_separator(path: str) -> str:
    """Appends a path separator so the directory can be used as a file name prefix."""
    if path.endswith(("/", os.sep)):
        return path
    return path + os.sep


def prepare_output_dir(path: str) -> str:
    """
    Creates the output directory if needed.

    Args:
        path: Directory the exported files go to.

    Returns:
        The directory with a trailing separator, ready to be used as a file name prefix.

    Raises:
        OSError: the directory cannot be created or is not writable.
    """
    os.makedirs(path, exist_ok=True)
    if not os.access(path, os.W_OK):
        raise PermissionError(f"Output directory {path} is not writable")
    return ensure_trailing_separator(path)


def colorize_depth(depth_image: np.ndarray, alpha: float = 0.03) -> np.ndarray:
    """
    Maps a raw 16-bit depth image to a 3-channel 8-bit JET colormap.

    Args:
        depth_image: Raw depth in device units.
        alpha: Scale applied before saturating to 8 bits.

    Returns:
        The BGR colorized depth image.
    """
    return cv2.applyColorMap(cv2.convertScaleAbs(depth_image, alpha=alpha), cv2.COLORMAP_JET)


def median_depth_m(depth_image: np.ndarray, depth_scale: float) -> float:
    """Median distance in meters over the pixels that carry a depth reading, 0.0 if none do."""
    valid = depth_image[depth_image > 0]
    if valid.size == 0:
        return 0.0
    return float(np.median(valid)) * depth_scale
