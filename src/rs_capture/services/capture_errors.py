# --- Custom Exceptions

class CaptureError(Exception):
    """Base exception for capture pipeline errors."""
    pass

class InvalidConfig(CaptureError):
    """Exception raised for a capture configuration that cannot run (bad rate or count)."""
    pass

class NoDepthStream(CaptureError):
    """Exception raised when a bundle carries no depth channel."""
    pass

class NoAlignTarget(CaptureError):
    """Exception raised when no non-depth stream is available to align depth with."""
    pass

class DeviceError(CaptureError):
    """Exception raised when the device stops delivering frames."""
    pass

class NoDeviceError(DeviceError):
    """Exception raised when no RealSense device is found."""
    pass

class MetadataWriteFailure(CaptureError):
    """Exception raised when the intrinsics record of a tick cannot be written."""
    pass

class ImageWriteFailure(CaptureError):
    """Exception raised when one image channel of a tick cannot be written."""
    pass
