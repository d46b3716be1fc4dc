"""QR reader capture sessions."""

from .session import (  # noqa: F401
    CameraBusyError,
    CameraPermissionDeniedError,
    CameraUnsupportedError,
    CaptureDevice,
    NoCameraFoundError,
    QueueCaptureDevice,
    ScanSession,
    ScannerUnavailableError,
    StreamCaptureDevice,
    select_device,
)
