from __future__ import annotations


class LeafScanError(RuntimeError):
    """Base class for every failure raised by the capture pipeline."""


class CameraError(LeafScanError):
    """Camera could not be brought up."""


class CameraUnsupported(CameraError):
    pass


class PermissionDenied(CameraError):
    pass


class CameraAcquisitionFailed(CameraError):
    pass


class CaptureNotReady(LeafScanError):
    """Capture attempted before the source reported a usable frame."""


class CaptureFailure(LeafScanError):
    pass


class InvalidEncoding(LeafScanError):
    pass


class NetworkError(LeafScanError):
    """Classification request failed in transport or at the service."""


class SessionBusy(LeafScanError):
    """A classification request is still outstanding."""


class InvalidTransition(LeafScanError):
    def __init__(self, current: object, target: object) -> None:
        super().__init__(f"Cannot move session from {current} to {target}")
        self.current = current
        self.target = target


__all__ = [
    "LeafScanError",
    "CameraError",
    "CameraUnsupported",
    "PermissionDenied",
    "CameraAcquisitionFailed",
    "CaptureNotReady",
    "CaptureFailure",
    "InvalidEncoding",
    "NetworkError",
    "SessionBusy",
    "InvalidTransition",
]
