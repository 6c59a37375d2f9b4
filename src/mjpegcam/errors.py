"""Error types raised by the capture and encode stages.

Client disconnects are not modelled here: a failed socket write surfaces as
the builtin ``ConnectionError`` family (``BrokenPipeError``,
``ConnectionResetError``) and is the normal way a stream session ends.
"""

from __future__ import annotations


class CameraStreamError(Exception):
    """Base class for mjpegcam errors."""


class DeviceError(CameraStreamError):
    """The capture device is missing, released, busy or returned no frame."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class EncodeError(CameraStreamError):
    """A frame could not be encoded as JPEG."""
