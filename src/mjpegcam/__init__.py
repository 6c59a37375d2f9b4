"""Serve one camera over HTTP as JPEG snapshots and an MJPEG stream."""

from .capture import CameraCapture, FrameSource
from .config import ServerConfig
from .encoder import JpegEncoder
from .errors import CameraStreamError, DeviceError, EncodeError
from .lifecycle import Lifecycle
from .multipart import BOUNDARY, MultipartWriter, StreamResult, stream_frames
from .server import CameraServer, Route, route

__version__ = "0.1.0"

__all__ = [
    "BOUNDARY",
    "CameraCapture",
    "CameraServer",
    "CameraStreamError",
    "DeviceError",
    "EncodeError",
    "FrameSource",
    "JpegEncoder",
    "Lifecycle",
    "MultipartWriter",
    "Route",
    "ServerConfig",
    "StreamResult",
    "route",
    "stream_frames",
]
