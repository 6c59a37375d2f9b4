"""MJPEG over ``multipart/x-mixed-replace``.

Each part on the wire is::

    \\r\\n--<boundary>\\r\\n
    Content-Type: image/jpeg\\r\\n
    \\r\\n
    <jpeg bytes>

No Content-Length is sent; the next delimiter ends the previous part.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import BinaryIO, Callable

from .capture import FrameSource
from .encoder import JpegEncoder
from .errors import DeviceError, EncodeError

logger = logging.getLogger(__name__)

BOUNDARY = "image-boundary"

_PART_HEADER = b"Content-Type: image/jpeg\r\n\r\n"


def content_type(boundary: str = BOUNDARY) -> str:
    return f"multipart/x-mixed-replace; boundary={boundary}"


def format_part(jpeg: bytes, boundary: str = BOUNDARY) -> bytes:
    """Return one complete multipart part carrying *jpeg*."""
    return b"\r\n--" + boundary.encode("ascii") + b"\r\n" + _PART_HEADER + jpeg


class StreamResult(Enum):
    """Why a stream session ended."""
    SHUTDOWN = "shutdown"
    DISCONNECTED = "disconnected"
    DEVICE_ERROR = "device_error"
    ENCODE_ERROR = "encode_error"


class MultipartWriter:
    """Writes JPEG frames as multipart parts to a response stream.

    Socket failures are reported as ``ConnectionError`` regardless of the
    concrete ``OSError`` subclass the platform raises.

    With ``close_stream=False`` closing only flushes; use it when the
    stream belongs to an ``http.server`` handler, which closes it itself.
    """

    def __init__(
        self, stream: BinaryIO, boundary: str = BOUNDARY, close_stream: bool = True,
    ) -> None:
        self._stream = stream
        self._boundary = boundary
        self._close_stream = close_stream
        self._closed = False
        self.frames_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def content_type(self) -> str:
        return content_type(self._boundary)

    def write_frame(self, jpeg: bytes) -> None:
        if self._closed:
            raise ConnectionError("Stream already closed")
        part = format_part(jpeg, self._boundary)
        try:
            self._stream.write(part)
            self._stream.flush()
        except ConnectionError:
            raise
        except (OSError, ValueError) as exc:
            # ValueError: write to a file object the server already closed
            raise ConnectionError(str(exc)) from exc
        self.frames_written += 1

    def close(self) -> None:
        """Flush and close the response stream.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.flush()
        except (OSError, ValueError):
            pass
        if not self._close_stream:
            return
        try:
            self._stream.close()
        except OSError:
            pass


def stream_frames(
    source: FrameSource,
    encoder: JpegEncoder,
    writer: MultipartWriter,
    should_continue: Callable[[], bool],
) -> StreamResult:
    """Capture, encode and write frames until a terminal condition.

    Frames go out in capture order.  Ends when *should_continue* returns
    False, the client disconnects, or capture/encode fails.  The writer is
    closed exactly once and nothing is raised to the caller.
    """
    result = StreamResult.SHUTDOWN
    try:
        while should_continue():
            frame = source.capture()
            jpeg = encoder.encode(frame)
            del frame
            writer.write_frame(jpeg)
    except ConnectionError as exc:
        logger.debug(
            "Stream client disconnected after %d frames: %s",
            writer.frames_written, exc,
        )
        result = StreamResult.DISCONNECTED
    except DeviceError as exc:
        if should_continue():
            logger.warning("Stream ended, capture failed: %s", exc)
            result = StreamResult.DEVICE_ERROR
        else:
            # device was released during shutdown
            logger.debug("Stream ended during shutdown: %s", exc)
    except EncodeError as exc:
        logger.warning("Stream ended, encode failed: %s", exc)
        result = StreamResult.ENCODE_ERROR
    finally:
        writer.close()
    return result
