"""Shared camera access for request handlers."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Protocol

import cv2
import numpy as np

from .errors import DeviceError

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """Anything handlers can pull frames from."""

    def capture(self) -> np.ndarray: ...

    def release(self) -> None: ...


class CameraCapture:
    """Wraps one ``cv2.VideoCapture`` shared by every request handler.

    OpenCV does not document ``VideoCapture.read`` as thread-safe, so all
    calls into the device go through ``self._lock``.  Concurrent handlers
    therefore take turns on the hardware; each gets its own frame.

    Usage::

        with CameraCapture(0) as camera:
            frame = camera.capture()   # (H, W, 3) BGR uint8
    """

    def __init__(self, index: int = 0, backend: int | None = None) -> None:
        self._index = index
        self._backend = backend
        self._cap: cv2.VideoCapture | None = None
        self._lock = threading.Lock()
        self._released = False

    @property
    def index(self) -> int:
        return self._index

    @property
    def is_open(self) -> bool:
        return self._cap is not None and not self._released

    @property
    def frame_size(self) -> tuple[int, int]:
        """(width, height) as reported by the driver, (0, 0) when closed."""
        with self._lock:
            if self._cap is None or self._released:
                return (0, 0)
            w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return (w, h)

    def open(self) -> None:
        """Open the device.  Raises DeviceError if it cannot be opened."""
        with self._lock:
            if self._released:
                raise DeviceError(
                    f"Camera device {self._index} was already released",
                    self._index,
                )
            if self._cap is not None:
                return
            try:
                cap = self._open_capture()
            except cv2.error as exc:
                raise DeviceError(
                    f"Cannot open camera device {self._index}: {exc}", self._index
                ) from exc
            if not cap.isOpened():
                cap.release()
                raise DeviceError(
                    f"Cannot open camera device {self._index}", self._index
                )
            self._cap = cap
        logger.info("Opened camera device %d", self._index)

    def _open_capture(self) -> cv2.VideoCapture:
        if self._backend is not None:
            return cv2.VideoCapture(self._index, self._backend)
        # DirectShow first on Windows, it exposes virtual cameras as well
        if sys.platform == "win32":
            cap = cv2.VideoCapture(self._index, cv2.CAP_DSHOW)
            if cap.isOpened():
                return cap
            cap.release()
        return cv2.VideoCapture(self._index)

    def capture(self) -> np.ndarray:
        """Read one frame, blocking until the driver delivers it.

        Raises DeviceError when the device is closed, released, or the
        read fails.  Thread-safe.
        """
        with self._lock:
            if self._released:
                raise DeviceError("Camera device has been released", self._index)
            if self._cap is None:
                raise DeviceError("Camera device is not open", self._index)
            try:
                ok, frame = self._cap.read()
            except cv2.error as exc:
                raise DeviceError(
                    f"Camera device {self._index} read failed: {exc}", self._index
                ) from exc
        if not ok or frame is None or frame.size == 0:
            raise DeviceError(
                f"Failed to read a frame from camera device {self._index}",
                self._index,
            )
        return frame

    def release(self) -> None:
        """Release the device.  Safe to call more than once.

        Waits for an in-flight ``capture`` to finish; every later
        ``capture`` raises DeviceError.
        """
        with self._lock:
            if self._released:
                return
            self._released = True
            cap, self._cap = self._cap, None
            if cap is not None:
                cap.release()
        logger.info("Released camera device %d", self._index)

    def __enter__(self) -> CameraCapture:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
