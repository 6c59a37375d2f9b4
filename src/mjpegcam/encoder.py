"""JPEG encoding of captured frames."""

from __future__ import annotations

import cv2
import numpy as np

from .errors import EncodeError


class JpegEncoder:
    """Encodes BGR uint8 frames as standalone JPEG images.

    Holds only the quality setting, so one instance is shared by every
    handler thread.
    """

    def __init__(self, quality: int = 95) -> None:
        if not 1 <= quality <= 100:
            raise ValueError(f"JPEG quality must be in 1..100, got {quality}")
        self._quality = quality

    @property
    def quality(self) -> int:
        return self._quality

    def encode(self, frame: np.ndarray) -> bytes:
        """Encode *frame* and return the JPEG bytes.

        Raises EncodeError for missing, empty or unencodable frames.
        """
        if not isinstance(frame, np.ndarray):
            raise EncodeError(f"Expected a numpy array, got {type(frame).__name__}")
        if frame.size == 0:
            raise EncodeError("Cannot encode an empty frame")
        try:
            ok, jpeg_buf = cv2.imencode(
                ".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self._quality]
            )
        except cv2.error as exc:
            raise EncodeError(f"JPEG encoding failed: {exc}") from exc
        if not ok:
            raise EncodeError(f"JPEG encoding failed for frame {frame.shape}")
        return jpeg_buf.tobytes()
