"""Server configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PORT = 8080
DEFAULT_INDEX = 0
DEFAULT_BOUNDARY = "image-boundary"


class ServerConfig(BaseModel):
    """Settings for one camera server process.

    Built from command-line options by :mod:`mjpegcam.cli`; tests construct
    it directly (``port=0`` binds an ephemeral port).
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(
        default="0.0.0.0",
        description="Interface to bind. The default listens on all interfaces.",
    )
    port: int = Field(
        default=DEFAULT_PORT,
        ge=0,
        le=65535,
        description="HTTP port to listen on.",
    )
    index: int = Field(
        default=DEFAULT_INDEX,
        ge=0,
        description="Camera device index passed to cv2.VideoCapture.",
    )
    jpeg_quality: int = Field(
        default=95,
        ge=1,
        le=100,
        description="JPEG quality used for snapshots and stream parts.",
    )
    boundary: str = Field(
        default=DEFAULT_BOUNDARY,
        min_length=1,
        max_length=70,
        pattern=r"^[0-9A-Za-z'()+_,\-./:=?]+$",
        description="Multipart boundary token for /stream.",
    )
    poll_interval: float = Field(
        default=0.5,
        gt=0.0,
        description=(
            "Seconds the accept loop waits for a connection before "
            "re-checking the shutdown flag."
        ),
    )
