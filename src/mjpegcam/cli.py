"""Command-line entry point.

Usage::

    mjpegcam --port 8080 --index 0
    python -m mjpegcam -p 9000 -i 1 --quality 80
"""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError

from .config import DEFAULT_INDEX, DEFAULT_PORT, ServerConfig
from .errors import DeviceError
from .lifecycle import Lifecycle

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mjpegcam",
        description="Serve a camera as JPEG snapshots and an MJPEG stream over HTTP",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"HTTP port to listen on (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-i",
        "--index",
        type=int,
        default=DEFAULT_INDEX,
        help=f"Camera device index (default: {DEFAULT_INDEX})",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Address to bind (default: all interfaces)",
    )
    parser.add_argument(
        "-q",
        "--quality",
        type=int,
        default=95,
        help="JPEG quality 1-100 (default: 95)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    return ServerConfig(
        host=args.host,
        port=args.port,
        index=args.index,
        jpeg_quality=args.quality,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        config = config_from_args(args)
    except ValidationError as exc:
        logger.error("Invalid configuration:\n%s", exc)
        return 1

    try:
        Lifecycle(config).run()
    except DeviceError as exc:
        logger.error("Camera error: %s", exc)
        return 1
    except OSError as exc:
        logger.error("Cannot listen on %s:%d: %s", config.host, config.port, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
