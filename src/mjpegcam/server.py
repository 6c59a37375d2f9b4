"""HTTP front end: routes requests to snapshot, stream and index handlers.

Runs a threaded ``http.server``: one accept loop on its own thread, one
daemon thread per accepted connection, so a long-lived ``/stream`` client
never holds up other clients.

Endpoints
---------
``/``          HTML page embedding the stream.
``/snapshot``  Single JPEG captured on request.
``/stream``    MJPEG multipart stream (``multipart/x-mixed-replace``).
anything else  404 with an empty body.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from urllib.parse import urlsplit

from .capture import FrameSource
from .config import ServerConfig
from .encoder import JpegEncoder
from .errors import DeviceError, EncodeError
from .multipart import MultipartWriter, stream_frames

logger = logging.getLogger(__name__)


class Route(Enum):
    INDEX = "index"
    SNAPSHOT = "snapshot"
    STREAM = "stream"
    NOT_FOUND = "not_found"


_ROUTES = {
    "/": Route.INDEX,
    "/snapshot": Route.SNAPSHOT,
    "/stream": Route.STREAM,
}


def route(path: str) -> Route:
    """Map a request target to a Route.  The query string is ignored."""
    return _ROUTES.get(urlsplit(path).path, Route.NOT_FOUND)


# ── HTML template ────────────────────────────────────────────────────────────

_INDEX_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>MJPEG Stream</title>
</head>
<body>
    <h1>MJPEG Stream</h1>
    <img src="/stream" alt="MJPEG Stream">
</body>
</html>
"""


class _ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def handle_error(self, request, client_address) -> None:
        logger.exception("Unhandled error serving %s", client_address)


class CameraServer:
    """HTTP server exposing one frame source.

    Usage::

        shutdown = threading.Event()
        server = CameraServer(config, camera, JpegEncoder(), shutdown)
        server.start()          # accept loop on a background thread
        ...
        server.stop()           # sets shutdown, joins the loop, closes the socket

    The listening socket is bound in the constructor, so a port clash
    raises ``OSError`` before any thread is started.
    """

    def __init__(
        self,
        config: ServerConfig,
        source: FrameSource,
        encoder: JpegEncoder,
        shutdown: threading.Event,
    ) -> None:
        self._config = config
        self._source = source
        self._encoder = encoder
        self._shutdown = shutdown
        self._thread: threading.Thread | None = None
        self._closed = False
        self._httpd = _ThreadedHTTPServer(
            (config.host, config.port), self._build_handler()
        )
        self._httpd.timeout = config.poll_interval

    @property
    def server_address(self) -> tuple[str, int]:
        host, port = self._httpd.server_address[:2]
        return host, port

    def _build_handler(self) -> type[BaseHTTPRequestHandler]:
        source = self._source
        encoder = self._encoder
        shutdown = self._shutdown
        boundary = self._config.boundary

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self_handler) -> None:  # noqa: N805
                target = route(self_handler.path)
                if target is Route.STREAM:
                    self_handler._handle_stream()
                elif target is Route.SNAPSHOT:
                    self_handler._handle_snapshot()
                elif target is Route.INDEX:
                    self_handler._handle_index()
                else:
                    self_handler._send_empty(404)

            def _handle_snapshot(self_handler) -> None:  # noqa: N805
                """Single JPEG captured for this request."""
                try:
                    frame = source.capture()
                    jpeg = encoder.encode(frame)
                except DeviceError as exc:
                    logger.warning("Snapshot failed, capture error: %s", exc)
                    self_handler._send_empty(503)
                    return
                except EncodeError as exc:
                    logger.warning("Snapshot failed, encode error: %s", exc)
                    self_handler._send_empty(500)
                    return
                try:
                    self_handler.send_response(200)
                    self_handler.send_header("Content-Type", "image/jpeg")
                    self_handler.send_header("Content-Length", str(len(jpeg)))
                    self_handler.send_header("Cache-Control", "no-cache")
                    self_handler.end_headers()
                    self_handler.wfile.write(jpeg)
                except ConnectionError:
                    logger.debug(
                        "Snapshot client %s went away", self_handler.client_address
                    )

            def _handle_stream(self_handler) -> None:  # noqa: N805
                """MJPEG multipart stream until disconnect or shutdown."""
                writer = MultipartWriter(
                    self_handler.wfile, boundary, close_stream=False
                )
                self_handler.close_connection = True
                try:
                    self_handler.send_response(200)
                    self_handler.send_header("Content-Type", writer.content_type)
                    self_handler.send_header("Cache-Control", "no-cache, no-store")
                    self_handler.send_header("Pragma", "no-cache")
                    self_handler.end_headers()
                except ConnectionError:
                    writer.close()
                    return
                logger.debug("Stream opened for %s", self_handler.client_address)
                result = stream_frames(
                    source, encoder, writer, lambda: not shutdown.is_set()
                )
                logger.debug(
                    "Stream for %s closed (%s) after %d frames",
                    self_handler.client_address,
                    result.value,
                    writer.frames_written,
                )

            def _handle_index(self_handler) -> None:  # noqa: N805
                body = _INDEX_HTML.encode("utf-8")
                try:
                    self_handler.send_response(200)
                    self_handler.send_header("Content-Type", "text/html")
                    self_handler.send_header("Content-Length", str(len(body)))
                    self_handler.end_headers()
                    self_handler.wfile.write(body)
                except ConnectionError:
                    pass

            def _send_empty(self_handler, status: int) -> None:  # noqa: N805
                try:
                    self_handler.send_response(status)
                    self_handler.send_header("Content-Length", "0")
                    self_handler.end_headers()
                except ConnectionError:
                    pass

            def log_message(self_handler, format, *args) -> None:  # noqa: N805
                # Access lines go to DEBUG, stream clients would flood INFO.
                logger.debug(
                    "%s - %s", self_handler.address_string(), format % args
                )

        return Handler

    def serve(self) -> None:
        """Accept connections until the shutdown flag is set.

        Blocks; each wait for a connection lasts at most
        ``config.poll_interval`` seconds before the flag is re-checked.
        """
        logger.debug("Accept loop started on %s:%d", *self.server_address)
        while not self._shutdown.is_set():
            self._httpd.handle_request()
        logger.debug("Accept loop stopped")

    def start(self) -> None:
        """Run :meth:`serve` on a background thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.serve, name="accept-loop", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop accepting, join the accept loop and close the listening socket.

        Running handlers are left to finish on their own; stream handlers
        see the shutdown flag before their next frame.
        """
        self._shutdown.set()
        if self._thread is not None:
            if timeout is None:
                timeout = max(self._config.poll_interval * 4, 1.0)
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Accept loop did not stop within %.1fs", timeout)
            self._thread = None
        self.close()

    def close(self) -> None:
        """Close the listening socket.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._httpd.server_close()
