"""Startup and graceful shutdown of the camera server."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Callable

from .capture import CameraCapture, FrameSource
from .config import ServerConfig
from .encoder import JpegEncoder
from .server import CameraServer

logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _open_camera(index: int) -> CameraCapture:
    camera = CameraCapture(index)
    camera.open()
    width, height = camera.frame_size
    logger.info("Camera %d frame size %dx%d", index, width, height)
    return camera


class Lifecycle:
    """Owns the device and the server for one process run.

    ``run()`` opens the device, binds the port, serves until the shutdown
    flag is set (SIGINT/SIGTERM or :meth:`request_shutdown`), then stops
    accepting, closes the listening socket and releases the device once.

    *source_factory* receives the camera index and returns an opened
    frame source; tests pass synthetic sources here.
    """

    def __init__(
        self,
        config: ServerConfig,
        source_factory: Callable[[int], FrameSource] = _open_camera,
        encoder: JpegEncoder | None = None,
    ) -> None:
        self._config = config
        self._source_factory = source_factory
        self._encoder = encoder or JpegEncoder(config.jpeg_quality)
        self._shutdown = threading.Event()
        self._started = threading.Event()
        self._server: CameraServer | None = None
        self._source: FrameSource | None = None
        self._release_lock = threading.Lock()
        self._released = False
        self._previous_handlers: dict[int, object] = {}

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown

    @property
    def running(self) -> bool:
        return self._started.is_set() and not self._shutdown.is_set()

    @property
    def server_address(self) -> tuple[str, int] | None:
        if self._server is None:
            return None
        return self._server.server_address

    def wait_started(self, timeout: float | None = None) -> bool:
        """Block until the accept loop is running.  Returns False on timeout."""
        return self._started.wait(timeout)

    def request_shutdown(self) -> None:
        """Ask the server to stop.  Safe from any thread and from signal handlers."""
        self._shutdown.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to :meth:`request_shutdown`.

        Must be called from the main thread.  Undo with
        :meth:`restore_signal_handlers`.
        """
        for signum in _SHUTDOWN_SIGNALS:
            self._previous_handlers[signum] = signal.signal(
                signum, self._on_signal
            )

    def _on_signal(self, signum, frame) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self.request_shutdown()

    def restore_signal_handlers(self) -> None:
        """Put back the handlers replaced by :meth:`install_signal_handlers`."""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _release_device(self) -> None:
        with self._release_lock:
            if self._released or self._source is None:
                return
            self._released = True
        self._source.release()

    def run(self) -> None:
        """Serve until shutdown.  Blocks the calling thread.

        Raises DeviceError if the camera cannot be opened and OSError if
        the port cannot be bound; the accept loop is never entered then.
        """
        installed = False
        if (
            threading.current_thread() is threading.main_thread()
            and not self._previous_handlers
        ):
            self.install_signal_handlers()
            installed = True
        try:
            self._source = self._source_factory(self._config.index)
            try:
                self._server = CameraServer(
                    self._config, self._source, self._encoder, self._shutdown
                )
            except OSError:
                self._release_device()
                raise

            self._server.start()
            self._started.set()
            host, port = self._server.server_address
            logger.info(
                "mjpegcam - MJPEG streamer started. Listening on port %d, "
                "camera index %d",
                port,
                self._config.index,
            )
            logger.debug("Bound to %s:%d", host, port)

            try:
                while not self._shutdown.wait(self._config.poll_interval):
                    pass
            finally:
                self._shutdown.set()
                self._server.stop()
                self._release_device()
            logger.info("Bye")
        finally:
            if installed:
                self.restore_signal_handlers()
