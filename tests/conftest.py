"""Shared pytest configuration and fixtures for the mjpegcam test suite."""

import socket
import threading
import time

import numpy as np
import pytest

from mjpegcam.config import ServerConfig
from mjpegcam.errors import DeviceError
from mjpegcam.lifecycle import Lifecycle


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical camera",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Test doubles
# =============================================================================

class SyntheticSource:
    """Thread-safe stand-in for a camera.

    Each frame is filled with ``counter * step`` in channel 0 so tests
    can tell frames apart.  ``release()`` calls are counted, and captures
    after release raise DeviceError like the real device.
    """

    def __init__(self, width=64, height=48, delay=0.005):
        self.width = width
        self.height = height
        self.delay = delay
        self.fail = False
        self.step = 1
        self.captures = 0
        self.release_count = 0
        self.last_shape = None
        self._lock = threading.Lock()
        self._released = False

    def capture(self):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            if self._released:
                raise DeviceError("Camera device has been released", 0)
            if self.fail:
                raise DeviceError("Synthetic capture failure", 0)
            self.captures += 1
            counter = self.captures
        frame = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        frame[:, :, 0] = (counter * self.step) % 256
        frame[:, :, 1] = np.linspace(0, 255, self.width, dtype=np.uint8)
        with self._lock:
            self.last_shape = frame.shape
        return frame

    def release(self):
        with self._lock:
            self.release_count += 1
            self._released = True


class StreamClient:
    """Raw-socket reader for a ``/stream`` response."""

    def __init__(self, port, timeout=5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self.sock.sendall(b"GET /stream HTTP/1.0\r\nHost: localhost\r\n\r\n")
        self.buffer = b""
        self.headers = self._read_headers()

    def _recv(self):
        chunk = self.sock.recv(65536)
        if not chunk:
            raise EOFError("stream closed")
        self.buffer += chunk

    def _read_headers(self):
        while b"\r\n\r\n" not in self.buffer:
            self._recv()
        head, self.buffer = self.buffer.split(b"\r\n\r\n", 1)
        lines = head.decode("latin-1").split("\r\n")
        headers = {"status": lines[0]}
        for line in lines[1:]:
            name, _, value = line.partition(":")
            headers[name.strip().lower()] = value.strip()
        return headers

    def read_body(self, delimiter_count):
        """Read until the body holds *delimiter_count* boundary delimiters."""
        delimiter = b"\r\n--image-boundary\r\n"
        while self.buffer.count(delimiter) < delimiter_count:
            self._recv()
        return self.buffer

    def read_until_eof(self, timeout=5.0):
        """Drain the socket; True if the server closed it within *timeout*."""
        self.sock.settimeout(timeout)
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                if not self.sock.recv(65536):
                    return True
            except ConnectionResetError:
                return True
            except socket.timeout:
                return False
        return False

    def close(self):
        self.sock.close()


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def source():
    return SyntheticSource()


@pytest.fixture
def server_config():
    return ServerConfig(host="127.0.0.1", port=0, poll_interval=0.05)


@pytest.fixture
def running_server(source, server_config):
    """Lifecycle serving *source* on an ephemeral port in a background thread.

    Yields ``(lifecycle, port)``.
    """
    lifecycle = Lifecycle(server_config, source_factory=lambda index: source)
    thread = threading.Thread(target=lifecycle.run, name="lifecycle", daemon=True)
    thread.start()
    assert lifecycle.wait_started(timeout=5.0)
    _, port = lifecycle.server_address
    lifecycle.thread = thread
    yield lifecycle, port
    lifecycle.request_shutdown()
    thread.join(timeout=5.0)


@pytest.fixture
def stream_client():
    """Factory for StreamClient instances, all closed at teardown."""
    clients = []

    def _open(port):
        client = StreamClient(port)
        clients.append(client)
        return client

    yield _open
    for client in clients:
        client.close()
