"""Integration test utilities for wfsctl.

Provides utilities for running integration tests:
- find_free_udp_port: Ephemeral localhost port for a test endpoint
- wait_for: Poll a condition instead of sleeping a fixed time
- OSCMessageCapture: Thread-safe OSC message capture for validation
- WfsServerEmulator: Capture plus a sender, standing in for the WFS server

The capture and emulator are built on python-osc's own server and client, so
everything wfsctl puts on the wire is parsed by an independent implementation.
"""

import socket
import time
import threading
from collections import deque
from typing import Callable, Optional

from pythonosc import dispatcher
from pythonosc import osc_server
from pythonosc import udp_client


def find_free_udp_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused UDP port.

    The port is released before returning, so there is a small window in
    which another process could take it.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def wait_for(condition: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll condition() until it returns True or timeout expires.

    Returns:
        Final value of condition()
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


class OSCMessageCapture:
    """Captures OSC messages for validation in integration tests.

    Thread-safe design with lock-protected message buffer and helper methods
    for waiting on messages or querying captured data.

    Example:
        capture = OSCMessageCapture(port=find_free_udp_port())
        capture.start()

        ts, addr, args = capture.wait_for_message("/remoteInput/attenuation", timeout=2.0)
        assert args == (3, -6.0)

        capture.stop()
    """

    def __init__(self, port: int, host: str = "127.0.0.1"):
        """Initialize message capture.

        Args:
            port: UDP port to listen on
            host: Interface to bind
        """
        self.host = host
        self.port = port
        self.messages = deque(maxlen=1000)  # Prevent unbounded growth
        self.lock = threading.Lock()
        self.server = None
        self.server_thread = None

    def start(self):
        """Start capture server in background thread."""
        disp = dispatcher.Dispatcher()
        disp.set_default_handler(self._capture_handler)

        self.server = osc_server.ThreadingOSCUDPServer((self.host, self.port), disp)

        self.server_thread = threading.Thread(target=self.server.serve_forever)
        self.server_thread.daemon = True
        self.server_thread.start()

    def _capture_handler(self, address, *args):
        """Store (timestamp, address, args) for each received message."""
        with self.lock:
            self.messages.append((time.time(), address, args))

    def wait_for_message(self, address_pattern: str, timeout: float = 2.0):
        """Wait for message matching address pattern within timeout.

        Args:
            address_pattern: Address prefix to match (e.g., "/remoteInput/")
            timeout: Maximum seconds to wait

        Returns:
            Tuple of (timestamp, address, args) for first matching message

        Raises:
            TimeoutError: If no matching message received within timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            with self.lock:
                for ts, addr, args in self.messages:
                    if addr.startswith(address_pattern):
                        return (ts, addr, args)
            time.sleep(0.01)
        raise TimeoutError(f"No message matching {address_pattern} within {timeout}s")

    def get_messages_by_address(self, address_pattern: str):
        """Get all captured messages matching address pattern.

        Returns:
            List of (timestamp, address, args) tuples
        """
        with self.lock:
            return [(ts, addr, args) for ts, addr, args in self.messages
                    if addr.startswith(address_pattern)]

    def clear(self):
        with self.lock:
            self.messages.clear()

    def stop(self):
        """Stop capture server and release the port."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
        if self.server_thread:
            self.server_thread.join(timeout=2.0)


class WfsServerEmulator(OSCMessageCapture):
    """Stands in for the WFS server on localhost.

    Receives what the controller sends (on its own port) and sends parameter
    echoes to the controller's incoming port.

    Example:
        server = WfsServerEmulator(port=find_free_udp_port(), controller_port=9000)
        server.start()
        server.send("/remoteInput/attenuation", [3, -6.0])
    """

    def __init__(self, port: int, controller_port: Optional[int] = None, host: str = "127.0.0.1"):
        super().__init__(port, host)
        self.controller_port = controller_port
        self.client = None

    def start(self):
        super().start()
        if self.controller_port is not None:
            self.client = udp_client.SimpleUDPClient(self.host, self.controller_port)

    def send(self, address: str, args) -> None:
        """Send a message to the controller (python-osc picks i/f/s from the values)."""
        if self.client is None:
            raise RuntimeError("Emulator has no controller port")
        self.client.send_message(address, args)

    def send_raw(self, dgram: bytes) -> None:
        """Send arbitrary bytes to the controller (malformed datagram tests)."""
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.sendto(dgram, (self.host, self.controller_port))
