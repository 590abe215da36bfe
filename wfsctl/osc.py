#!/usr/bin/env python3
"""
wfsctl OSC Infrastructure - Shared OSC networking and validation utilities.

Provides the socket classes, constants, validation helpers and statistics
tracking used by the transport, dispatcher, throttle engine and CLI.

Classes:
    - ParameterServer: Blocking OSC server that hands raw datagrams to a router
    - ParameterClient: UDP client that sends pre-encoded datagrams
    - MessageStatistics: Thread-safe message counter with formatted output

Functions:
    - validate_port(port): Validate port in range 1-65535
    - validate_ipv4(host): Validate dotted-quad IPv4 literal

Constants:
    - PORT_INCOMING: Default port the WFS server sends to (8000)
    - PORT_OUTGOING: Default port the WFS server listens on (8001)
    - DEFAULT_REMOTE_HOST: Default WFS server address
    - TICK_INTERVAL_S: Outgoing flush period (20ms, 50Hz)
    - INPUT_ID_MIN/MAX, CLUSTER_ID_MIN/MAX, ARRAY_ID_MIN/MAX: Target id ranges
"""

import ipaddress
import threading
from typing import Dict
from pythonosc import osc_server
from pythonosc import udp_client


# ============================================================================
# CONSTANTS
# ============================================================================

# Default port allocation (matches the WFS server's factory settings)
PORT_INCOMING = 8000   # Server -> controller (parameter echoes, stage, markers)
PORT_OUTGOING = 8001   # Controller -> server (parameter changes)
DEFAULT_REMOTE_HOST = "127.0.0.1"

# Outgoing flush cadence: one datagram per parameter per tick at most
TICK_INTERVAL_S = 0.020

# Receive loop poll interval; bounds how long stop() waits for the loop
SERVER_POLL_INTERVAL_S = 0.05

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535

# Target identifier ranges (0 means "global parameter, no target")
INPUT_ID_MIN = 1
INPUT_ID_MAX = 64
CLUSTER_ID_MIN = 1
CLUSTER_ID_MAX = 10
ARRAY_ID_MIN = 1
ARRAY_ID_MAX = 5
NO_TARGET = 0


# ============================================================================
# SOCKET CLASSES
# ============================================================================

class ParameterServer(osc_server.BlockingOSCUDPServer):
    """BlockingOSCUDPServer that passes every datagram through to its router.

    pythonosc's server normally drops datagrams that do not look like OSC
    before the dispatcher sees them. Here every datagram is accepted so the
    router can decode it with the strict codec and count/log failures.

    The router only needs pythonosc's dispatcher entry point:
    ``call_handlers_for_packet(data, client_address)`` returning a list.

    SO_REUSEPORT is not set, so binding a port that another process holds
    raises OSError.
    """

    def verify_request(self, request, client_address):
        """Accept all datagrams; decoding and validation happen in the router."""
        return True


class ParameterClient(udp_client.UDPClient):
    """UDP client for sending pre-encoded OSC datagrams to the WFS server.

    Extends pythonosc's UDPClient with close() and context manager support.

    Args:
        address: Target IPv4 address
        port: Target UDP port
    """

    def send_datagram(self, dgram: bytes) -> None:
        """Send one encoded OSC message datagram as-is, without re-parsing it."""
        self._sock.sendto(dgram, (self._address, self._port))

    def close(self):
        """Close the UDP socket."""
        if hasattr(self, '_sock') and self._sock:
            self._sock.close()

    def __enter__(self):
        """Context manager support."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Ensure socket cleanup on context exit."""
        self.close()
        return False


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Args:
        port: Port number to validate

    Raises:
        ValueError: If port is not an integer in range 1-65535

    Examples:
        >>> validate_port(8000)  # OK
        >>> validate_port(0)  # Raises ValueError
        >>> validate_port(70000)  # Raises ValueError
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"Port must be an integer, got {port!r}")
    if port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


def validate_ipv4(host: str) -> None:
    """Validate a dotted-quad IPv4 literal.

    Raises:
        ValueError: If host is not an IPv4 address literal

    Examples:
        >>> validate_ipv4("192.168.1.20")  # OK
        >>> validate_ipv4("wfs.local")  # Raises ValueError
    """
    try:
        ipaddress.IPv4Address(host)
    except (ipaddress.AddressValueError, TypeError):
        raise ValueError(f"Remote host must be an IPv4 address, got {host!r}")


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Thread-safe message statistics tracker with formatted output.

    Typical counters:
        - received_datagrams / decode_errors (transport)
        - sent_messages / send_errors (transport)
        - routed_messages / ignored_messages / rejected_messages (dispatcher)
        - updates / coalesced_updates / flushed_messages (throttle)

    Examples:
        >>> stats = MessageStatistics()
        >>> stats.increment('received_datagrams')
        >>> stats.print_stats("TRANSPORT")
    """

    def __init__(self):
        self.counters = {}
        self.lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Increment a counter by specified amount (thread-safe).

        Creates the counter if it doesn't exist.
        """
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def get(self, counter_name: str) -> int:
        """Get current value of a counter, or 0 if it doesn't exist."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def snapshot(self) -> Dict[str, int]:
        """Copy of all counters (thread-safe)."""
        with self.lock:
            return dict(self.counters)

    def print_stats(self, title: str = "STATISTICS") -> None:
        """Print formatted statistics to console.

        Output format:
            ============================================================
            TITLE
            ============================================================
            Counter Name: value
            ...
            ============================================================
        """
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)

        # Snapshot under lock, print without holding it
        snapshot = self.snapshot()

        for name in sorted(snapshot.keys()):
            display_name = name.replace('_', ' ').title()
            print(f"{display_name}: {snapshot[name]}")

        print("=" * 60)
