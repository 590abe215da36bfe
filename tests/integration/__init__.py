"""Integration testing infrastructure for wfsctl."""

from .utils import (
    OSCMessageCapture,
    WfsServerEmulator,
    find_free_udp_port,
    wait_for,
)

__all__ = [
    'OSCMessageCapture',
    'WfsServerEmulator',
    'find_free_udp_port',
    'wait_for',
]
