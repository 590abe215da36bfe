"""Pytest fixtures for integration tests.

Provides reusable fixtures for integration testing:
- wfs_server: WfsServerEmulator on an ephemeral localhost port
- service: Running OscService wired to wfs_server

All fixtures handle cleanup automatically via pytest's fixture system.
"""

import pytest

from tests.integration.utils import WfsServerEmulator, find_free_udp_port
from wfsctl.config import NetworkConfig
from wfsctl.service import OscService


@pytest.fixture
def controller_config():
    """NetworkConfig with ephemeral ports on localhost."""
    return NetworkConfig(
        incoming_port=find_free_udp_port(),
        outgoing_port=find_free_udp_port(),
        remote_host="127.0.0.1",
    )


@pytest.fixture
def wfs_server(controller_config):
    """Fixture providing the WFS server emulator.

    Listens on the controller's outgoing port and sends to its incoming port.

    Yields:
        WfsServerEmulator: capture with wait_for_message(), get_messages_by_address()
                           and send()/send_raw()

    Example:
        def test_echo(service, wfs_server):
            wfs_server.send("/inputs", [32])
    """
    server = WfsServerEmulator(
        port=controller_config.outgoing_port,
        controller_port=controller_config.incoming_port,
    )
    server.start()
    yield server
    server.stop()


@pytest.fixture
def service(controller_config, wfs_server):
    """Fixture providing a started OscService talking to wfs_server.

    Yields:
        OscService: running service, stopped on teardown
    """
    svc = OscService(controller_config)
    svc.start()
    yield svc
    svc.stop()
