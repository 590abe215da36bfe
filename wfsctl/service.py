#!/usr/bin/env python3
"""
OscService - the WFS control layer as one owned object.

A UI (or any other collaborator) talks to the WFS server exclusively through
this service:

    service = OscService(load_network_config())
    service.subscribe("remoteInput", on_input_change)
    service.start()
    service.send_parameter("/remoteInput/attenuation", 3, -6.0)
    service.apply_settings(service.config.with_changes(incoming_port=9000))
    service.stop()

ARCHITECTURE:
- ParameterDispatcher populated once with the WFS address table
- Transport: receive loop -> codec.decode -> dispatcher -> ParameterEvents
- ThrottleEngine: update() -> pending table -> tick (50Hz) -> Transport.send
- The tick thread runs exactly while the transport runs

LIFECYCLE:
- start(), stop() and apply_settings() are serialized and idempotent
- A BindError from start()/apply_settings() leaves the service stopped with
  the attempted config, so the caller can retry with a different port
"""

import threading
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from wfsctl import osc, protocol
from wfsctl.codec import OscMessage
from wfsctl.config import NetworkConfig, save_network_config
from wfsctl.dispatcher import ParameterDispatcher
from wfsctl.events import ParameterEvents, RemoteParameterChange
from wfsctl.log import get_logger
from wfsctl.throttle import ParameterKey, ThrottleEngine
from wfsctl.transport import Transport

logger = get_logger(__name__)


class OscService:
    """Owns the dispatcher, transport, throttle engine and event bus.

    Args:
        config: Initial network settings (default: factory defaults)
        settings_path: If set, apply_settings() persists accepted settings here
        interval: Throttle tick period in seconds
        clock: Time source for the throttle engine

    Attributes:
        config (NetworkConfig): Current settings
        events (ParameterEvents): Remote change subscriptions
        dispatcher (ParameterDispatcher): Incoming address table
        transport (Transport): UDP endpoints
        throttle (ThrottleEngine): Outgoing coalescing engine
        stats (osc.MessageStatistics): Counters shared by all components
    """

    def __init__(self, config: Optional[NetworkConfig] = None,
                 settings_path: Optional[Union[str, Path]] = None,
                 interval: float = osc.TICK_INTERVAL_S,
                 clock: Optional[Callable[[], float]] = None):
        self.config = (config or NetworkConfig()).validate()
        self.settings_path = Path(settings_path) if settings_path is not None else None

        self.stats = osc.MessageStatistics()
        self.events = ParameterEvents()
        self.dispatcher = ParameterDispatcher(self.stats)
        protocol.register_protocol(self.dispatcher, self.events, self._find_device_password)

        self.transport = Transport(self.dispatcher, self.stats)
        throttle_kwargs = {'clock': clock} if clock is not None else {}
        self.throttle = ThrottleEngine(self.transport.send, interval=interval,
                                       stats=self.stats, **throttle_kwargs)

        self._lifecycle_lock = threading.RLock()

    def _find_device_password(self) -> Optional[str]:
        return self.config.find_device_password

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def is_running(self) -> bool:
        return self.transport.is_running

    def start(self) -> None:
        """Start the transport, then the throttle tick.

        Raises:
            BindError: Incoming port unavailable (service stays stopped)
        """
        with self._lifecycle_lock:
            if self.transport.is_running:
                return
            self.transport.start(self.config)
            self.throttle.start()

    def stop(self) -> None:
        """Stop the throttle tick, then the transport."""
        with self._lifecycle_lock:
            self.throttle.stop()
            self.transport.stop()

    def apply_settings(self, config: NetworkConfig) -> None:
        """Validate, persist and apply new network settings, restarting the transport.

        Raises:
            ValueError: Invalid settings (nothing is changed)
            BindError: New incoming port unavailable (service left stopped)
        """
        config.validate()

        with self._lifecycle_lock:
            if self.settings_path is not None:
                save_network_config(config, self.settings_path)

            logger.info(
                f"Applying network settings: in={config.incoming_port} "
                f"out={config.remote_host}:{config.outgoing_port}"
            )
            self.stop()
            self.config = config
            self.start()

    # ========================================================================
    # UI COLLABORATOR API
    # ========================================================================

    def subscribe(self, family: str, callback: Callable[[RemoteParameterChange], None]) -> Callable[[], None]:
        """Receive remote changes for an address family ("remoteInput", ... or "*").

        Returns:
            Unsubscribe function
        """
        return self.events.subscribe(family, callback)

    def update(self, key: ParameterKey, values: Sequence) -> None:
        """Queue a raw parameter value for the next tick (no address validation)."""
        self.throttle.update(key, values)

    def send_parameter(self, address: str, target_id: int, *values) -> ParameterKey:
        """Validate and queue a parameter change.

        Args:
            address: Registered address (e.g. "/remoteInput/attenuation")
            target_id: Input/cluster/array id, 0 for global parameters
            *values: Native values following the target id

        Returns:
            The key the value was queued under

        Raises:
            ValidationError: Unknown address, bad target, arity, type or range
        """
        args = protocol.validate_outgoing(address, target_id, values)
        key = ParameterKey(address, target_id)
        self.throttle.update(key, args)
        return key

    def send_input_parameter(self, name: str, input_id: int, value) -> ParameterKey:
        """Queue /remoteInput/<name> <inputId> <value>."""
        return self.send_parameter(f"/remoteInput/{name}", input_id, value)

    def send_inc_dec(self, name: str, input_id: int, delta: float) -> ParameterKey:
        """Queue a relative position/offset step ("inc" for delta > 0, else "dec")."""
        direction = "inc" if delta > 0 else "dec"
        return self.send_parameter(f"/remoteInput/{name}", input_id, direction, abs(float(delta)))

    def send_input_position(self, input_id: int, x: float, y: float) -> ParameterKey:
        """Queue combined XY so the server moves both axes together."""
        return self.send_parameter(protocol.INPUT_POSITION_XY, input_id, float(x), float(y))

    def send_marker_position(self, marker_id: int, x: float, y: float, is_cluster: bool = False) -> ParameterKey:
        """Queue a dragged input or cluster marker position."""
        address = protocol.CLUSTER_POSITION_XY if is_cluster else protocol.MARKER_POSITION_XY
        return self.send_parameter(address, marker_id, float(x), float(y))

    def send_array_adjust(self, parameter: str, array_id: int, delta: float) -> ParameterKey:
        """Queue /arrayAdjust/<parameter> <arrayId> <delta> (delta in +-1.0, +-0.1)."""
        return self.send_parameter(f"/arrayAdjust/{parameter}", array_id, float(delta))

    def send_cluster_move(self, cluster_id: int, delta_x: float, delta_y: float) -> ParameterKey:
        return self.send_parameter(protocol.CLUSTER_MOVE, cluster_id, float(delta_x), float(delta_y))

    def send_barycenter_move(self, cluster_id: int, delta_x: float, delta_y: float) -> ParameterKey:
        return self.send_parameter(protocol.CLUSTER_BARYCENTER_MOVE, cluster_id, float(delta_x), float(delta_y))

    def send_cluster_scale(self, cluster_id: int, factor: float) -> ParameterKey:
        return self.send_parameter(protocol.CLUSTER_SCALE, cluster_id, float(factor))

    def send_cluster_rotation(self, cluster_id: int, degrees: float) -> ParameterKey:
        return self.send_parameter(protocol.CLUSTER_ROTATION, cluster_id, float(degrees))

    def send_now(self, message: OscMessage) -> None:
        """Send immediately, bypassing the throttle (one-off commands).

        Raises:
            EncodeError, SendError
        """
        self.transport.send(message)

    def print_stats(self) -> None:
        self.stats.print_stats("WFSCTL STATISTICS")
