"""
Throttle Engine - per-parameter coalescing of outgoing OSC updates.

Drag gestures and joystick polling produce far more updates than the WFS
server needs. The engine keeps only the most recent value per parameter key
and flushes all pending keys once per tick (20ms, 50Hz):

    update(k, v1); update(k, v2); update(k, v3); tick()  ->  one send of v3

GUARANTEES:
- At most one send per key per tick; a key updated for a duration D is sent
  at most ceil(D / T) + 1 times
- The last value written before a tick is the one sent (last write wins)
- Multi-argument values are stored as one immutable tuple, never torn
- Keys that were never updated are never sent

CONCURRENCY:
- update() may be called from any thread
- The pending table lock is held only for insert/overwrite and for the
  snapshot-and-clear at the start of a tick, never across socket I/O

DELIVERY:
- At most once. A failed send is logged and dropped; it is not retried on
  the next tick because the snapshot already removed it.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from wfsctl import osc
from wfsctl.codec import Int32, OscArgument, OscMessage, to_arguments
from wfsctl.errors import OscError
from wfsctl.log import get_logger

logger = get_logger(__name__)


class ParameterKey(NamedTuple):
    """One controllable parameter instance.

    Attributes:
        address: OSC address (e.g. "/remoteInput/attenuation")
        target_id: Input/cluster/array number, 0 for global parameters
    """
    address: str
    target_id: int = osc.NO_TARGET


@dataclass(frozen=True)
class PendingUpdate:
    key: ParameterKey
    values: Tuple[OscArgument, ...]
    last_write: float

    def to_message(self) -> OscMessage:
        """Rebuild the wire message: target id (if any) followed by the values."""
        if self.key.target_id != osc.NO_TARGET:
            return OscMessage(self.key.address, (Int32(self.key.target_id),) + self.values)
        return OscMessage(self.key.address, self.values)


def max_sends(duration_s: float, interval_s: float = osc.TICK_INTERVAL_S) -> int:
    """Upper bound on sends for one key updated over duration_s."""
    return math.ceil(duration_s / interval_s) + 1


class ThrottleEngine:
    """Coalesces outgoing parameter updates and flushes them on a fixed tick.

    Args:
        send: Called with each flushed OscMessage (normally Transport.send)
        interval: Tick period in seconds (default: 20ms)
        clock: Time source for update stamps (default: time.monotonic)
        stats: Optional shared statistics tracker

    Example:
        >>> engine = ThrottleEngine(send=transport.send)
        >>> engine.start()
        >>> engine.update(ParameterKey("/remoteInput/attenuation", 3), [Float32(-6.0)])
    """

    def __init__(self, send: Callable[[OscMessage], None],
                 interval: float = osc.TICK_INTERVAL_S,
                 clock: Callable[[], float] = time.monotonic,
                 stats: Optional[osc.MessageStatistics] = None):
        if interval <= 0:
            raise ValueError(f"Tick interval must be > 0, got {interval}")

        self._send = send
        self.interval = interval
        self._clock = clock
        self.stats = stats if stats is not None else osc.MessageStatistics()

        self._pending: Dict[ParameterKey, PendingUpdate] = {}
        self._lock = threading.Lock()

        # Tick thread lifecycle
        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._tick_thread: Optional[threading.Thread] = None

    # ========================================================================
    # PRODUCER SIDE
    # ========================================================================

    def update(self, key: ParameterKey, values: Sequence) -> None:
        """Create or overwrite the pending value for a key.

        Args:
            key: Parameter to update
            values: OscArguments (or native int/float/str) following the target id

        Raises:
            EncodeError: If a value cannot be represented as an OSC argument
        """
        entry = PendingUpdate(key, to_arguments(values), self._clock())

        with self._lock:
            replaced = key in self._pending
            self._pending[key] = entry

        self.stats.increment('updates')
        if replaced:
            self.stats.increment('coalesced_updates')

    def pending(self) -> Dict[ParameterKey, PendingUpdate]:
        """Copy of the pending table (for inspection and tests)."""
        with self._lock:
            return dict(self._pending)

    def discard(self, key: Optional[ParameterKey] = None) -> None:
        """Drop the pending value for one key, or all of them."""
        with self._lock:
            if key is None:
                self._pending.clear()
            else:
                self._pending.pop(key, None)

    # ========================================================================
    # FLUSH
    # ========================================================================

    def _take_snapshot(self) -> List[PendingUpdate]:
        with self._lock:
            if not self._pending:
                return []
            snapshot = list(self._pending.values())
            self._pending.clear()
        return snapshot

    def tick(self) -> int:
        """Flush every pending key once.

        Snapshots and clears the table under the lock, then sends without it.
        A failing send is logged and does not stop the remaining keys.

        Returns:
            Number of messages sent successfully
        """
        snapshot = self._take_snapshot()
        if not snapshot:
            return 0

        sent = 0
        for entry in snapshot:
            try:
                self._send(entry.to_message())
                sent += 1
            except (OscError, OSError) as e:
                self.stats.increment('send_failures')
                logger.warning(f"Dropped {entry.key.address} (target {entry.key.target_id}): {e}")
            except Exception as e:
                self.stats.increment('send_failures')
                logger.error(f"Unexpected send failure for {entry.key.address}: {e}", exc_info=True)

        self.stats.increment('flushed_messages', sent)
        return sent

    def _tick_loop(self, stop_event: threading.Event) -> None:
        """Call tick() every interval until stop_event is set.

        Runs in a daemon thread. Keeps the cadence with an adaptive sleep and
        wakes immediately when stop() is called.
        """
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Tick error: {e}", exc_info=True)

            elapsed = time.monotonic() - started
            stop_event.wait(max(0.0, self.interval - elapsed))

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @property
    def is_running(self) -> bool:
        thread = self._tick_thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        """Start the tick thread (no-op if already running)."""
        with self._lifecycle_lock:
            if self._tick_thread is not None:
                return
            # Fresh event per run so a slow old thread can never be revived
            self._stop_event = threading.Event()
            self._tick_thread = threading.Thread(
                target=self._tick_loop, args=(self._stop_event,),
                name="wfsctl-throttle", daemon=True
            )
            self._tick_thread.start()
        logger.debug(f"Throttle tick started ({1.0 / self.interval:.0f} Hz)")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the tick thread (no-op if not running).

        Pending values are kept and flushed after the next start().
        """
        with self._lifecycle_lock:
            thread = self._tick_thread
            if thread is None:
                return
            self._stop_event.set()
            thread.join(timeout=timeout)
            self._tick_thread = None
        logger.debug("Throttle tick stopped")
