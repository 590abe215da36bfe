"""Remote parameter change notifications for the UI collaborator.

Subscribers register per address family, the first path segment of the
address ("remoteInput", "marker", "cluster", "arrayAdjust", "stage",
"inputs", "findDevice"), or "*" for everything.

Callbacks run on the receive thread and must return quickly.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from wfsctl.log import get_logger

logger = get_logger(__name__)

ALL_FAMILIES = "*"


def address_family(address: str) -> str:
    """First path segment of an OSC address ("/remoteInput/attenuation" -> "remoteInput")."""
    return address.lstrip("/").split("/", 1)[0]


@dataclass(frozen=True)
class RemoteParameterChange:
    """One validated parameter value received from the WFS server.

    Attributes:
        address: Full OSC address
        target_id: Input/cluster/array number, 0 for global parameters
        values: Validated native values after the target id
        received_at: time.time() when the message was routed
    """
    address: str
    target_id: int
    values: tuple
    received_at: float = field(default_factory=time.time)

    @property
    def family(self) -> str:
        return address_family(self.address)

    @property
    def parameter(self) -> str:
        """Last path segment ("/remoteInput/attenuation" -> "attenuation")."""
        return self.address.rsplit("/", 1)[-1]


Subscriber = Callable[[RemoteParameterChange], None]


class ParameterEvents:
    """Thread-safe publish/subscribe bus for remote parameter changes."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, family: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for one address family (or "*").

        Returns:
            A function that removes this subscription
        """
        with self._lock:
            self._subscribers.setdefault(family, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(family, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, change: RemoteParameterChange) -> int:
        """Deliver a change to its family's subscribers and to "*" subscribers.

        A failing callback is logged and does not stop delivery to the others.

        Returns:
            Number of callbacks that ran without raising
        """
        with self._lock:
            callbacks = list(self._subscribers.get(change.family, ()))
            callbacks += self._subscribers.get(ALL_FAMILIES, ())

        delivered = 0
        for callback in callbacks:
            try:
                callback(change)
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber for {change.address} failed: {e}", exc_info=True)
        return delivered
