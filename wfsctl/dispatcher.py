"""Exact-address dispatcher with typed, validated arguments.

Each registered address carries one or more argument shapes. A shape is a
sequence of ArgSpec entries naming the expected OSC type and the valid value
domain for each position. Routing picks the first shape whose arity and types
match, checks the values, and calls the handler with native Python values:

    handler(address, *values)

which is the same calling convention as pythonosc's Dispatcher.map().

Unregistered addresses are ignored: the protocol is intentionally partial.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from wfsctl import osc
from wfsctl.codec import Float32, Int32, OscMessage, Str
from wfsctl.errors import AuthError, ValidationError
from wfsctl.log import get_logger

logger = get_logger(__name__)

Handler = Callable[..., None]


@dataclass(frozen=True)
class ArgSpec:
    """One argument position of an address shape.

    Attributes:
        name: Argument name used in messages and logs (e.g. "inputId", "dB")
        kind: Expected argument class (Int32, Float32 or Str)
        minimum/maximum: Inclusive numeric bounds, None for unbounded
        choices: Allowed values (exact for ints/strings, float32-rounded for floats)
        optional: May be omitted; only trailing positions may be optional
        target: This position identifies the target (input, cluster, array)
    """
    name: str
    kind: Type
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    choices: Optional[Tuple] = None
    optional: bool = False
    target: bool = False

    def check(self, value, address: str) -> None:
        if self.kind is Float32 and math.isnan(value):
            raise ValidationError(f"{address}: {self.name} is NaN")
        if self.choices is not None:
            allowed = self.choices
            if self.kind is Float32:
                allowed = tuple(Float32(c).value for c in self.choices)
            if value not in allowed:
                raise ValidationError(
                    f"{address}: {self.name}={value!r} not in {list(self.choices)}"
                )
        minimum, maximum = self.minimum, self.maximum
        # Float bounds are compared at the precision the wire carries
        if self.kind is Float32:
            minimum = Float32(minimum).value if minimum is not None else None
            maximum = Float32(maximum).value if maximum is not None else None
        if minimum is not None and value < minimum:
            raise ValidationError(
                f"{address}: {self.name}={value!r} below minimum {self.minimum}"
            )
        if maximum is not None and value > maximum:
            raise ValidationError(
                f"{address}: {self.name}={value!r} above maximum {self.maximum}"
            )


Shape = Tuple[ArgSpec, ...]


def describe_shape(shape: Sequence[ArgSpec]) -> str:
    """Render a shape like "<i:inputId> <f:dB> [s:password]"."""
    parts = []
    for spec in shape:
        text = f"{spec.kind.tag}:{spec.name}"
        parts.append(f"[{text}]" if spec.optional else f"<{text}>")
    return " ".join(parts) or "(no arguments)"


def _arity(shape: Sequence[ArgSpec]) -> Tuple[int, int]:
    required = sum(1 for spec in shape if not spec.optional)
    return required, len(shape)


def bind_arguments(address: str, shape: Sequence[ArgSpec], args: Sequence) -> tuple:
    """Check args against one shape and return their native values.

    Raises:
        ValidationError: Wrong arity, wrong argument type or out-of-domain value
    """
    required, total = _arity(shape)
    if not required <= len(args) <= total:
        expected = str(total) if required == total else f"{required}-{total}"
        raise ValidationError(f"{address}: expected {expected} arguments, got {len(args)}")

    values = []
    for spec, arg in zip(shape, args):
        if type(arg) is not spec.kind:
            raise ValidationError(
                f"{address}: {spec.name} must be '{spec.kind.tag}', got '{getattr(arg, 'tag', '?')}'"
            )
        spec.check(arg.value, address)
        values.append(arg.value)
    return tuple(values)


@dataclass
class Route:
    address: str
    handler: Handler
    shapes: Tuple[Shape, ...]

    def bind(self, args: Sequence) -> Tuple[Shape, tuple]:
        """Bind args to the first shape whose types match.

        Raises:
            ValidationError: No shape matches, or the matching shape rejects a value
        """
        errors = []
        for shape in self.shapes:
            try:
                return shape, bind_arguments(self.address, shape, args)
            except ValidationError as e:
                errors.append(str(e))
        if len(errors) == 1:
            raise ValidationError(errors[0])
        raise ValidationError(f"{self.address}: no accepted shape matched ({'; '.join(errors)})")


class ParameterDispatcher:
    """Registry of exact OSC addresses and their handlers.

    Populated once at startup (see wfsctl.protocol.register_protocol) and
    read-only afterwards, so routing takes no lock.

    Attributes:
        routes (dict): address -> Route
        stats (osc.MessageStatistics): routed/ignored/rejected/suppressed counters
    """

    def __init__(self, stats: Optional[osc.MessageStatistics] = None):
        self.routes: Dict[str, Route] = {}
        self.stats = stats if stats is not None else osc.MessageStatistics()

    def register(self, address: str, handler: Handler, *shapes: Sequence[ArgSpec]) -> None:
        """Associate an exact address with a handler and its accepted shapes.

        With no shapes the address takes no arguments.

        Raises:
            ValueError: Bad address, duplicate registration, or a shape with an
                        optional argument before a required one
        """
        if not address.startswith("/"):
            raise ValueError(f"OSC address must start with '/', got {address!r}")
        if address in self.routes:
            raise ValueError(f"Address already registered: {address}")

        normalized = tuple(tuple(shape) for shape in shapes) or ((),)
        for shape in normalized:
            seen_optional = False
            for spec in shape:
                if spec.kind not in (Int32, Float32, Str):
                    raise ValueError(f"{address}: unsupported argument kind {spec.kind!r}")
                if seen_optional and not spec.optional:
                    raise ValueError(f"{address}: required argument {spec.name} after optional one")
                seen_optional = seen_optional or spec.optional

        self.routes[address] = Route(address, handler, normalized)

    def lookup(self, address: str) -> Optional[Route]:
        return self.routes.get(address)

    def addresses(self) -> List[str]:
        return sorted(self.routes)

    def route(self, message: OscMessage) -> bool:
        """Validate a decoded message and invoke its handler.

        Returns:
            True if a handler ran to completion, False otherwise
        """
        route = self.routes.get(message.address)
        if route is None:
            self.stats.increment('ignored_messages')
            logger.debug(f"Ignoring unregistered address {message}")
            return False

        try:
            _, values = route.bind(message.args)
        except ValidationError as e:
            self.stats.increment('rejected_messages')
            logger.warning(f"Rejected {message}: {e}")
            return False

        try:
            route.handler(message.address, *values)
        except AuthError:
            self.stats.increment('suppressed_messages')
            logger.debug(f"Suppressed {message.address}")
            return False
        except Exception as e:
            self.stats.increment('handler_errors')
            logger.error(f"Handler for {message.address} failed: {e}", exc_info=True)
            return False

        self.stats.increment('routed_messages')
        return True
