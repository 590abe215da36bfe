"""OSC message codec with typed arguments.

Wire layout of one message:

    address    OSC string, must start with '/'
    type tag   OSC string, ',' followed by one char per argument
    arguments  i: int32 big-endian, f: float32 big-endian, s: OSC string

OSC strings are UTF-8, NUL-terminated and NUL-padded to a multiple of 4 bytes.
Primitive packing is done with pythonosc's osc_types; this module adds the
structural checks (tag/argument agreement, truncation, trailing bytes,
padding) so that every malformed datagram maps to a DecodeError.
"""

import math
import struct
from dataclasses import dataclass, field
from typing import ClassVar, Iterable, Tuple, Union

from pythonosc.parsing import osc_types

from wfsctl.errors import DecodeError, EncodeError

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_WORD = 4


def _to_float32(value: float) -> float:
    try:
        return struct.unpack(">f", struct.pack(">f", value))[0]
    except (struct.error, OverflowError, TypeError) as e:
        raise EncodeError(f"Value {value!r} does not fit in float32: {e}")


@dataclass(frozen=True)
class Int32:
    value: int
    tag: ClassVar[str] = "i"


@dataclass(frozen=True)
class Float32:
    """32-bit float argument.

    The value is rounded to single precision on construction, so a Float32
    compares equal to the one decoded from its own encoding. NaN compares
    equal to NaN for the same reason.
    """
    value: float
    tag: ClassVar[str] = "f"

    def __post_init__(self):
        object.__setattr__(self, "value", _to_float32(self.value))

    def __eq__(self, other):
        if not isinstance(other, Float32):
            return NotImplemented
        if math.isnan(self.value) and math.isnan(other.value):
            return True
        return self.value == other.value

    def __hash__(self):
        return hash(("f", "nan" if math.isnan(self.value) else self.value))


@dataclass(frozen=True)
class Str:
    value: str
    tag: ClassVar[str] = "s"


OscArgument = Union[Int32, Float32, Str]

_ARGUMENT_TYPES = {cls.tag: cls for cls in (Int32, Float32, Str)}


@dataclass(frozen=True)
class OscMessage:
    address: str
    args: Tuple[OscArgument, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def type_tag(self) -> str:
        return "," + "".join(getattr(arg, "tag", "?") for arg in self.args)

    @property
    def values(self) -> tuple:
        """Native Python values of the arguments."""
        return tuple(arg.value for arg in self.args)

    def __str__(self):
        rendered = " ".join(repr(v) for v in self.values)
        return f"{self.address} {rendered}".rstrip()


def to_argument(value) -> OscArgument:
    """Convert a native Python value to an OSC argument.

    int -> Int32, float -> Float32, str -> Str. Arguments pass through.

    Raises:
        EncodeError: For bool and any other type
    """
    if isinstance(value, (Int32, Float32, Str)):
        return value
    # bool is an int subclass but has no OSC 'i' meaning here
    if isinstance(value, bool):
        raise EncodeError(f"Unsupported argument type: bool ({value!r})")
    if isinstance(value, int):
        return Int32(value)
    if isinstance(value, float):
        return Float32(value)
    if isinstance(value, str):
        return Str(value)
    raise EncodeError(f"Unsupported argument type: {type(value).__name__} ({value!r})")


def to_arguments(values: Iterable) -> Tuple[OscArgument, ...]:
    return tuple(to_argument(v) for v in values)


# ============================================================================
# ENCODE
# ============================================================================

def _encode_string(value: str, what: str) -> bytes:
    if not isinstance(value, str):
        raise EncodeError(f"{what} must be a string, got {type(value).__name__}")
    if "\x00" in value:
        raise EncodeError(f"{what} contains a NUL character: {value!r}")
    try:
        return osc_types.write_string(value)
    except osc_types.BuildError as e:
        raise EncodeError(f"Cannot encode {what} {value!r}: {e}")


def _encode_argument(arg) -> bytes:
    if isinstance(arg, Int32):
        if isinstance(arg.value, bool) or not isinstance(arg.value, int):
            raise EncodeError(f"Int32 value must be an int, got {arg.value!r}")
        if not INT32_MIN <= arg.value <= INT32_MAX:
            raise EncodeError(f"Int32 value out of range: {arg.value}")
        try:
            return osc_types.write_int(arg.value)
        except osc_types.BuildError as e:
            raise EncodeError(f"Cannot encode int {arg.value!r}: {e}")
    if isinstance(arg, Float32):
        try:
            return osc_types.write_float(arg.value)
        except (osc_types.BuildError, OverflowError) as e:
            raise EncodeError(f"Cannot encode float {arg.value!r}: {e}")
    if isinstance(arg, Str):
        return _encode_string(arg.value, "string argument")
    raise EncodeError(f"Unsupported argument variant: {type(arg).__name__}")


def encode(message: OscMessage) -> bytes:
    """Serialize a message into one OSC datagram.

    Raises:
        EncodeError: Bad address or unsupported/out-of-range argument
    """
    address = message.address
    if not isinstance(address, str) or not address.startswith("/"):
        raise EncodeError(f"OSC address must start with '/', got {address!r}")

    payload = [_encode_argument(arg) for arg in message.args]
    head = _encode_string(address, "address") + _encode_string(message.type_tag, "type tag")
    return head + b"".join(payload)


# ============================================================================
# DECODE
# ============================================================================

def _read_string(data: bytes, index: int, what: str) -> Tuple[str, int]:
    if index >= len(data):
        raise DecodeError(f"Datagram truncated before {what}")
    try:
        value, end = osc_types.get_string(data, index)
    except osc_types.ParseError as e:
        raise DecodeError(f"Malformed {what}: {e}")
    except UnicodeDecodeError as e:
        raise DecodeError(f"{what} is not valid UTF-8: {e}")
    # osc_types strips every NUL; insist on canonical padding instead
    if data[index:end] != osc_types.write_string(value):
        raise DecodeError(f"Malformed {what}: bad NUL padding")
    return value, end


def _read_argument(data: bytes, tag: str, index: int) -> Tuple[OscArgument, int]:
    if tag == "s":
        value, index = _read_string(data, index, "string argument")
        return Str(value), index

    # get_float pads short input instead of failing, so check length here
    if len(data) - index < _WORD:
        raise DecodeError(f"Datagram truncated in '{tag}' argument at byte {index}")
    try:
        if tag == "i":
            value, index = osc_types.get_int(data, index)
            return Int32(value), index
        value, index = osc_types.get_float(data, index)
        return Float32(value), index
    except osc_types.ParseError as e:
        raise DecodeError(f"Malformed '{tag}' argument: {e}")


def decode(data: bytes) -> OscMessage:
    """Parse one OSC datagram.

    Never raises anything but DecodeError, whatever the input bytes.

    Raises:
        DecodeError: Malformed, truncated or unsupported datagram
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(f"Expected bytes, got {type(data).__name__}")
    data = bytes(data)

    if not data.startswith(b"/"):
        raise DecodeError("OSC address must start with '/'")
    address, index = _read_string(data, 0, "address")

    if index >= len(data):
        raise DecodeError(f"Missing type tag for {address}")
    type_tag, index = _read_string(data, index, "type tag")
    if not type_tag.startswith(","):
        raise DecodeError(f"Type tag must start with ',', got {type_tag!r}")

    tags = type_tag[1:]
    unsupported = set(tags) - set(_ARGUMENT_TYPES)
    if unsupported:
        raise DecodeError(f"Unsupported type tag(s) {''.join(sorted(unsupported))!r} in {address}")

    args = []
    for tag in tags:
        arg, index = _read_argument(data, tag, index)
        args.append(arg)

    if index != len(data):
        raise DecodeError(
            f"{len(data) - index} trailing bytes after {len(tags)} declared arguments in {address}"
        )

    return OscMessage(address, tuple(args))
