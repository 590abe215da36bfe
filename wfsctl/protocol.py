"""
WFS server OSC address space.

Every address the controller exchanges with the WFS server is listed here as
one or more argument shapes with their valid value domains. The same table is
used to validate incoming messages (ParameterDispatcher) and outgoing
parameter changes (validate_outgoing).

ADDRESSES:
    /inputs <i:count>                                   count 1-64
    /findDevice [s:password]
    /marker/positionXY <i:inputId> <f:x> <f:y>          x, y in -50..50 m
    /cluster/positionXY <i:clusterId> <f:x> <f:y>
    /cluster/move <i:clusterId> <f:deltaX> <f:deltaY>
    /cluster/barycenter/move <i:clusterId> <f:deltaX> <f:deltaY>
    /cluster/scale <i:clusterId> <f:factor>
    /cluster/rotation <i:clusterId> <f:degrees>
    /arrayAdjust/{delayLatency,attenuation,Hparallax,Vparallax} <i:arrayId> <f:delta>
                                                        delta in {-1.0, -0.1, 0.1, 1.0}
    /stage/{width,depth,height,diameter,originX,originY,originZ,domeElevation} <f>
    /stage/shape <i>                                    0=box 1=cylinder 2=dome
    /remoteInput/positionXY <i:inputId> <f:x> <f:y>
    /remoteInput/{position,offset}{X,Y,Z} <i:inputId> <f:value>
                                        or <i:inputId> <s:"inc"|"dec"> <f:step>
    /remoteInput/inputName <i:inputId> <s:name>
    /remoteInput/<parameter> <i:inputId> <value>        see INPUT_PARAMETERS

Target ids: inputId 1-64, clusterId 1-10, arrayId 1-5.
"""

from functools import partial
from typing import Callable, Dict, Optional, Sequence, Tuple

from wfsctl import osc
from wfsctl.codec import Float32, Int32, OscArgument, Str, to_argument
from wfsctl.dispatcher import ArgSpec, ParameterDispatcher, Shape, bind_arguments
from wfsctl.errors import AuthError, EncodeError, ValidationError
from wfsctl.events import ParameterEvents, RemoteParameterChange
from wfsctl.log import get_logger

logger = get_logger(__name__)


# ============================================================================
# ADDRESS CONSTANTS
# ============================================================================

INPUTS = "/inputs"
FIND_DEVICE = "/findDevice"
MARKER_POSITION_XY = "/marker/positionXY"
CLUSTER_POSITION_XY = "/cluster/positionXY"
CLUSTER_MOVE = "/cluster/move"
CLUSTER_BARYCENTER_MOVE = "/cluster/barycenter/move"
CLUSTER_SCALE = "/cluster/scale"
CLUSTER_ROTATION = "/cluster/rotation"
INPUT_POSITION_XY = "/remoteInput/positionXY"
INPUT_NAME = "/remoteInput/inputName"

ARRAY_ADJUST_PARAMETERS = ("delayLatency", "attenuation", "Hparallax", "Vparallax")
ARRAY_ADJUST_STEPS = (-1.0, -0.1, 0.1, 1.0)

# Joystick/slider axes; each also accepts an "inc"/"dec" step form
POSITION_PARAMETERS = ("positionX", "positionY", "positionZ", "offsetX", "offsetY", "offsetZ")
INC_DEC_DIRECTIONS = ("inc", "dec")

STAGE_EXTENT = 1000.0
POSITION_EXTENT = 50.0

LFO_AXES = ("X", "Y", "Z")
LFO_RATE_MIN = 0.01
LFO_RATE_MAX = 100.0

# /remoteInput/<name> <i:inputId> <value>: name -> (kind, minimum, maximum)
INPUT_PARAMETERS = {
    # Input
    "attenuation": (Float32, -92.0, 0.0),
    "delayLatency": (Float32, -100.0, 100.0),
    "minimalLatency": (Int32, 0, 1),
    "cluster": (Int32, 0, osc.CLUSTER_ID_MAX),
    # Position
    "sidelinesActive": (Int32, 0, 1),
    "sidelinesFringe": (Float32, 0.1, 10.0),
    "trackingActive": (Int32, 0, 1),
    "trackingID": (Int32, 1, 64),
    "trackingSmooth": (Int32, 0, 100),
    "maxSpeedActive": (Int32, 0, 1),
    "maxSpeed": (Float32, 0.01, 20.0),
    "pathModeActive": (Int32, 0, 1),
    "heightFactor": (Int32, 0, 100),
    # Attenuation
    "attenuationLaw": (Int32, 0, 1),
    "distanceAttenuation": (Float32, -6.0, 0.0),
    "distanceRatio": (Float32, 0.1, 10.0),
    "commonAtten": (Int32, 0, 100),
    # Directivity
    "directivity": (Int32, 2, 360),
    "rotation": (Int32, -180, 180),
    "tilt": (Int32, -90, 90),
    "HFshelf": (Float32, -24.0, 0.0),
    # Live source tamer
    "liveSourceActive": (Int32, 0, 1),
    "liveSourceRadius": (Float32, 0.0, 50.0),
    "liveSourceShape": (Int32, 0, 3),
    "liveSourceAttenuation": (Float32, -24.0, 0.0),
    "liveSourcePeakThreshold": (Float32, -48.0, 0.0),
    "liveSourcePeakRatio": (Float32, 1.0, 10.0),
    "liveSourceSlowThreshold": (Float32, -48.0, 0.0),
    "liveSourceSlowRatio": (Float32, 1.0, 10.0),
    # Floor reflections
    "FRactive": (Int32, 0, 1),
    "FRattenuation": (Float32, -60.0, 0.0),
    "FRlowCutActive": (Int32, 0, 1),
    "FRlowCutFreq": (Int32, 20, 20000),
    "FRhighShelfActive": (Int32, 0, 1),
    "FRhighShelfFreq": (Int32, 20, 20000),
    "FRhighShelfGain": (Float32, -24.0, 0.0),
    "FRhighShelfSlope": (Float32, 0.1, 0.9),
    "FRdiffusion": (Int32, 0, 100),
    # Jitter
    "jitter": (Float32, 0.0, 10.0),
    # LFO
    "LFOactive": (Int32, 0, 1),
    "LFOperiod": (Float32, LFO_RATE_MIN, LFO_RATE_MAX),
    "LFOphase": (Int32, 0, 360),
    "LFOgyrophone": (Int32, -1, 1),  # -1 anti-clockwise, 0 off, 1 clockwise
    # Server replies with the selected input's parameters
    "inputNumber": (Int32, osc.INPUT_ID_MIN, osc.INPUT_ID_MAX),
}

for _axis in LFO_AXES:
    INPUT_PARAMETERS.update({
        f"LFOshape{_axis}": (Int32, 0, 8),
        f"LFOamplitude{_axis}": (Float32, 0.0, POSITION_EXTENT),
        f"LFOrate{_axis}": (Float32, LFO_RATE_MIN, LFO_RATE_MAX),
        f"LFOphase{_axis}": (Int32, 0, 360),
    })
del _axis

# /stage/<name> <value>: name -> (kind, minimum, maximum)
STAGE_PARAMETERS = {
    "width": (Float32, 0.0, STAGE_EXTENT),
    "depth": (Float32, 0.0, STAGE_EXTENT),
    "height": (Float32, 0.0, STAGE_EXTENT),
    "diameter": (Float32, 0.0, STAGE_EXTENT),
    "originX": (Float32, -STAGE_EXTENT, STAGE_EXTENT),
    "originY": (Float32, -STAGE_EXTENT, STAGE_EXTENT),
    "originZ": (Float32, -STAGE_EXTENT, STAGE_EXTENT),
    "domeElevation": (Float32, 0.0, 360.0),
    "shape": (Int32, 0, 2),
}


# ============================================================================
# SHAPES
# ============================================================================

INPUT_ID = ArgSpec("inputId", Int32, osc.INPUT_ID_MIN, osc.INPUT_ID_MAX, target=True)
CLUSTER_ID = ArgSpec("clusterId", Int32, osc.CLUSTER_ID_MIN, osc.CLUSTER_ID_MAX, target=True)
ARRAY_ID = ArgSpec("arrayId", Int32, osc.ARRAY_ID_MIN, osc.ARRAY_ID_MAX, target=True)


def _xy(target: ArgSpec, x: str = "x", y: str = "y", extent: Optional[float] = POSITION_EXTENT) -> Shape:
    low = -extent if extent is not None else None
    return (
        target,
        ArgSpec(x, Float32, low, extent),
        ArgSpec(y, Float32, low, extent),
    )


def _build_protocol() -> Dict[str, Tuple[Shape, ...]]:
    table: Dict[str, Tuple[Shape, ...]] = {
        INPUTS: ((ArgSpec("count", Int32, osc.INPUT_ID_MIN, osc.INPUT_ID_MAX),),),
        FIND_DEVICE: ((ArgSpec("password", Str, optional=True),),),
        MARKER_POSITION_XY: (_xy(INPUT_ID),),
        CLUSTER_POSITION_XY: (_xy(CLUSTER_ID),),
        CLUSTER_MOVE: (_xy(CLUSTER_ID, "deltaX", "deltaY", extent=None),),
        CLUSTER_BARYCENTER_MOVE: (_xy(CLUSTER_ID, "deltaX", "deltaY", extent=None),),
        CLUSTER_SCALE: ((CLUSTER_ID, ArgSpec("factor", Float32, 0.01, 100.0)),),
        CLUSTER_ROTATION: ((CLUSTER_ID, ArgSpec("degrees", Float32, -360.0, 360.0)),),
        INPUT_POSITION_XY: (_xy(INPUT_ID),),
        INPUT_NAME: ((INPUT_ID, ArgSpec("name", Str)),),
    }

    for name in ARRAY_ADJUST_PARAMETERS:
        table[f"/arrayAdjust/{name}"] = (
            (ARRAY_ID, ArgSpec("delta", Float32, choices=ARRAY_ADJUST_STEPS)),
        )

    for name, (kind, low, high) in STAGE_PARAMETERS.items():
        table[f"/stage/{name}"] = ((ArgSpec(name, kind, low, high),),)

    for name in POSITION_PARAMETERS:
        table[f"/remoteInput/{name}"] = (
            (INPUT_ID, ArgSpec("value", Float32, -POSITION_EXTENT, POSITION_EXTENT)),
            (
                INPUT_ID,
                ArgSpec("direction", Str, choices=INC_DEC_DIRECTIONS),
                ArgSpec("step", Float32, 0.0, POSITION_EXTENT),
            ),
        )

    for name, (kind, low, high) in INPUT_PARAMETERS.items():
        table[f"/remoteInput/{name}"] = ((INPUT_ID, ArgSpec(name, kind, low, high)),)

    return table


PROTOCOL: Dict[str, Tuple[Shape, ...]] = _build_protocol()


def is_targeted(shapes: Sequence[Shape]) -> bool:
    """True if the address's first argument is a target id (input/cluster/array)."""
    return bool(shapes and shapes[0] and shapes[0][0].target)


# ============================================================================
# INCOMING HANDLERS
# ============================================================================

def handle_parameter(address: str, *values, events: ParameterEvents, targeted: bool) -> None:
    """Publish a validated remote parameter change to subscribers.

    Args:
        address: OSC address (e.g., "/remoteInput/attenuation")
        *values: Validated native values, target id first when targeted
        events: Bus to publish on
        targeted: Whether values[0] is a target id
    """
    if targeted:
        change = RemoteParameterChange(address, values[0], tuple(values[1:]))
    else:
        change = RemoteParameterChange(address, osc.NO_TARGET, tuple(values))
    logger.debug(f"Remote change {address} target={change.target_id} values={change.values}")
    events.publish(change)


def handle_find_device(address: str, *values, events: ParameterEvents,
                       password_source: Callable[[], Optional[str]]) -> None:
    """Handle /findDevice [password].

    With a non-empty configured password the supplied argument must match it
    exactly (case-sensitive). Without one, the message always triggers.

    Raises:
        AuthError: Password missing or wrong (suppressed by the dispatcher)
    """
    expected = password_source()
    if expected:
        supplied = values[0] if values else None
        if supplied != expected:
            raise AuthError("Find-device password mismatch")

    logger.info("Find-device request received")
    events.publish(RemoteParameterChange(address, osc.NO_TARGET, ()))


def register_protocol(dispatcher: ParameterDispatcher, events: ParameterEvents,
                      password_source: Callable[[], Optional[str]]) -> None:
    """Register every WFS address with the dispatcher.

    Args:
        dispatcher: Dispatcher to populate (once, at startup)
        events: Bus that receives RemoteParameterChange notifications
        password_source: Returns the currently configured find-device password
    """
    for address, shapes in PROTOCOL.items():
        if address == FIND_DEVICE:
            handler = partial(handle_find_device, events=events, password_source=password_source)
        else:
            handler = partial(handle_parameter, events=events, targeted=is_targeted(shapes))
        dispatcher.register(address, handler, *shapes)

    logger.debug(f"Registered {len(PROTOCOL)} OSC addresses")


# ============================================================================
# OUTGOING VALIDATION
# ============================================================================

def _coerce(shape: Shape, values: Sequence) -> Tuple[OscArgument, ...]:
    args = []
    for index, value in enumerate(values):
        spec = shape[index] if index < len(shape) else None
        if (spec is not None and spec.kind is Float32 and isinstance(value, int)
                and not isinstance(value, bool)):
            # Whole-number float parameters (e.g. "-6" dB) are common from UIs
            args.append(Float32(float(value)))
        else:
            args.append(to_argument(value))
    return tuple(args)


def validate_outgoing(address: str, target_id: int, values: Sequence) -> Tuple[OscArgument, ...]:
    """Check an outgoing parameter change against the address table.

    Args:
        address: Registered OSC address
        target_id: Input/cluster/array id, or 0 for global parameters
        values: Native values (or OscArguments) following the target id

    Returns:
        The typed arguments to queue, without the target id

    Raises:
        ValidationError: Unknown address, wrong target, arity, type or range
    """
    shapes = PROTOCOL.get(address)
    if shapes is None:
        raise ValidationError(f"Unknown address {address}")

    targeted = is_targeted(shapes)
    if not targeted and target_id != osc.NO_TARGET:
        raise ValidationError(f"{address} is a global parameter, got target {target_id}")

    full = ((target_id,) if targeted else ()) + tuple(values)
    errors = []
    for shape in shapes:
        try:
            args = _coerce(shape, full)
            bind_arguments(address, shape, args)
        except (ValidationError, EncodeError) as e:
            errors.append(str(e))
            continue
        return args[1:] if targeted else args

    raise ValidationError("; ".join(errors))
