"""Error kinds raised by the wfsctl OSC layer.

None of these are fatal to the process: each one means a single message or
operation was skipped.
"""


class OscError(Exception):
    """Base class for all wfsctl protocol errors."""


class DecodeError(OscError):
    """Datagram could not be parsed as an OSC message."""


class EncodeError(OscError):
    """Message could not be serialized (unsupported or out-of-range argument)."""


class ValidationError(OscError):
    """Known address with wrong arity, argument types or out-of-range values."""


class AuthError(OscError):
    """Find-device password did not match; the trigger is suppressed."""


class SendError(OscError):
    """Datagram could not be written to the send socket."""


class BindError(OscError):
    """Receive port unavailable (or send socket could not be opened)."""

    def __init__(self, port: int, reason: object = None):
        self.port = port
        self.reason = reason
        message = f"Cannot bind UDP port {port}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)
