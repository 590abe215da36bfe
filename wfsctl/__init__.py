"""
wfsctl - OSC control layer for a wave-field-synthesis audio server.

Modules:
    codec: OSC datagram encoding and decoding with typed arguments
    osc: Shared OSC infrastructure (sockets, validation, constants, statistics)
    transport: UDP receive loop and datagram sender
    dispatcher: Address -> handler routing with argument validation
    protocol: WFS address table (argument shapes and value ranges)
    throttle: Per-parameter coalescing and rate limiting of outgoing updates
    config: Network settings and their persistence
    service: OscService, the owned start/stop/apply object used by a UI
    events: Remote parameter change subscriptions
    errors: OscError and its subclasses
    log: Logger factory and formatter
    cli: Command-line tools (send, listen, config)
"""

__version__ = "0.1.0"

# Note: Modules are imported on-demand so python -m wfsctl stays light.
# Use: from wfsctl import codec, service, etc.
