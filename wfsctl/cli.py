#!/usr/bin/env python3
"""
Command-line tools for the WFS controller.

Usage:
    python -m wfsctl send <address> [arg1] [arg2] ... [--host H] [--port P]
    python -m wfsctl listen [--settings PATH] [--incoming-port N] ...
    python -m wfsctl config [--settings PATH] [--incoming-port N] ...

Examples:
    python -m wfsctl send /remoteInput/attenuation 3 -6.0 --host 192.168.1.20
    python -m wfsctl send /findDevice secret
    python -m wfsctl listen --incoming-port 9000
    python -m wfsctl --log-level DEBUG listen
    python -m wfsctl config --host 192.168.1.20 --password secret
"""

import argparse
import sys
import time
from typing import List, Optional

from wfsctl import osc
from wfsctl.config import DEFAULT_SETTINGS_PATH, NetworkConfig, load_network_config, save_network_config
from wfsctl.errors import BindError, OscError
from wfsctl.events import ALL_FAMILIES, RemoteParameterChange
from wfsctl.log import LEVEL_NAMES, set_level
from wfsctl.service import OscService
from wfsctl.transport import send_once


def parse_argument(arg: str):
    """Parse a command-line argument to the appropriate type.

    Attempts to convert string arguments to int or float, preserving
    strings if conversion fails.
    """
    try:
        return int(arg)
    except ValueError:
        pass
    try:
        return float(arg)
    except ValueError:
        pass
    return arg


def _settings_overrides(args) -> dict:
    overrides = {}
    if args.incoming_port is not None:
        overrides['incoming_port'] = args.incoming_port
    if args.outgoing_port is not None:
        overrides['outgoing_port'] = args.outgoing_port
    if args.host is not None:
        overrides['remote_host'] = args.host
    if args.password is not None:
        overrides['find_device_password'] = args.password or None
    return overrides


def _print_config(config: NetworkConfig) -> None:
    print(f"Incoming port:  {config.incoming_port}")
    print(f"Outgoing port:  {config.outgoing_port}")
    print(f"Remote host:    {config.remote_host}")
    print(f"Find password:  {'(set)' if config.has_password else '(none)'}")


def _print_change(change: RemoteParameterChange) -> None:
    target = f" [{change.target_id}]" if change.target_id != osc.NO_TARGET else ""
    values = " ".join(repr(v) for v in change.values)
    print(f"{change.address}{target} {values}".rstrip())


# ============================================================================
# SUBCOMMANDS
# ============================================================================

def cmd_send(args) -> int:
    values = [parse_argument(arg) for arg in args.args]
    send_once(args.address, values, host=args.host, port=args.port)
    print(f"Sent to {args.host}:{args.port} → {args.address} {values}")
    return 0


def cmd_listen(args) -> int:
    config = load_network_config(args.settings).with_changes(**_settings_overrides(args))
    service = OscService(config)
    service.subscribe(ALL_FAMILIES, _print_change)
    service.start()

    print(f"\nListening on port {config.incoming_port}, "
          f"sending to {config.remote_host}:{config.outgoing_port}")
    print("Waiting for messages... (Ctrl+C to stop)\n")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n\nShutting down...")
    finally:
        service.stop()
        service.print_stats()
    return 0


def cmd_config(args) -> int:
    config = load_network_config(args.settings)
    overrides = _settings_overrides(args)

    if overrides:
        config = config.with_changes(**overrides)
        if not save_network_config(config, args.settings):
            print(f"ERROR: Could not write {args.settings}", file=sys.stderr)
            return 1
        print(f"Saved network settings to {args.settings}")

    _print_config(config)
    return 0


# ============================================================================
# MAIN
# ============================================================================

def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--settings",
        type=str,
        default=str(DEFAULT_SETTINGS_PATH),
        help=f"Network settings YAML (default: {DEFAULT_SETTINGS_PATH})",
    )
    parser.add_argument("--incoming-port", type=int, help="Local UDP port to listen on")
    parser.add_argument("--outgoing-port", type=int, help="WFS server UDP port")
    parser.add_argument("--host", type=str, help="WFS server IPv4 address")
    parser.add_argument("--password", type=str, help="Find-device password (\"\" to clear)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wfsctl", description="WFS server OSC controller")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LEVEL_NAMES,
        help="Log level for all components (default: WFSCTL_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Send a single OSC message")
    send.add_argument("address", help="OSC address (e.g. /remoteInput/attenuation)")
    send.add_argument("args", nargs="*", help="Arguments (int, float or string)")
    send.add_argument(
        "--host",
        type=str,
        default=osc.DEFAULT_REMOTE_HOST,
        help=f"Target host (default: {osc.DEFAULT_REMOTE_HOST})",
    )
    send.add_argument(
        "--port",
        type=int,
        default=osc.PORT_OUTGOING,
        help=f"Target UDP port (default: {osc.PORT_OUTGOING})",
    )
    send.set_defaults(func=cmd_send)

    listen = subparsers.add_parser("listen", help="Print remote parameter changes until Ctrl+C")
    _add_settings_arguments(listen)
    listen.set_defaults(func=cmd_listen)

    config = subparsers.add_parser("config", help="Show or change persisted network settings")
    _add_settings_arguments(config)
    config.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None):
    """CLI entry point.

    Exits with status 1 and an ERROR line on invalid input or bind failure.
    """
    args = build_parser().parse_args(argv)
    if args.log_level:
        set_level(args.log_level)

    try:
        if args.command == "send":
            osc.validate_port(args.port)
        status = args.func(args)
    except BindError as e:
        print(f"ERROR: Port {e.port} unavailable ({e.reason})", file=sys.stderr)
        sys.exit(1)
    except (OscError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
