"""
Network settings for the WFS controller.

NetworkConfig holds the ports, remote host and find-device password. It is
loaded from a YAML settings file at startup and replaced only through
OscService.apply_settings(), which also restarts the transport.

Settings file format (~/.wfsctl/network.yaml):

    version: 1
    network:
      incoming_port: 8000
      outgoing_port: 8001
      remote_host: 192.168.1.20
      find_device_password: secret     # optional
"""

from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Optional, Union

import yaml

from wfsctl import osc
from wfsctl.log import get_logger

logger = get_logger(__name__)

SETTINGS_VERSION = 1
DEFAULT_SETTINGS_PATH = Path.home() / ".wfsctl" / "network.yaml"


@dataclass(frozen=True)
class NetworkConfig:
    """Process-wide network settings.

    Attributes:
        incoming_port: Local UDP port the WFS server sends to
        outgoing_port: UDP port on the WFS server
        remote_host: WFS server IPv4 address
        find_device_password: Required /findDevice argument, None/"" for none
    """
    incoming_port: int = osc.PORT_INCOMING
    outgoing_port: int = osc.PORT_OUTGOING
    remote_host: str = osc.DEFAULT_REMOTE_HOST
    find_device_password: Optional[str] = None

    def validate(self) -> "NetworkConfig":
        """Check ports and host.

        Returns:
            self, for chaining

        Raises:
            ValueError: If any field is invalid
        """
        try:
            osc.validate_port(self.incoming_port)
        except ValueError as e:
            raise ValueError(f"Invalid incoming port\n{e}")
        try:
            osc.validate_port(self.outgoing_port)
        except ValueError as e:
            raise ValueError(f"Invalid outgoing port\n{e}")
        osc.validate_ipv4(self.remote_host)
        if self.find_device_password is not None and not isinstance(self.find_device_password, str):
            raise ValueError(
                f"Find-device password must be a string, got {type(self.find_device_password).__name__}"
            )
        return self

    def with_changes(self, **changes) -> "NetworkConfig":
        """Validated copy with some fields replaced."""
        return replace(self, **changes).validate()

    @property
    def has_password(self) -> bool:
        return bool(self.find_device_password)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkConfig":
        """Build and validate a config from a settings mapping.

        Missing keys take their defaults; unknown keys are rejected.

        Raises:
            ValueError: Unknown keys or invalid values
        """
        if not isinstance(data, dict):
            raise ValueError(f"Network settings must be a mapping, got {type(data).__name__}")
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown network settings: {', '.join(sorted(unknown))}")
        password = data.get('find_device_password')
        if password == "":
            data = dict(data, find_device_password=None)
        return cls(**data).validate()


def load_network_config(path: Union[str, Path] = DEFAULT_SETTINGS_PATH) -> NetworkConfig:
    """Load persisted network settings, or defaults.

    Falls back to defaults (with a warning) if the file is unreadable,
    has an unexpected version, or holds invalid values.

    Args:
        path: Settings YAML path

    Returns:
        Validated NetworkConfig
    """
    settings_path = Path(path)

    if not settings_path.exists():
        logger.info(f"No settings at {settings_path}, using defaults")
        return NetworkConfig()

    try:
        with open(settings_path, 'r') as f:
            settings = yaml.safe_load(f) or {}

        version = settings.get('version', SETTINGS_VERSION)
        if version != SETTINGS_VERSION:
            logger.warning(f"Settings file version {version} != expected {SETTINGS_VERSION}")
            logger.warning("Using default network settings.")
            return NetworkConfig()

        config = NetworkConfig.from_dict(settings.get('network', {}))
        logger.info(f"Loaded network settings from {settings_path}")
        return config

    except (OSError, yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to load network settings: {e}")
        logger.warning("Using default network settings.")
        return NetworkConfig()


def save_network_config(config: NetworkConfig, path: Union[str, Path] = DEFAULT_SETTINGS_PATH) -> bool:
    """Persist network settings.

    Writes atomically using temp file + rename to avoid corruption.
    Logs a warning if the write fails but does not raise.

    Returns:
        True if the settings were written
    """
    settings_path = Path(path)
    settings = {
        'version': SETTINGS_VERSION,
        'network': config.to_dict(),
    }

    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = settings_path.with_suffix(settings_path.suffix + '.tmp')
        with open(temp_path, 'w') as f:
            yaml.safe_dump(settings, f, default_flow_style=False, sort_keys=False)
        temp_path.replace(settings_path)
    except OSError as e:
        logger.warning(f"Failed to save network settings: {e}")
        return False

    logger.debug(f"Saved network settings to {settings_path}")
    return True
