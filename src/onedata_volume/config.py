"""
Plugin settings - filesystem layout and oneclient invocation parameters.
"""

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


# Unix socket the container runtime expects the plugin on
SOCKET_PATH = Path("/run/docker/plugins/onedata.sock")

# Oneprovider port assumed by oneclient when -P is not given
DEFAULT_PORT = "5555"

DEFAULT_ONECLIENT = "oneclient"
DEFAULT_MOUNT_TIMEOUT = 300.0

STATE_FILE_NAME = "onedata-state.json"
VOLUMES_DIR_NAME = "volumes"


def _timeout_from_env(value: Optional[str]) -> float:
    """Parse the mount timeout, falling back to the default on bad input."""
    if value is None:
        return DEFAULT_MOUNT_TIMEOUT

    try:
        timeout = float(value)
    except (ValueError, TypeError):
        logger.warning(
            f"Invalid ONEDATA_VOLUME_MOUNT_TIMEOUT {value!r}, using default {DEFAULT_MOUNT_TIMEOUT}s"
        )
        return DEFAULT_MOUNT_TIMEOUT

    if not math.isfinite(timeout) or timeout <= 0:
        logger.warning(
            f"ONEDATA_VOLUME_MOUNT_TIMEOUT must be a positive finite number, "
            f"using default {DEFAULT_MOUNT_TIMEOUT}s"
        )
        return DEFAULT_MOUNT_TIMEOUT

    return timeout


@dataclass
class PluginSettings:
    """Runtime configuration for one plugin process."""

    plugins_root: Path  # Docker plugins directory given on the command line
    oneclient_binary: str = DEFAULT_ONECLIENT
    mount_timeout: float = DEFAULT_MOUNT_TIMEOUT  # Seconds per oneclient call
    log_file: Optional[Path] = None

    @property
    def volumes_root(self) -> Path:
        """Directory holding one mountpoint per credential pair."""
        return self.plugins_root / VOLUMES_DIR_NAME

    @property
    def state_file(self) -> Path:
        """JSON snapshot of all volume records."""
        return self.plugins_root / STATE_FILE_NAME

    @staticmethod
    def from_env(plugins_root: Path) -> "PluginSettings":
        """Build settings for plugins_root, reading overrides from the environment.

        Recognised variables:
            ONEDATA_VOLUME_ONECLIENT: oneclient binary (default: oneclient)
            ONEDATA_VOLUME_MOUNT_TIMEOUT: seconds per oneclient call (default: 300)
            ONEDATA_VOLUME_LOG_FILE: optional log file, appended to
        """
        log_file = os.getenv("ONEDATA_VOLUME_LOG_FILE")

        return PluginSettings(
            plugins_root=Path(plugins_root),
            oneclient_binary=os.getenv("ONEDATA_VOLUME_ONECLIENT") or DEFAULT_ONECLIENT,
            mount_timeout=_timeout_from_env(os.getenv("ONEDATA_VOLUME_MOUNT_TIMEOUT")),
            log_file=Path(log_file) if log_file else None,
        )
