"""
Entry point for the Onedata Docker volume plugin.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import SOCKET_PATH, PluginSettings
from .driver import VolumeDriver
from .errors import CorruptStateError, VolumeIOError
from .executor import OneclientExecutor
from .plugin_api import VolumePluginAPI
from .registry import VolumeRegistry
from .state_store import StateStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool = False, log_file: Optional[Path] = None) -> None:
    """Log to stderr and, when configured, append to log_file."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, mode="a"))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def bootstrap(settings: PluginSettings) -> VolumePluginAPI:
    """
    Wire the store, registry, executor and driver for one plugin process.

    Raises:
        CorruptStateError: If the persisted state cannot be trusted
    """
    logger.debug(f"Plugins root: {settings.plugins_root}")

    registry = VolumeRegistry(StateStore(settings.state_file))
    executor = OneclientExecutor(settings.oneclient_binary, settings.mount_timeout)
    driver = VolumeDriver(registry, executor, settings.volumes_root)
    return VolumePluginAPI(driver)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="onedata-volume", description="Onedata Docker volume plugin"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="enable debug logging")
    parser.add_argument("plugins_root", type=Path, help="Docker plugins directory")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Validate the plugins root, restore state and report readiness."""
    args = build_parser().parse_args(argv)

    if not args.plugins_root.is_dir():
        print("Invalid path to Docker plugins root, try: /run/docker/plugins", file=sys.stderr)
        return 1

    settings = PluginSettings.from_env(args.plugins_root)
    configure_logging(args.debug, settings.log_file)

    try:
        api = bootstrap(settings)
    except (CorruptStateError, VolumeIOError) as e:
        logger.critical(f"Refusing to start: {e}")
        return 1

    logger.info(f"Restored {len(api.driver.registry)} volume(s) from {settings.state_file}")
    logger.info(f"Plugin ready, {len(api.endpoints)} endpoints to serve on {SOCKET_PATH}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
