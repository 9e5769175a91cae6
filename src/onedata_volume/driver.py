"""
Volume lifecycle manager.

Each volume is either unmounted (connections == 0) or mounted
(connections > 0). oneclient is mounted on the 0 -> 1 transition of the
connection count and unmounted whenever the count drops to 0; every other
Mount/Unmount only moves the counter.

All mutating operations hold the registry's exclusive lock for their whole
duration, including the oneclient call and the state file write, so
mounts are serialized across volumes.
"""

import logging
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import (
    ConflictError,
    ExternalToolError,
    ValidationError,
    VolumeError,
    VolumeIOError,
)
from .executor import ExternalMountExecutor
from .registry import VolumeRegistry
from .volume import OptionValue, build_mount_command, parse_create_options

logger = logging.getLogger(__name__)


CAPABILITIES = {"Scope": "local"}


@dataclass
class VolumeResponse:
    """Outcome of a driver operation; err is empty on success."""

    err: str = ""
    error: Optional[VolumeError] = None
    mountpoint: Optional[str] = None
    volume: Optional[Dict[str, str]] = None
    volumes: Optional[List[Dict[str, str]]] = None
    capabilities: Optional[Dict[str, str]] = None

    @property
    def success(self) -> bool:
        return not self.err

    def to_dict(self) -> Dict[str, Any]:
        """Plugin protocol body; empty fields are omitted."""
        body: Dict[str, Any] = {}
        if self.err:
            body["Err"] = self.err
        if self.mountpoint is not None:
            body["Mountpoint"] = self.mountpoint
        if self.volume is not None:
            body["Volume"] = self.volume
        if self.volumes is not None:
            body["Volumes"] = self.volumes
        if self.capabilities is not None:
            body["Capabilities"] = self.capabilities
        return body


def _redacted(options: Optional[Mapping[str, OptionValue]]) -> Dict[str, Any]:
    return {key: ("***" if key == "token" else value) for key, value in (options or {}).items()}


class VolumeDriver:
    """Create/Remove/Mount/Unmount/Path/Get/List/Capabilities over a registry."""

    def __init__(self, registry: VolumeRegistry, executor: ExternalMountExecutor, volumes_root: Path):
        """
        Args:
            registry: Registry holding the volume records
            executor: Runs the external mount and unmount
            volumes_root: Directory under which mountpoints are derived
        """
        self.registry = registry
        self.executor = executor
        self.volumes_root = Path(volumes_root)

    def _respond(self, method: str, operation: Callable[[], VolumeResponse]) -> VolumeResponse:
        try:
            return operation()
        except VolumeError as e:
            logger.error(f"{method}: {e}")
            return VolumeResponse(err=str(e), error=e)

    def create(self, name: str, options: Optional[Mapping[str, OptionValue]] = None) -> VolumeResponse:
        """Register a new volume. Nothing is mounted until the first Mount."""
        logger.debug(f"create: name={name} options={_redacted(options)}")
        return self._respond("create", lambda: self._create(name, options))

    def _create(self, name: str, options: Optional[Mapping[str, OptionValue]]) -> VolumeResponse:
        if not name:
            raise ValidationError("Volume name must not be empty")

        with self.registry.write() as txn:
            if name in txn:
                raise ValidationError(f"Volume {name} already exists")

            record = parse_create_options(name, options, self.volumes_root)
            txn.insert(record)
            try:
                txn.persist()
            except VolumeIOError:
                txn.delete(name)
                raise

        logger.info(f"Created volume {name} at {record.mountpoint}")
        return VolumeResponse()

    def remove(self, name: str) -> VolumeResponse:
        """Delete an unused volume together with its mountpoint directory."""
        logger.debug(f"remove: name={name}")
        return self._respond("remove", lambda: self._remove(name))

    def _remove(self, name: str) -> VolumeResponse:
        with self.registry.write() as txn:
            record = txn.get(name)
            if record.connections != 0:
                raise ConflictError(f"Volume {name} is currently used by a container")

            # Another volume with the same credentials may have oneclient
            # mounted on this directory right now
            sharing = [
                other.name
                for other in txn.others(name)
                if other.mountpoint == record.mountpoint and other.is_mounted
            ]
            if sharing:
                logger.info(
                    f"Keeping {record.mountpoint}, still mounted for volume(s) {', '.join(sharing)}"
                )
            else:
                self._delete_mountpoint(record.mountpoint)

            txn.delete(name)
            txn.persist()

        logger.info(f"Removed volume {name}")
        return VolumeResponse()

    def mount(self, name: str, request_id: str = "") -> VolumeResponse:
        """Attach a container; mounts oneclient if this is the first attachment.

        If the new count cannot be saved the attachment is undone, including
        the oneclient mount it triggered, and the Mount fails.
        """
        logger.debug(f"mount: name={name} id={request_id}")
        return self._respond("mount", lambda: self._mount(name))

    def _mount(self, name: str) -> VolumeResponse:
        with self.registry.write() as txn:
            record = txn.get(name)
            first = record.connections == 0

            if first:
                self._ensure_mountpoint(record.mountpoint)
                outcome = self.executor.mount(build_mount_command(record))
                if not outcome.success:
                    raise ExternalToolError(
                        f"Failed to mount volume {name}: {outcome.describe()}"
                    )
                logger.info(f"Mounted volume {name} at {record.mountpoint}")

            record.connections += 1
            logger.debug(f"Volume {name} has {record.connections} connection(s)")
            try:
                txn.persist()
            except VolumeIOError:
                # The caller sees a failed Mount and will never send its Unmount
                record.connections -= 1
                if first:
                    self._rollback_mount(name, record.mountpoint)
                raise
            return VolumeResponse(mountpoint=record.mountpoint)

    def _rollback_mount(self, name: str, mountpoint: str) -> None:
        outcome = self.executor.unmount(mountpoint)
        if outcome.success:
            logger.info(f"Unmounted volume {name} after failing to record its mount")
        else:
            logger.error(f"Failed to roll back mount of volume {name}: {outcome.describe()}")

    def unmount(self, name: str, request_id: str = "") -> VolumeResponse:
        """Detach a container; unmounts oneclient when nothing uses the volume.

        A failed unmount is reported but the connection is still released,
        so the next Mount starts from an unmounted volume.
        """
        logger.debug(f"unmount: name={name} id={request_id}")
        return self._respond("unmount", lambda: self._unmount(name))

    def _unmount(self, name: str) -> VolumeResponse:
        with self.registry.write() as txn:
            record = txn.get(name)
            record.connections = max(0, record.connections - 1)

            failure = None
            if record.connections == 0:
                outcome = self.executor.unmount(record.mountpoint)
                if outcome.success:
                    logger.info(f"Unmounted volume {name} from {record.mountpoint}")
                else:
                    failure = outcome.describe()

            txn.persist()

        if failure:
            raise ExternalToolError(f"Failed to unmount volume {name}: {failure}")
        return VolumeResponse()

    def path(self, name: str) -> VolumeResponse:
        logger.debug(f"path: name={name}")
        return self._respond("path", lambda: self._path(name))

    def _path(self, name: str) -> VolumeResponse:
        with self.registry.read() as view:
            return VolumeResponse(mountpoint=view.get(name).mountpoint)

    def get(self, name: str) -> VolumeResponse:
        logger.debug(f"get: name={name}")
        return self._respond("get", lambda: self._get(name))

    def _get(self, name: str) -> VolumeResponse:
        with self.registry.read() as view:
            return VolumeResponse(volume=view.get(name).describe())

    def list(self) -> VolumeResponse:
        logger.debug("list")
        with self.registry.read() as view:
            return VolumeResponse(volumes=[record.describe() for record in view.records()])

    def capabilities(self) -> VolumeResponse:
        logger.debug("capabilities")
        return VolumeResponse(capabilities=dict(CAPABILITIES))

    def _ensure_mountpoint(self, mountpoint: str) -> None:
        path = Path(mountpoint)
        try:
            mode = path.lstat().st_mode
        except FileNotFoundError:
            mode = None
        except OSError as e:
            raise VolumeIOError(f"Cannot stat {mountpoint}: {e}") from e

        if mode is None:
            try:
                path.mkdir(mode=0o755, parents=True, exist_ok=True)
            except OSError as e:
                raise VolumeIOError(f"Cannot create {mountpoint}: {e}") from e
        elif not stat.S_ISDIR(mode):
            raise ConflictError(f"{mountpoint} already exists and it's not a directory")

    def _delete_mountpoint(self, mountpoint: str) -> None:
        path = Path(mountpoint)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
        except OSError as e:
            raise VolumeIOError(f"Failed to delete {mountpoint}: {e}") from e
