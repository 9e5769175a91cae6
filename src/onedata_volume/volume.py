"""
Volume records, mountpoint derivation and oneclient command construction.
"""

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .config import DEFAULT_PORT
from .errors import ValidationError


# oneclient tuning flags, in the order they are passed on the command line.
# Values are opaque strings handed through to oneclient unchecked.
TUNING_OPTIONS = (
    "buffer-scheduler-thread-count",
    "communicator-thread-count",
    "scheduler-thread-count",
    "storage-helper-thread-count",
    "read-buffer-min-size",
    "read-buffer-max-size",
    "read-buffer-prefetch-duration",
    "write-buffer-min-size",
    "write-buffer-max-size",
    "write-buffer-flush-delay",
)

CONNECTION_OPTIONS = ("host", "token", "port", "insecure", "opt")

OptionValue = Union[str, Iterable[str]]


@dataclass
class VolumeRecord:
    """A named Onedata volume and everything needed to mount it."""

    name: str
    provider_host: str
    access_token: str
    mountpoint: str  # Derived from host + token at creation, never recomputed
    port: str = DEFAULT_PORT
    insecure: bool = False
    mount_options: List[str] = field(default_factory=list)  # FUSE options, ordered, unique
    tuning: Dict[str, str] = field(default_factory=dict)
    connections: int = 0  # Containers currently using the volume

    @property
    def is_mounted(self) -> bool:
        return self.connections > 0

    def copy(self) -> "VolumeRecord":
        """Detached copy safe to hand out of a registry critical section."""
        return VolumeRecord(
            name=self.name,
            provider_host=self.provider_host,
            access_token=self.access_token,
            mountpoint=self.mountpoint,
            port=self.port,
            insecure=self.insecure,
            mount_options=list(self.mount_options),
            tuning=dict(self.tuning),
            connections=self.connections,
        )

    def describe(self) -> Dict[str, str]:
        """Volume descriptor in the plugin protocol's shape."""
        return {"Name": self.name, "Mountpoint": self.mountpoint}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (name is the outer key)."""
        return {
            "host": self.provider_host,
            "port": self.port,
            "token": self.access_token,
            "insecure": self.insecure,
            "options": list(self.mount_options),
            "tuning": dict(self.tuning),
            "mountpoint": self.mountpoint,
            "connections": self.connections,
        }

    @staticmethod
    def from_dict(name: str, data: Mapping[str, Any]) -> "VolumeRecord":
        """Create a VolumeRecord from its serialized form.

        Raises:
            ValueError: If a field is missing or has the wrong type
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"record for {name!r} is not an object")

        def _get(key: str, kind: type) -> Any:
            if key not in data:
                raise ValueError(f"record for {name!r} is missing {key!r}")
            value = data[key]
            # bool is an int subclass; keep connections strictly numeric
            if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
                raise ValueError(f"record for {name!r} has invalid {key!r}: {value!r}")
            return value

        options = _get("options", list)
        if not all(isinstance(opt, str) for opt in options):
            raise ValueError(f"record for {name!r} has non-string mount options")

        tuning = _get("tuning", dict)
        for key, value in tuning.items():
            if key not in TUNING_OPTIONS:
                raise ValueError(f"record for {name!r} has unknown tuning option {key!r}")
            if not isinstance(value, str):
                raise ValueError(f"record for {name!r} has invalid value for {key!r}")

        connections = _get("connections", int)
        if connections < 0:
            raise ValueError(f"record for {name!r} has negative connections: {connections}")

        return VolumeRecord(
            name=name,
            provider_host=_get("host", str),
            access_token=_get("token", str),
            mountpoint=_get("mountpoint", str),
            port=_get("port", str),
            insecure=_get("insecure", bool),
            mount_options=list(options),
            tuning=dict(tuning),
            connections=connections,
        )


def derive_mountpoint(root: Path, provider_host: str, access_token: str) -> Path:
    """Compute the mountpoint for a pair of Onedata credentials.

    The directory name is the MD5 hex digest of host + token, so volumes
    created with the same credentials under different names share one
    mountpoint.

    Args:
        root: Directory holding all mountpoints
        provider_host: Oneprovider hostname or IP address
        access_token: Onedata access token

    Returns:
        root / <32 hex characters>
    """
    digest = hashlib.md5((provider_host + access_token).encode("utf-8")).hexdigest()
    return Path(root) / digest


def _split_options(value: OptionValue) -> List[str]:
    if isinstance(value, str):
        values = [value]
    elif isinstance(value, (list, tuple)) and all(isinstance(chunk, str) for chunk in value):
        values = list(value)
    else:
        raise ValidationError("Option 'opt' must be a string or a list of strings")
    return [item.strip() for chunk in values for item in chunk.split(",") if item.strip()]


def parse_create_options(
    name: str, options: Optional[Mapping[str, OptionValue]], root: Path
) -> VolumeRecord:
    """Build a new VolumeRecord from the options given to Create.

    Args:
        name: Volume name
        options: Option mapping from the create request; ``opt`` may be a
            single comma-joined string or a sequence of them
        root: Directory under which the mountpoint is derived

    Returns:
        VolumeRecord with defaults applied and connections = 0

    Raises:
        ValidationError: Unknown option key, or host/token missing
    """
    host = ""
    token = ""
    port = DEFAULT_PORT
    insecure = False
    mount_options: List[str] = []
    tuning: Dict[str, str] = {}

    for key, value in (options or {}).items():
        if key in CONNECTION_OPTIONS + TUNING_OPTIONS and key != "opt" and not isinstance(value, str):
            raise ValidationError(f"Option {key!r} must be a string")

        if key == "host":
            host = value
        elif key == "token":
            token = value
        elif key == "port":
            port = value or DEFAULT_PORT
        elif key == "insecure":
            insecure = str(value).lower() == "true"
        elif key == "opt":
            for opt in _split_options(value):
                if opt not in mount_options:
                    mount_options.append(opt)
        elif key in TUNING_OPTIONS:
            tuning[key] = value
        else:
            raise ValidationError(f"Unknown option {key!r}")

    if not host:
        raise ValidationError("Oneprovider host must be specified using 'host=' option!")
    if not token:
        raise ValidationError("Access token must be specified using 'token=' option!")

    return VolumeRecord(
        name=name,
        provider_host=host,
        access_token=token,
        mountpoint=str(derive_mountpoint(root, host, token)),
        port=port,
        insecure=insecure,
        mount_options=mount_options,
        tuning=tuning,
    )


def build_mount_command(record: VolumeRecord) -> List[str]:
    """Build oneclient arguments (without the binary) for mounting a volume.

    Optional flags are only emitted when they differ from oneclient's
    defaults; the mountpoint is always last.
    """
    args = ["-H", record.provider_host, "-t", record.access_token]

    if record.port != DEFAULT_PORT:
        args.extend(["-P", record.port])
    if record.insecure:
        args.append("-i")
    if record.mount_options:
        args.extend(["--opt", ",".join(record.mount_options)])

    for option in TUNING_OPTIONS:
        value = record.tuning.get(option)
        if value:
            args.extend([f"--{option}", value])

    args.append(record.mountpoint)
    return args


def build_unmount_command(mountpoint: str) -> List[str]:
    """Build oneclient arguments (without the binary) for unmounting."""
    return ["-u", mountpoint]
