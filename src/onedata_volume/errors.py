"""
Error kinds raised by the volume lifecycle manager.

Every operation error is a VolumeError. The driver converts them into
error responses at its boundary; only CorruptStateError escapes, at
startup.
"""


class VolumeError(Exception):
    """Base class for volume plugin errors."""


class ValidationError(VolumeError):
    """Bad, missing or unknown creation option."""


class NotFoundError(VolumeError):
    """Unknown volume name."""


class ConflictError(VolumeError):
    """Volume still in use, or mountpoint occupied by a non-directory."""


class ExternalToolError(VolumeError):
    """oneclient mount or unmount invocation failed."""


class VolumeIOError(VolumeError):
    """Filesystem or state file I/O failure."""


class CorruptStateError(VolumeError):
    """Persisted state exists but cannot be trusted."""
