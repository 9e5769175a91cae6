"""
oneclient process execution.

The lifecycle manager only sees the ExternalMountExecutor interface; the
default implementation runs oneclient with an argument list through
subprocess, never through a shell.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import DEFAULT_MOUNT_TIMEOUT, DEFAULT_ONECLIENT
from .volume import build_unmount_command

logger = logging.getLogger(__name__)


@dataclass
class MountOutcome:
    """Result of a single oneclient invocation."""

    returncode: Optional[int]  # None when the process never ran to completion
    output: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        """Human-readable failure description for error responses."""
        if self.returncode is None:
            return self.output or "oneclient could not be run"
        detail = f": {self.output}" if self.output else ""
        return f"oneclient exited with status {self.returncode}{detail}"


def redact_token(args: Sequence[str]) -> List[str]:
    """Copy of args with the value following -t masked, for logging."""
    redacted = list(args)
    for i, arg in enumerate(redacted[:-1]):
        if arg == "-t":
            redacted[i + 1] = "***"
    return redacted


class ExternalMountExecutor(ABC):
    """Runs the external mount and unmount actions."""

    @abstractmethod
    def mount(self, args: Sequence[str]) -> MountOutcome:
        """Mount using the arguments from build_mount_command."""

    @abstractmethod
    def unmount(self, mountpoint: str) -> MountOutcome:
        """Unmount the filesystem at mountpoint."""


class OneclientExecutor(ExternalMountExecutor):
    """Invokes the oneclient binary as a child process."""

    def __init__(self, binary: str = DEFAULT_ONECLIENT, timeout: float = DEFAULT_MOUNT_TIMEOUT):
        """
        Args:
            binary: oneclient executable name or path
            timeout: Seconds to wait for each invocation
        """
        self.binary = binary
        self.timeout = timeout

    def mount(self, args: Sequence[str]) -> MountOutcome:
        return self._run([self.binary, *args])

    def unmount(self, mountpoint: str) -> MountOutcome:
        return self._run([self.binary, *build_unmount_command(mountpoint)])

    def _run(self, cmd: List[str]) -> MountOutcome:
        logger.debug(" ".join(redact_token(cmd)))

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"{self.binary} timed out after {self.timeout}s")
            return MountOutcome(None, f"{self.binary} timed out after {self.timeout}s")
        except OSError as e:
            logger.error(f"Failed to run {self.binary}: {e}")
            return MountOutcome(None, f"Failed to run {self.binary}: {e}")

        output = (result.stderr or result.stdout or "").strip()
        if result.returncode != 0:
            logger.error(f"{self.binary} failed with status {result.returncode}: {output}")
        return MountOutcome(result.returncode, output)
