"""
Shared fixtures for the volume plugin tests.
"""

from typing import List, Sequence

import pytest

from onedata_volume.driver import VolumeDriver
from onedata_volume.executor import ExternalMountExecutor, MountOutcome
from onedata_volume.registry import VolumeRegistry
from onedata_volume.state_store import StateStore


class RecordingExecutor(ExternalMountExecutor):
    """Executor that records calls instead of running oneclient."""

    def __init__(self):
        self.mounts: List[List[str]] = []
        self.unmounts: List[str] = []
        self.mount_outcome = MountOutcome(0)
        self.unmount_outcome = MountOutcome(0)

    def mount(self, args: Sequence[str]) -> MountOutcome:
        self.mounts.append(list(args))
        return self.mount_outcome

    def unmount(self, mountpoint: str) -> MountOutcome:
        self.unmounts.append(mountpoint)
        return self.unmount_outcome


@pytest.fixture
def plugins_root(tmp_path):
    """Temporary Docker plugins directory."""
    root = tmp_path / "plugins"
    root.mkdir()
    return root


@pytest.fixture
def volumes_root(plugins_root):
    return plugins_root / "volumes"


@pytest.fixture
def state_store(plugins_root):
    return StateStore(plugins_root / "onedata-state.json")


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def driver(state_store, executor, volumes_root):
    """VolumeDriver over an empty registry with a recording executor."""
    return VolumeDriver(VolumeRegistry(state_store), executor, volumes_root)
