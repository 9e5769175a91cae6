"""
Reader/writer lock guarding the volume registry.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """Multiple readers OR one writer.

    The first reader in takes the writer lock and the last reader out
    releases it, so a plain Lock (releasable from any thread) is used for
    writers. Neither side is reentrant. Writers may starve if readers
    dominate, which is acceptable for a control-plane registry.
    """

    def __init__(self) -> None:
        self._readers = 0
        self._read_ready = threading.Lock()
        self._write_ready = threading.Lock()

    def acquire_read(self) -> None:
        with self._read_ready:
            self._readers += 1
            if self._readers == 1:
                self._write_ready.acquire()

    def release_read(self) -> None:
        with self._read_ready:
            if self._readers == 0:
                raise RuntimeError("release_read without matching acquire_read")
            self._readers -= 1
            if self._readers == 0:
                self._write_ready.release()

    def acquire_write(self) -> None:
        self._write_ready.acquire()

    def release_write(self) -> None:
        self._write_ready.release()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold a shared lock for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the exclusive lock for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
