"""
Tests for the registry reader/writer lock.
"""

import threading
import time

import pytest

from onedata_volume.locks import ReadWriteLock


class TestReadWriteLock:
    """Test ReadWriteLock semantics across threads."""

    def test_readers_share(self):
        """Test a second thread can read while the first holds a read lock."""
        lock = ReadWriteLock()
        entered = threading.Event()

        def reader():
            with lock.read():
                entered.set()

        with lock.read():
            thread = threading.Thread(target=reader)
            thread.start()
            assert entered.wait(timeout=5)
        thread.join(timeout=5)

    def test_writer_excludes_readers(self):
        """Test a reader waits for the writer to finish."""
        lock = ReadWriteLock()
        events = []

        def reader():
            with lock.read():
                events.append("read")

        with lock.write():
            thread = threading.Thread(target=reader)
            thread.start()
            time.sleep(0.1)
            events.append("write-done")
        thread.join(timeout=5)

        assert events == ["write-done", "read"]

    def test_readers_exclude_writer(self):
        """Test a writer waits for readers released from another thread."""
        lock = ReadWriteLock()
        events = []

        def writer():
            with lock.write():
                events.append("write")

        lock.acquire_read()
        thread = threading.Thread(target=writer)
        thread.start()
        time.sleep(0.1)
        events.append("read-done")

        # Release from a different thread than the one that acquired
        releaser = threading.Thread(target=lock.release_read)
        releaser.start()
        releaser.join(timeout=5)
        thread.join(timeout=5)

        assert events == ["read-done", "write"]

    def test_writers_serialize(self):
        """Test concurrent writers never overlap."""
        lock = ReadWriteLock()
        active = []
        overlaps = []

        def writer():
            for _ in range(50):
                with lock.write():
                    active.append(1)
                    if len(active) > 1:
                        overlaps.append(True)
                    active.pop()

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert overlaps == []

    def test_error_on_extra_release(self):
        """Test extra release raises RuntimeError."""
        lock = ReadWriteLock()
        lock.acquire_read()
        lock.release_read()

        with pytest.raises(RuntimeError, match="without matching acquire_read"):
            lock.release_read()

    def test_lock_released_on_exception(self):
        """Test context managers release on error."""
        lock = ReadWriteLock()

        with pytest.raises(ValueError):
            with lock.write():
                raise ValueError("boom")

        with lock.read():
            pass
        with lock.write():
            pass
