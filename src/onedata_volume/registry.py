"""
In-memory volume registry.

The registry is the only owner of VolumeRecord instances. Callers work on
records through a transaction (exclusive) or a view (shared), both of
which are only valid inside their ``with`` block.
"""

from contextlib import contextmanager
from typing import Dict, Iterator, List

from .errors import NotFoundError
from .locks import ReadWriteLock
from .state_store import StateStore
from .volume import VolumeRecord


class _Closable:
    def __init__(self, records: Dict[str, VolumeRecord]):
        self._records = records
        self._open = True

    def _close(self) -> None:
        self._open = False

    def _check_open(self) -> None:
        if not self._open:
            raise RuntimeError("registry access outside of its critical section")

    def _lookup(self, name: str) -> VolumeRecord:
        self._check_open()
        try:
            return self._records[name]
        except KeyError:
            raise NotFoundError(f"Volume {name} not found") from None

    def __contains__(self, name: str) -> bool:
        self._check_open()
        return name in self._records


class RegistryView(_Closable):
    """Read-only access under the shared lock. Returns copies."""

    def get(self, name: str) -> VolumeRecord:
        return self._lookup(name).copy()

    def records(self) -> List[VolumeRecord]:
        """All records, sorted by name."""
        self._check_open()
        return [self._records[name].copy() for name in sorted(self._records)]


class RegistryTransaction(_Closable):
    """Mutable access under the exclusive lock."""

    def __init__(self, records: Dict[str, VolumeRecord], store: StateStore):
        super().__init__(records)
        self._store = store

    def get(self, name: str) -> VolumeRecord:
        """Live record; mutate it only inside this transaction."""
        return self._lookup(name)

    def others(self, name: str) -> List[VolumeRecord]:
        """Every record except name."""
        self._check_open()
        return [record for key, record in self._records.items() if key != name]

    def insert(self, record: VolumeRecord) -> None:
        self._check_open()
        self._records[record.name] = record

    def delete(self, name: str) -> None:
        self._lookup(name)
        del self._records[name]

    def persist(self) -> None:
        """Write the complete registry to the state store."""
        self._check_open()
        self._store.save(self._records)


class VolumeRegistry:
    """Name -> VolumeRecord mapping guarded by a reader/writer lock."""

    def __init__(self, store: StateStore):
        """
        Initialize the registry from persisted state.

        Args:
            store: State store to load from and persist to

        Raises:
            CorruptStateError: If the persisted state is malformed
        """
        self._store = store
        self._lock = ReadWriteLock()
        self._records: Dict[str, VolumeRecord] = store.load()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)

    @contextmanager
    def read(self) -> Iterator[RegistryView]:
        with self._lock.read():
            view = RegistryView(self._records)
            try:
                yield view
            finally:
                view._close()

    @contextmanager
    def write(self) -> Iterator[RegistryTransaction]:
        with self._lock.write():
            txn = RegistryTransaction(self._records, self._store)
            try:
                yield txn
            finally:
                txn._close()
