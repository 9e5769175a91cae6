"""
Tests for StateStore - loading and atomically saving the volume snapshot.
"""

import json
from unittest.mock import patch

import pytest

from onedata_volume.errors import CorruptStateError, VolumeIOError
from onedata_volume.state_store import StateStore
from onedata_volume.volume import VolumeRecord


def temp_snapshot_of(state_file):
    return state_file.with_name(state_file.name + ".tmp")


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "onedata-state.json"


@pytest.fixture
def store(state_file):
    return StateStore(state_file)


@pytest.fixture
def records():
    """Two volumes sharing credentials, one mounted."""
    return {
        "v1": VolumeRecord(
            name="v1",
            provider_host="h",
            access_token="t",
            mountpoint="/plugins/volumes/aaaa",
            mount_options=["ro"],
            tuning={"write-buffer-flush-delay": "5"},
            connections=3,
        ),
        "v2": VolumeRecord(
            name="v2",
            provider_host="h",
            access_token="t",
            mountpoint="/plugins/volumes/aaaa",
            port="6665",
            insecure=True,
        ),
    }


class TestStateStoreLoad:
    """Test loading persisted state."""

    def test_missing_file_is_empty(self, store):
        """Test fresh install yields an empty mapping."""
        assert store.load() == {}

    def test_invalid_json(self, store, state_file):
        """Test unparsable file is fatal."""
        state_file.write_text("{not json")

        with pytest.raises(CorruptStateError, match="not valid JSON"):
            store.load()

    def test_truncated_file(self, store, state_file, records):
        """Test a torn write is detected rather than partially loaded."""
        store.save(records)
        state_file.write_text(state_file.read_text()[:40])

        with pytest.raises(CorruptStateError):
            store.load()

    def test_invalid_utf8(self, store, state_file):
        """Test a file that is not UTF-8 text is reported as corrupt."""
        state_file.write_bytes(b'{"volumes": {"\xff\xfe": {}}}')

        with pytest.raises(CorruptStateError):
            store.load()

    @pytest.mark.parametrize("content", ["[]", "null", '{"version": "1.0"}', '{"volumes": []}'])
    def test_wrong_shape(self, store, state_file, content):
        """Test valid JSON with the wrong structure is fatal."""
        state_file.write_text(content)

        with pytest.raises(CorruptStateError):
            store.load()

    def test_invalid_record(self, store, state_file, records):
        """Test a single bad record rejects the whole file."""
        store.save(records)
        data = json.loads(state_file.read_text())
        data["volumes"]["v2"]["connections"] = -5
        state_file.write_text(json.dumps(data))

        with pytest.raises(CorruptStateError, match="v2"):
            store.load()

    def test_unknown_version_still_loads(self, store, state_file, records):
        """Test unknown version is tolerated."""
        store.save(records)
        data = json.loads(state_file.read_text())
        data["version"] = "2.0"
        state_file.write_text(json.dumps(data))

        assert set(store.load()) == {"v1", "v2"}


class TestStateStoreSave:
    """Test saving state."""

    def test_round_trip(self, store, records):
        """Test save then load reproduces the records exactly."""
        store.save(records)

        assert store.load() == records

    def test_file_format(self, store, state_file, records):
        """Test serialized layout."""
        store.save(records)

        data = json.loads(state_file.read_text())
        assert data["version"] == "1.0"
        assert data["volumes"]["v1"] == {
            "host": "h",
            "port": "5555",
            "token": "t",
            "insecure": False,
            "options": ["ro"],
            "tuning": {"write-buffer-flush-delay": "5"},
            "mountpoint": "/plugins/volumes/aaaa",
            "connections": 3,
        }

    def test_save_replaces_previous_snapshot(self, store, records):
        """Test removed volumes disappear from the file."""
        store.save(records)
        del records["v1"]
        store.save(records)

        assert set(store.load()) == {"v2"}

    def test_atomic_save(self, store, state_file, records):
        """Test no temporary file is left behind."""
        store.save(records)

        assert state_file.exists()
        assert not temp_snapshot_of(state_file).exists()
        assert not state_file.with_suffix(".tmp").exists()

    def test_temporary_file_name(self, store, state_file, records):
        """Test the temporary snapshot sits next to the target with a .tmp suffix appended."""
        written = []
        real_open = open

        def recording_open(path, *args, **kwargs):
            written.append(path)
            return real_open(path, *args, **kwargs)

        with patch("onedata_volume.state_store.open", side_effect=recording_open, create=True):
            store.save(records)

        assert written == [temp_snapshot_of(state_file)]

    def test_creates_parent_directory(self, tmp_path, records):
        """Test the state directory is created on first save."""
        store = StateStore(tmp_path / "nested" / "onedata-state.json")

        store.save(records)

        assert store.load() == records

    def test_failed_write_keeps_old_snapshot(self, store, state_file, records):
        """Test a failed write leaves the previous file intact."""
        store.save(records)
        before = state_file.read_text()

        with patch("onedata_volume.state_store.json.dump", side_effect=OSError("disk full")):
            with pytest.raises(VolumeIOError, match="disk full"):
                store.save({})

        assert state_file.read_text() == before
        assert not temp_snapshot_of(state_file).exists()
