"""
Durable snapshot of all volume records.

The whole registry is rewritten after every mutating operation, so the
file on disk always reflects the last successful operation. Writes go
through a temporary file that is renamed over the target.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping

from .errors import CorruptStateError, VolumeIOError
from .volume import VolumeRecord

logger = logging.getLogger(__name__)


STATE_VERSION = "1.0"


class StateStore:
    """Loads and saves the name -> VolumeRecord mapping as JSON."""

    def __init__(self, state_file: Path):
        """
        Initialize state store.

        Args:
            state_file: Path of the JSON snapshot (created on first save)
        """
        self.state_file = Path(state_file)

    def load(self) -> Dict[str, VolumeRecord]:
        """
        Load all volume records.

        Returns:
            Dictionary mapping volume names to records; empty when the
            state file does not exist yet

        Raises:
            CorruptStateError: If the file exists but cannot be parsed
            VolumeIOError: If the file exists but cannot be read
        """
        if not self.state_file.exists():
            logger.debug(f"No state found at {self.state_file}")
            return {}

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptStateError(f"State file {self.state_file} is not valid JSON: {e}") from e
        except OSError as e:
            raise VolumeIOError(f"Failed to read state file {self.state_file}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("volumes"), dict):
            raise CorruptStateError(f"State file {self.state_file} has no 'volumes' mapping")

        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            logger.warning(f"Unknown state version: {version}")

        records = {}
        for name, record_data in data["volumes"].items():
            try:
                records[name] = VolumeRecord.from_dict(name, record_data)
            except ValueError as e:
                raise CorruptStateError(f"State file {self.state_file}: {e}") from e

        logger.info(f"Loaded {len(records)} volume(s) from {self.state_file}")
        return records

    def save(self, records: Mapping[str, VolumeRecord]) -> None:
        """
        Replace the snapshot with records.

        Args:
            records: Complete name -> VolumeRecord mapping

        Raises:
            VolumeIOError: If the snapshot could not be written
        """
        data: Dict[str, Any] = {
            "version": STATE_VERSION,
            "volumes": {name: record.to_dict() for name, record in records.items()},
        }

        tmp_file = self.state_file.with_name(self.state_file.name + ".tmp")
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(self.state_file)
        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink()
            logger.error(f"Failed to save state to {self.state_file}: {e}")
            raise VolumeIOError(f"Failed to save state: {e}") from e

        logger.debug(f"Saved {len(records)} volume(s) to {self.state_file}")
