# ZenSync File Store
# Snapshot persistence to a single JSON document on disk

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from zensync.errors import StorageFailure
from zensync.sync.store import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "snapshot.json"


def get_default_data_dir() -> Path:
    """Default directory for cached data."""
    return Path.home() / ".config" / "zensync"


class FileSnapshotStore(SnapshotStore):
    """
    Stores the snapshot as JSON under a data directory.

    Every commit writes a temporary file next to the target and renames it
    into place, so the file on disk always holds a complete batch.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize file store.

        Args:
            data_dir: Directory for the snapshot file. Defaults to ~/.config/zensync
        """
        self.data_dir = Path(data_dir).expanduser() if data_dir else get_default_data_dir()
        self.snapshot_path = self.data_dir / SNAPSHOT_FILE
        super().__init__(self.load())

    def load(self) -> Snapshot:
        """Load snapshot from file. A missing or unreadable file yields an empty snapshot."""
        if not self.snapshot_path.exists():
            return Snapshot()

        try:
            with open(self.snapshot_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", self.snapshot_path, e)
            return Snapshot()

        if not isinstance(data, dict):
            logger.warning("Ignoring snapshot %s: unexpected top-level value", self.snapshot_path)
            return Snapshot()

        try:
            return Snapshot.from_dict(data)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring invalid snapshot %s: %s", self.snapshot_path, e)
            return Snapshot()

    def _persist(self, snapshot: Snapshot) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".snapshot-", suffix=".tmp", dir=self.data_dir)
        except OSError as e:
            raise StorageFailure(f"Cannot write to {self.data_dir}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.snapshot_path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageFailure(f"Failed to write snapshot {self.snapshot_path}: {e}") from e

        logger.debug("Snapshot written to %s (checkpoint %d)", self.snapshot_path, snapshot.checkpoint)
