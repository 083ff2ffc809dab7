from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Optional

from .errors import BackendUnavailable, NotFound
from .models import AppState, dump_json, load_json


logger = logging.getLogger(__name__)

DEFAULT_DB_FILE = "db.json"


class FileStateStore:
    """
    Local JSON file persistence for `AppState`.

    - Backed by a single pretty-printed JSON file (default `db.json`).
    - Writes are atomic: a temp file in the same directory is fsynced and
      then moved over the target with `os.replace`.
    - Durable only as long as the filesystem is; on ephemeral hosts (Lambda
      `/tmp`, container redeploys) the document does not survive a redeploy.
    """

    name = "file"

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self._path = Path(path) if path else Path(DEFAULT_DB_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppState:
        try:
            data = self._path.read_bytes()
        except FileNotFoundError as ex:
            raise NotFound(f"No state file at {self._path}") from ex
        except OSError as ex:
            raise BackendUnavailable(f"Cannot read state file {self._path}: {ex}") from ex
        return load_json(data)

    def save(self, state: AppState) -> None:
        payload = dump_json(state, indent=2)
        parent = self._path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=parent, prefix=f".{self._path.name}.", suffix=".tmp")
        except OSError as ex:
            raise BackendUnavailable(f"Cannot write state file {self._path}: {ex}") from ex
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
        except OSError as ex:
            try:
                os.remove(tmp)
            except FileNotFoundError:
                pass
            raise BackendUnavailable(f"Cannot write state file {self._path}: {ex}") from ex

    def backup_corrupt(self) -> Optional[Path]:
        """Move the current file aside as `<name>.corrupt-<timestamp>`.

        Returns the backup path, or None if there was no file to move.
        """
        if not self._path.exists():
            return None
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        n = 1
        while backup.exists():
            backup = self._path.with_name(f"{self._path.name}.corrupt-{stamp}-{n}")
            n += 1
        try:
            os.replace(self._path, backup)
        except OSError as ex:
            raise BackendUnavailable(f"Cannot back up corrupt state file {self._path}: {ex}") from ex
        logger.warning("Corrupt state file moved to %s", backup)
        return backup
