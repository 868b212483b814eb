"""Slot-bounded persistence of save records on a plain key/value backend.

Layout on the backend::

    SaveTimes                      -> "t1,t2,t3"   (oldest first)
    GameSave_<timestamp>           -> JSON of one SaveRecord

Only ``max_slots`` saves are kept; saving past the limit evicts the oldest.
"""
from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import quote

from .codec import decode_record, encode_record
from .errors import CorruptSaveError, SaveError, SaveNotFound
from .paths import ensure_dir
from .records import SaveRecord

logger = logging.getLogger(__name__)


class KeyValueBackend(ABC):
    """Abstract string key/value storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the key; absent keys are ignored."""

    def has(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryBackend(KeyValueBackend):
    """Test/deterministic backend that holds data in memory only."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


def atomic_write_text(path: Path, text: str) -> None:
    """Write text through a temporary file so a crash never leaves a half-written save."""
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name, dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


class FileBackend(KeyValueBackend):
    """One UTF-8 text file per key under ``root``.

    Keys are percent-encoded into file names, so ``:`` (not allowed on every
    platform) becomes ``%3A`` and distinct keys never share a file.
    """

    SUFFIX = ".txt"

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        ensure_dir(self.root)

    def path_for(self, key: str) -> Path:
        safe = quote(key, safe=" -_.")
        return self.root / f"{safe}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptSaveError(f"{path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise SaveError(f"Could not read {path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            atomic_write_text(path, value)
        except OSError as exc:
            logger.exception("Failed to write %s", path)
            raise SaveError(f"Could not write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class SaveStore:
    """Bounded, ordered collection of saves keyed by timestamp."""

    def __init__(
        self,
        backend: KeyValueBackend,
        max_slots: int = 3,
        *,
        prefix: str = "GameSave_",
        index_key: str = "SaveTimes",
    ) -> None:
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")
        self.backend = backend
        self.max_slots = max_slots
        self.prefix = prefix
        self.index_key = index_key

    def key_for(self, timestamp: str) -> str:
        return f"{self.prefix}{timestamp}"

    def _read_index(self) -> List[str]:
        raw = self.backend.get(self.index_key) or ""
        return [t for t in (part.strip() for part in raw.split(",")) if t]

    def _write_index(self, timestamps: List[str]) -> None:
        self.backend.set(self.index_key, ",".join(timestamps))

    def save(self, record: SaveRecord) -> str:
        """Persist ``record`` under its timestamp and return that timestamp.

        Re-saving an existing timestamp overwrites it and makes it the newest.
        """
        timestamp = record.save_timestamp
        if not timestamp:
            raise ValueError("record has no save_timestamp")
        if "," in timestamp:
            raise ValueError(f"Timestamp may not contain ',': {timestamp!r}")
        self.backend.set(self.key_for(timestamp), encode_record(record))

        index = [t for t in self._read_index() if t != timestamp]
        index.append(timestamp)
        while len(index) > self.max_slots:
            oldest = index.pop(0)
            self.backend.delete(self.key_for(oldest))
            logger.info("Evicted oldest save %s", oldest)
        self._write_index(index)
        logger.info("Saved game %s (%d/%d slots used)", timestamp, len(index), self.max_slots)
        return timestamp

    def load(self, timestamp: str) -> SaveRecord:
        text = self.backend.get(self.key_for(timestamp))
        if text is None:
            raise SaveNotFound(f"No save found for {timestamp!r}")
        record = decode_record(text)
        logger.info("Loaded save %s (scene %s)", timestamp, record.scene_identifier)
        return record

    def list_timestamps(self) -> List[str]:
        """Timestamps with data, oldest first. Dangling index entries are pruned."""
        index = self._read_index()
        present = [t for t in index if self.backend.has(self.key_for(t))]
        if len(present) != len(index):
            logger.warning("Dropping %d index entries without save data", len(index) - len(present))
            self._write_index(present)
        return list(present)

    def has(self, timestamp: str) -> bool:
        return self.backend.has(self.key_for(timestamp))

    def latest(self) -> Optional[str]:
        timestamps = self.list_timestamps()
        return timestamps[-1] if timestamps else None

    def delete(self, timestamp: str) -> bool:
        """Remove a save; returns False when it did not exist."""
        existed = self.backend.has(self.key_for(timestamp))
        self.backend.delete(self.key_for(timestamp))
        index = self._read_index()
        if timestamp in index:
            index.remove(timestamp)
            self._write_index(index)
        if existed:
            logger.info("Deleted save %s", timestamp)
        return existed
