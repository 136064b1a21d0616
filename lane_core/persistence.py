"""Persistence providers for the serialized run state.

A provider stores opaque bytes.  Both implementations understand a legacy
location that is only ever read, never written; the session writes whatever
it recovered from there through to the primary location.
"""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol, Union

log = logging.getLogger(__name__)


class PersistenceProvider(Protocol):
    loaded_from_legacy: bool

    def load(self) -> Optional[bytes]: ...

    def save(self, data: bytes) -> None: ...

    def clear(self) -> None: ...


class MemoryPersistence:
    def __init__(self, data: Optional[bytes] = None, legacy: Optional[bytes] = None):
        self.data = data
        self.legacy = legacy
        self.loaded_from_legacy = False
        self.saves = 0

    def load(self) -> Optional[bytes]:
        self.loaded_from_legacy = False
        if self.data is not None:
            return self.data
        if self.legacy is not None:
            self.loaded_from_legacy = True
            return self.legacy
        return None

    def save(self, data: bytes) -> None:
        self.data = bytes(data)
        self.saves += 1

    def clear(self) -> None:
        self.data = None
        self.legacy = None


class FilePersistence:
    """Atomic JSON-on-disk storage (tmp file, then ``os.replace``)."""

    def __init__(self, path: Union[str, Path], legacy_path: Union[str, Path, None] = None):
        self.path = Path(path)
        self.legacy_path = Path(legacy_path) if legacy_path else None
        self.loaded_from_legacy = False
        self._lock = threading.Lock()

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            log.warning("could not read %s: %s", path, exc)
            return None

    def load(self) -> Optional[bytes]:
        self.loaded_from_legacy = False
        data = self._read(self.path)
        if data is not None:
            return data
        if self.legacy_path is not None:
            data = self._read(self.legacy_path)
            if data is not None:
                log.info("loaded run state from legacy location %s", self.legacy_path)
                self.loaded_from_legacy = True
            return data
        return None

    def save(self, data: bytes) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_bytes(data)
            os.replace(tmp, self.path)

    def clear(self) -> None:
        with self._lock:
            for p in (self.path, self.legacy_path):
                if p is None or not p.exists():
                    continue
                try:
                    p.unlink()
                except OSError as exc:
                    log.warning("could not remove %s: %s", p, exc)
