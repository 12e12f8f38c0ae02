"""Persistence boundary for clip audio.

The engine only needs ``load``, ``save`` and ``delete`` keyed by sound ID;
any key-value store can implement :class:`SoundStore`.
"""

from __future__ import annotations

import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class SoundStore(ABC):

    @abstractmethod
    def load(self, sound_id: str) -> bytes | None:
        """Return the stored bytes, or None when nothing is stored."""
        ...

    @abstractmethod
    def save(self, sound_id: str, data: bytes) -> None:
        ...

    @abstractmethod
    def delete(self, sound_id: str) -> None:
        """Remove *sound_id*.  Missing IDs are ignored."""
        ...

    @abstractmethod
    def ids(self) -> list[str]:
        ...


class MemoryStore(SoundStore):
    """In-process store, mostly for tests and scratch sessions."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def load(self, sound_id: str) -> bytes | None:
        with self._lock:
            return self._data.get(sound_id)

    def save(self, sound_id: str, data: bytes) -> None:
        with self._lock:
            self._data[sound_id] = bytes(data)

    def delete(self, sound_id: str) -> None:
        with self._lock:
            self._data.pop(sound_id, None)

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class DirectoryStore(SoundStore):
    """One ``<id>.wav`` file per sound inside *root*."""

    SUFFIX = ".wav"

    def __init__(self, root: str) -> None:
        self.root = root
        os.makedirs(root, exist_ok=True)

    def _path(self, sound_id: str) -> str:
        if not _SAFE_ID.match(sound_id):
            raise ValueError(f"Invalid sound ID: {sound_id!r}")
        return os.path.join(self.root, sound_id + self.SUFFIX)

    def load(self, sound_id: str) -> bytes | None:
        path = self._path(sound_id)
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def save(self, sound_id: str, data: bytes) -> None:
        path = self._path(sound_id)
        # Readers never see a partial clip: write a temp file, then rename
        fd, tmp = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def delete(self, sound_id: str) -> None:
        path = self._path(sound_id)
        if os.path.isfile(path):
            os.remove(path)

    def ids(self) -> list[str]:
        return sorted(
            name[:-len(self.SUFFIX)]
            for name in os.listdir(self.root)
            if name.endswith(self.SUFFIX)
        )
