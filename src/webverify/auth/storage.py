"""Secure key-value storage backends.

The token store treats its backend as an opaque, durable, access-controlled
key-value store holding raw bytes. Two implementations ship with webverify:

- :class:`FileSecureStorage` -- one file per key under
  ``<data_dir>/secure/``, written atomically with ``0o600`` permissions so
  secrets are never world-readable, even momentarily.
- :class:`MemorySecureStorage` -- process-local dictionary, used by tests and
  by hosts that bring their own persistence.

Hosts with a platform keychain can subclass :class:`SecureStorage`.

See Also:
    :class:`~webverify.auth.token_store.TokenStore` -- the only consumer.
"""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from webverify.config import atomic_write, get_data_dir


class SecureStorage(ABC):
    """Abstract byte-oriented key-value store.

    Implementations must make :meth:`set` atomic: a concurrent :meth:`get`
    sees either the previous value or the new one, never a partial write.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for *key*, or ``None`` when absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*. A no-op when the key does not exist."""
        ...


def _safe_filename(key: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", key).strip("-.")
    return name or "default"


class FileSecureStorage(SecureStorage):
    """Store each key in its own ``0o600`` file.

    Args:
        directory: Target directory. Defaults to ``get_data_dir() / "secure"``.

    Example::

        storage = FileSecureStorage(tmp_path)
        storage.set("tokens", b"{}")
        assert storage.get("tokens") == b"{}"
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = Path(directory) if directory is not None else get_data_dir() / "secure"

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """The file backing *key*."""
        return self._directory / f"{_safe_filename(key)}.bin"

    def get(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        atomic_write(self.path_for(key), value, mode=0o600)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class MemorySecureStorage(SecureStorage):
    """In-memory :class:`SecureStorage`; contents vanish with the process."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
