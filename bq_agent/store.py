"""Persistent key/value store for the configuration record."""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Mapping, Protocol

from .config import AppConfig
from .crypto import decrypt_document, encrypt_document, get_or_create_key


class SettingsStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def set_many(self, values: Mapping[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store, used by tests and embedded callers."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def set_many(self, values: Mapping[str, Any]) -> None:
        self._data.update(values)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._data)


class EncryptedFileStore:
    """Whole-document store encrypted with AES-256-GCM.

    The document path is bound as associated data, so a settings file copied
    to another location does not decrypt. Every write replaces the file
    atomically.
    """

    def __init__(self, path: Path, key: bytes) -> None:
        self._path = Path(path)
        self._key = key
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> "EncryptedFileStore":
        key = get_or_create_key(config.data_dir, config.credential_key)
        return cls(config.settings_path, key)

    @property
    def path(self) -> Path:
        return self._path

    def _aad(self) -> str:
        return str(self._path.resolve())

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        return decrypt_document(self._path.read_text(encoding="utf-8"), self._key, self._aad())

    def _write(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = encrypt_document(document, self._key, self._aad())
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".settings-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            document = self._read()
            document.update(values)
            self._write(document)

    def delete(self, key: str) -> None:
        with self._lock:
            document = self._read()
            if key in document:
                del document[key]
                self._write(document)
