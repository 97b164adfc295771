from __future__ import annotations

import base64
import os
from pathlib import Path

import pytest

from bq_agent.crypto import KEY_FILENAME, decode_key, get_or_create_key
from bq_agent.errors import StoreError
from bq_agent.store import EncryptedFileStore, MemoryStore


def test_memory_store_get_set_delete() -> None:
    store = MemoryStore({"projectId": "p"})
    assert store.get("projectId") == "p"
    assert store.get("datasetId", "") == ""
    store.set_many({"datasetId": "d", "authMethod": "browser"})
    store.delete("projectId")
    assert store.snapshot() == {"datasetId": "d", "authMethod": "browser"}


def test_encrypted_store_round_trip(tmp_path: Path) -> None:
    key = os.urandom(32)
    path = tmp_path / "settings.json"
    store = EncryptedFileStore(path, key)
    store.set("geminiKey", "super-secret-key")
    store.set_many({"projectId": "acme", "datasetId": "telephony"})

    assert "super-secret-key" not in path.read_text(encoding="utf-8")
    reopened = EncryptedFileStore(path, key)
    assert reopened.get("geminiKey") == "super-secret-key"
    assert reopened.get("projectId") == "acme"

    reopened.delete("geminiKey")
    assert EncryptedFileStore(path, key).get("geminiKey") is None


def test_encrypted_store_missing_file_is_empty(tmp_path: Path) -> None:
    store = EncryptedFileStore(tmp_path / "nested" / "settings.json", os.urandom(32))
    assert store.get("projectId") is None


def test_encrypted_store_rejects_wrong_key(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    EncryptedFileStore(path, os.urandom(32)).set("projectId", "acme")
    with pytest.raises(StoreError, match="could not be decrypted"):
        EncryptedFileStore(path, os.urandom(32)).get("projectId")


def test_encrypted_store_rejects_garbage(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("not json", encoding="utf-8")
    with pytest.raises(StoreError, match="Invalid settings envelope"):
        EncryptedFileStore(path, os.urandom(32)).get("projectId")


def test_key_file_is_created_once(tmp_path: Path) -> None:
    first = get_or_create_key(tmp_path)
    second = get_or_create_key(tmp_path)
    assert first == second
    assert len(first) == 32
    assert (tmp_path / KEY_FILENAME).read_bytes() == first


def test_env_key_must_be_valid(tmp_path: Path) -> None:
    key = os.urandom(32)
    assert get_or_create_key(tmp_path, base64.b64encode(key).decode()) == key
    assert not (tmp_path / KEY_FILENAME).exists()
    with pytest.raises(StoreError, match="invalid base64"):
        decode_key("***")
    with pytest.raises(StoreError, match="invalid length"):
        decode_key(base64.b64encode(b"short").decode())
