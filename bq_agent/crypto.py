"""AES-256-GCM envelope for the persisted settings document.

Key source precedence:
    1. ``BQ_AGENT_CREDENTIAL_KEY`` (base64-encoded 32-byte key, via AppConfig)
    2. key file next to the settings document, generated on first use

Envelope format: ``{"v": 1, "alg": "AES-256-GCM", "nonce": "<b64>", "ct": "<b64>"}``.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import platform
import stat
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import StoreError
from .utils import log_event


KEY_FILENAME = ".bq_agent_key"
_CURRENT_VERSION = 1
_ALGORITHM = "AES-256-GCM"
_REQUIRED_KEY_LENGTH = 32


def decode_key(encoded: str) -> bytes:
    try:
        key = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise StoreError(f"BQ_AGENT_CREDENTIAL_KEY contains invalid base64: {exc}") from exc
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise StoreError(
            f"BQ_AGENT_CREDENTIAL_KEY has invalid length {len(key)} (expected {_REQUIRED_KEY_LENGTH})"
        )
    return key


def get_or_create_key(key_dir: Path, encoded: str | None = None) -> bytes:
    if encoded:
        return decode_key(encoded)

    key_dir.mkdir(parents=True, exist_ok=True)
    key_path = key_dir / KEY_FILENAME
    if key_path.exists():
        key = key_path.read_bytes()
        if len(key) != _REQUIRED_KEY_LENGTH:
            raise StoreError(
                f"Key file {key_path} has invalid length {len(key)} (expected {_REQUIRED_KEY_LENGTH}). "
                "Delete the file and the settings document to start over."
            )
        return key

    key = os.urandom(_REQUIRED_KEY_LENGTH)
    try:
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        # another process created it between the exists() check and open()
        return get_or_create_key(key_dir)
    try:
        os.write(fd, key)
    finally:
        os.close(fd)
    if platform.system() != "Windows":
        os.chmod(key_path, stat.S_IRUSR | stat.S_IWUSR)
    log_event("credential_key_created", path=str(key_path))
    return key


def encrypt_document(document: dict, key: bytes, aad: str = "") -> str:
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise StoreError(f"Encryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes (got {len(key)})")
    nonce = os.urandom(12)
    plaintext = json.dumps(document, sort_keys=True).encode("utf-8")
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad.encode("utf-8") if aad else None)
    envelope = {
        "v": _CURRENT_VERSION,
        "alg": _ALGORITHM,
        "nonce": base64.b64encode(nonce).decode("ascii"),
        "ct": base64.b64encode(ciphertext).decode("ascii"),
    }
    return json.dumps(envelope)


def decrypt_document(encrypted: str, key: bytes, aad: str = "") -> dict:
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise StoreError(f"Decryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes (got {len(key)})")
    try:
        envelope = json.loads(encrypted)
    except (json.JSONDecodeError, TypeError) as exc:
        raise StoreError(f"Invalid settings envelope: {exc}") from exc
    if not isinstance(envelope, dict):
        raise StoreError("Invalid settings envelope: expected a JSON object")
    if envelope.get("v") != _CURRENT_VERSION:
        raise StoreError(f"Unsupported settings envelope version {envelope.get('v')}")
    if envelope.get("alg") != _ALGORITHM:
        raise StoreError(f"Unsupported settings algorithm '{envelope.get('alg')}'")

    try:
        nonce = base64.b64decode(envelope["nonce"], validate=True)
        ciphertext = base64.b64decode(envelope["ct"], validate=True)
    except (KeyError, TypeError, binascii.Error) as exc:
        raise StoreError(f"Invalid settings envelope fields: {exc}") from exc

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, aad.encode("utf-8") if aad else None)
    except InvalidTag as exc:
        raise StoreError("Settings document could not be decrypted (wrong key or tampered file)") from exc

    document = json.loads(plaintext.decode("utf-8"))
    if not isinstance(document, dict):
        raise StoreError("Settings document is not a JSON object")
    return document
