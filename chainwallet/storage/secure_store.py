"""
Secure State Store

Encrypted persistence of the wallet snapshot and, optionally, the ledger
snapshot in a device-local key/value store.

Implements:
- PBKDF2 key derivation from the application secret (once per store)
- AES-256-GCM encryption with a fresh random nonce per write
- Versioned envelope, with the header bound as associated data
- Pluggable key/value backends (in-memory, one-file-per-key directory)

Persistence failures never escape `save`, `load` or `clear`: they are
logged, reported to the optional failure callback, and the call returns a
falsy result. The in-memory wallet state is never touched by this module.

Envelope Format:
    [magic (4) | version (2) | nonce (12) | ciphertext | tag (16)]

Stored Keys:
    CHAIN_WALLET_DATA      encrypted wallet snapshot
    CHAIN_WALLET_VERSION   format version as ASCII digits
    CHAIN_BLOCKCHAIN_DATA  encrypted ledger snapshot (optional)

Author: ChainWallet Project
"""

import json
import logging
import os
import secrets
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..blockchain.transaction import WalletError
from ..config import (
    PBKDF2_ITERATIONS,
    SECRET_KEY,
    STORAGE_KEYS,
    STORAGE_SALT,
    STORAGE_VERSION,
)

logger = logging.getLogger(__name__)


# Constants
MAGIC_BYTES = b"CWLT"       # ChainWallet
NONCE_SIZE = 12             # 96-bit nonce for GCM
TAG_SIZE = 16               # 128-bit GCM tag
KEY_SIZE = 32               # 256-bit key
HEADER_FORMAT = '>4sH'      # magic, version
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
MAX_VERSION = 0xFFFF        # unsigned 16-bit version field

WALLET_KEY = STORAGE_KEYS['wallet']
VERSION_KEY = STORAGE_KEYS['version']
BLOCKCHAIN_KEY = STORAGE_KEYS['blockchain']
ALL_KEYS = (WALLET_KEY, VERSION_KEY, BLOCKCHAIN_KEY)


class PersistenceFailure(WalletError):
    """Raised inside the store when encryption, decryption or I/O fails."""
    pass


# ============================================================================
# Envelope
# ============================================================================

@dataclass
class Envelope:
    """Encrypted, versioned payload container."""
    version: int
    nonce: bytes
    ciphertext: bytes

    @property
    def header(self) -> bytes:
        return struct.pack(HEADER_FORMAT, MAGIC_BYTES, self.version)

    def to_bytes(self) -> bytes:
        """Serialize envelope to bytes."""
        return self.header + self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Envelope':
        """
        Deserialize envelope from bytes.

        Raises:
            PersistenceFailure: If the data is truncated or not an envelope
        """
        if len(data) < HEADER_SIZE + NONCE_SIZE + TAG_SIZE:
            raise PersistenceFailure("Envelope truncated")

        magic, version = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
        if magic != MAGIC_BYTES:
            raise PersistenceFailure("Not a ChainWallet envelope")

        nonce = data[HEADER_SIZE:HEADER_SIZE + NONCE_SIZE]
        ciphertext = data[HEADER_SIZE + NONCE_SIZE:]
        return cls(version=version, nonce=nonce, ciphertext=ciphertext)


def derive_storage_key(secret: str, salt: bytes = STORAGE_SALT,
                       iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """
    Derive the symmetric storage key using PBKDF2-HMAC-SHA256.

    Args:
        secret: Application secret
        salt: Fixed storage salt
        iterations: PBKDF2 iterations

    Returns:
        32-byte key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret.encode('utf-8'))


def encrypt_payload(key: bytes, payload: Any, version: int = STORAGE_VERSION) -> bytes:
    """
    Serialize and encrypt a JSON-compatible payload.

    Raises:
        PersistenceFailure: If the payload cannot be serialized or the
            version does not fit the header
    """
    if not 0 <= version <= MAX_VERSION:
        raise PersistenceFailure(f"Format version out of range: {version}")
    try:
        plaintext = json.dumps(payload, separators=(',', ':')).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise PersistenceFailure(f"Payload is not serializable: {e}") from e

    envelope = Envelope(version=version, nonce=secrets.token_bytes(NONCE_SIZE), ciphertext=b"")
    envelope.ciphertext = AESGCM(key).encrypt(envelope.nonce, plaintext, envelope.header)
    return envelope.to_bytes()


def decrypt_payload(key: bytes, blob: bytes) -> Tuple[int, Any]:
    """
    Decrypt an envelope.

    Returns:
        Tuple of (envelope version, payload)

    Raises:
        PersistenceFailure: If the envelope is malformed, tampered with or
            encrypted under another key
    """
    envelope = Envelope.from_bytes(blob)
    try:
        plaintext = AESGCM(key).decrypt(envelope.nonce, envelope.ciphertext, envelope.header)
    except InvalidTag as e:
        raise PersistenceFailure("Decryption failed - wrong key or tampered data") from e

    try:
        return envelope.version, json.loads(plaintext.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise PersistenceFailure(f"Corrupted payload: {e}") from e


# ============================================================================
# Key/Value Backends
# ============================================================================

class KeyValueBackend:
    """Opaque byte-string key/value store."""

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def set_many(self, items: Mapping[str, bytes]) -> None:
        raise NotImplementedError

    def remove_many(self, keys: Iterable[str]) -> None:
        raise NotImplementedError


class MemoryBackend(KeyValueBackend):
    """Dictionary-backed store, for tests and ephemeral wallets."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set_many(self, items: Mapping[str, bytes]) -> None:
        self._data.update(items)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class FileBackend(KeyValueBackend):
    """
    One file per key in a directory.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written blob.
    """

    def __init__(self, directory: Union[str, Path]):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.bin"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set_many(self, items: Mapping[str, bytes]) -> None:
        for key, value in items.items():
            fd, tmp_path = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.")
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(value)
                os.replace(tmp_path, self._path(key))
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            path = self._path(key)
            if path.exists():
                path.unlink()


# ============================================================================
# Secure State Store
# ============================================================================

class SecureStateStore:
    """
    Encrypted wallet/ledger persistence over a key/value backend.

    The store knows nothing about ledger semantics: it encrypts and decrypts
    JSON-compatible payloads under fixed keys.

    Example:
        >>> store = SecureStateStore(MemoryBackend())
        >>> store.save({'address': '0xabc', 'balance': 0, 'transactions': []})
        True
        >>> store.load()['address']
        '0xabc'
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        secret: str = SECRET_KEY,
        iterations: int = PBKDF2_ITERATIONS,
        version: int = STORAGE_VERSION,
        on_failure: Optional[Callable[[str, Exception], None]] = None
    ):
        """
        Args:
            backend: Key/value backend (in-memory if omitted)
            secret: Secret the storage key is derived from
            iterations: PBKDF2 iterations
            version: Format version written with every save
            on_failure: Called with (operation, error) on absorbed failures

        Raises:
            ValueError: If the version does not fit the envelope header
        """
        if not 0 <= version <= MAX_VERSION:
            raise ValueError(f"Storage version must be between 0 and {MAX_VERSION}")
        self._backend = backend if backend is not None else MemoryBackend()
        self._key = derive_storage_key(secret, iterations=iterations)
        self._version = version
        self.on_failure = on_failure
        self.migration_needed = False

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    @property
    def version(self) -> int:
        return self._version

    def _report_failure(self, operation: str, error: Exception) -> None:
        logger.error("Error during %s: %s", operation, error)
        if self.on_failure is not None:
            self.on_failure(operation, error)

    # ========================================================================
    # Wallet Snapshot
    # ========================================================================

    def save(self, snapshot: Mapping[str, Any]) -> bool:
        """
        Encrypt and persist the wallet snapshot with the format version.

        Returns:
            True if written; False if the failure was absorbed
        """
        try:
            blob = encrypt_payload(self._key, dict(snapshot), self._version)
            self._backend.set_many({
                WALLET_KEY: blob,
                VERSION_KEY: str(self._version).encode('ascii'),
            })
        except (PersistenceFailure, OSError, TypeError, ValueError) as e:
            self._report_failure("wallet save", e)
            return False

        logger.info("Wallet saved securely.")
        return True

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Load and decrypt the wallet snapshot.

        On a format version mismatch the payload is returned as-is and
        `migration_needed` is set.

        Returns:
            The snapshot, or None if absent or unreadable
        """
        self.migration_needed = False
        try:
            blob = self._backend.get(WALLET_KEY)
            version_blob = self._backend.get(VERSION_KEY)
        except OSError as e:
            self._report_failure("wallet load", e)
            return None

        if blob is None:
            logger.info("No wallet found.")
            return None

        try:
            envelope_version, payload = decrypt_payload(self._key, blob)
        except PersistenceFailure as e:
            self._report_failure("wallet load", e)
            return None

        version = self._parse_version(version_blob, envelope_version)
        if version != self._version:
            self.migration_needed = True
            logger.warning(
                "Wallet version mismatch (found v%d, expected v%d); migration needed",
                version, self._version
            )

        logger.info("Wallet loaded successfully.")
        return payload

    @staticmethod
    def _parse_version(version_blob: Optional[bytes], fallback: int) -> int:
        if version_blob is None:
            return fallback
        try:
            return int(version_blob.decode('ascii'))
        except (UnicodeDecodeError, ValueError):
            return 0

    # ========================================================================
    # Ledger Snapshot
    # ========================================================================

    def save_ledger(self, data: Mapping[str, Any]) -> bool:
        """Encrypt and persist a ledger snapshot."""
        try:
            blob = encrypt_payload(self._key, dict(data), self._version)
            self._backend.set_many({BLOCKCHAIN_KEY: blob})
        except (PersistenceFailure, OSError, TypeError, ValueError) as e:
            self._report_failure("blockchain save", e)
            return False

        logger.info("Blockchain saved securely.")
        return True

    def load_ledger(self) -> Optional[Dict[str, Any]]:
        """Load the ledger snapshot, or None if absent or unreadable."""
        try:
            blob = self._backend.get(BLOCKCHAIN_KEY)
        except OSError as e:
            self._report_failure("blockchain load", e)
            return None

        if blob is None:
            logger.info("No blockchain found.")
            return None

        try:
            _, payload = decrypt_payload(self._key, blob)
        except PersistenceFailure as e:
            self._report_failure("blockchain load", e)
            return None
        return payload

    # ========================================================================
    # Reset
    # ========================================================================

    def clear(self) -> bool:
        """Remove every persisted key."""
        try:
            self._backend.remove_many(ALL_KEYS)
        except OSError as e:
            self._report_failure("clear", e)
            return False

        self.migration_needed = False
        logger.info("Wallet & Blockchain cleared.")
        return True
