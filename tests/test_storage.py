"""
Unit tests for the Secure State Store.

Tests:
- Encrypted save/load round trip
- Wrong key and tampering
- Version mismatch handling
- Failure absorption
- File backend
"""

import pytest
from chainwallet.storage.secure_store import (
    BLOCKCHAIN_KEY, HEADER_SIZE, MAGIC_BYTES, MAX_VERSION, VERSION_KEY, WALLET_KEY,
    Envelope, FileBackend, KeyValueBackend, MemoryBackend, PersistenceFailure,
    SecureStateStore, decrypt_payload, derive_storage_key, encrypt_payload
)

FAST = 1000  # PBKDF2 iterations for tests

SNAPSHOT = {
    'address': '0x0123456789abcdef',
    'balance': 10,
    'transactions': [
        {'id': 'a1', 'from': 'system', 'to': '0x0123456789abcdef', 'amount': 10,
         'status': 'confirmed', 'timestamp': '2024-01-01T00:00:00+00:00'},
    ],
}


class BrokenBackend(KeyValueBackend):
    """Backend whose every operation fails with an I/O error."""

    def get(self, key):
        raise OSError("disk unavailable")

    def set_many(self, items):
        raise OSError("disk full")

    def remove_many(self, keys):
        raise OSError("read-only")


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return SecureStateStore(backend, iterations=FAST)


class TestEnvelope:
    """Tests for the encryption primitives."""

    def test_key_derivation(self):
        key = derive_storage_key("secret", iterations=FAST)
        assert len(key) == 32
        assert key == derive_storage_key("secret", iterations=FAST)
        assert key != derive_storage_key("other", iterations=FAST)

    def test_encrypt_decrypt(self):
        key = derive_storage_key("secret", iterations=FAST)
        blob = encrypt_payload(key, {'k': [1, 2]}, version=3)
        assert blob[:4] == MAGIC_BYTES
        assert decrypt_payload(key, blob) == (3, {'k': [1, 2]})

    def test_fresh_nonce_per_write(self):
        key = derive_storage_key("secret", iterations=FAST)
        assert encrypt_payload(key, SNAPSHOT) != encrypt_payload(key, SNAPSHOT)

    def test_header_is_authenticated(self):
        """Rewriting the version in the header breaks decryption."""
        key = derive_storage_key("secret", iterations=FAST)
        blob = bytearray(encrypt_payload(key, SNAPSHOT, version=1))
        blob[HEADER_SIZE - 1] ^= 0x02
        with pytest.raises(PersistenceFailure):
            decrypt_payload(key, bytes(blob))

    @pytest.mark.parametrize("data", [b"", b"CWLT", b"XXXX" + b"\x00" * 40])
    def test_malformed_envelope(self, data):
        with pytest.raises(PersistenceFailure):
            Envelope.from_bytes(data)

    def test_unserializable_payload(self):
        key = derive_storage_key("secret", iterations=FAST)
        with pytest.raises(PersistenceFailure):
            encrypt_payload(key, {'bad': object()})

    @pytest.mark.parametrize("version", [-1, MAX_VERSION + 1, 70000])
    def test_version_outside_header_range(self, version):
        key = derive_storage_key("secret", iterations=FAST)
        with pytest.raises(PersistenceFailure):
            encrypt_payload(key, SNAPSHOT, version=version)

    def test_largest_version_fits(self):
        key = derive_storage_key("secret", iterations=FAST)
        blob = encrypt_payload(key, SNAPSHOT, version=MAX_VERSION)
        assert decrypt_payload(key, blob) == (MAX_VERSION, SNAPSHOT)


class TestWalletSnapshot:
    """Tests for wallet save/load."""

    @pytest.mark.parametrize("version", [-1, MAX_VERSION + 1, 70000])
    def test_store_rejects_unrepresentable_version(self, version):
        """A version the envelope header cannot hold is refused up front."""
        with pytest.raises(ValueError):
            SecureStateStore(MemoryBackend(), iterations=FAST, version=version)

    def test_round_trip(self, store):
        assert store.save(SNAPSHOT)
        assert store.load() == SNAPSHOT
        assert not store.migration_needed

    def test_absent_returns_none(self, store):
        assert store.load() is None

    def test_stored_encrypted(self, store, backend):
        """Plaintext never reaches the backend."""
        store.save(SNAPSHOT)
        blob = backend.get(WALLET_KEY)
        assert blob.startswith(MAGIC_BYTES)
        assert b"0123456789abcdef" not in blob
        assert b"confirmed" not in blob

    def test_version_key_written(self, store, backend):
        store.save(SNAPSHOT)
        assert backend.get(VERSION_KEY) == b"1"

    def test_overwrite(self, store):
        store.save(SNAPSHOT)
        store.save({'address': SNAPSHOT['address'], 'balance': 0, 'transactions': []})
        assert store.load()['balance'] == 0

    def test_wrong_secret(self, store, backend):
        store.save(SNAPSHOT)
        failures = []
        other = SecureStateStore(
            backend, secret="not-the-secret", iterations=FAST,
            on_failure=lambda op, err: failures.append((op, err))
        )
        assert other.load() is None
        assert len(failures) == 1
        assert failures[0][0] == "wallet load"
        assert isinstance(failures[0][1], PersistenceFailure)

    def test_tampered_blob(self, store, backend):
        store.save(SNAPSHOT)
        blob = bytearray(backend.get(WALLET_KEY))
        blob[-1] ^= 0xFF
        backend.set_many({WALLET_KEY: bytes(blob)})
        assert store.load() is None

    def test_version_mismatch_flags_migration(self, store, backend):
        """Payload is still returned when the stored version differs."""
        store.save(SNAPSHOT)
        newer = SecureStateStore(backend, iterations=FAST, version=2)
        assert newer.load() == SNAPSHOT
        assert newer.migration_needed

    def test_unparsable_version_key(self, store, backend):
        store.save(SNAPSHOT)
        backend.set_many({VERSION_KEY: b"v-one"})
        assert store.load() == SNAPSHOT
        assert store.migration_needed

    def test_missing_version_key_uses_envelope(self, store, backend):
        store.save(SNAPSHOT)
        backend.remove_many([VERSION_KEY])
        assert store.load() == SNAPSHOT
        assert not store.migration_needed


class TestFailureAbsorption:
    """Persistence failures are reported, never raised."""

    def test_save_failure(self):
        failures = []
        store = SecureStateStore(
            BrokenBackend(), iterations=FAST,
            on_failure=lambda op, err: failures.append(op)
        )
        assert store.save(SNAPSHOT) is False
        assert store.save_ledger({'chain': []}) is False
        assert failures == ["wallet save", "blockchain save"]

    def test_load_failure(self):
        store = SecureStateStore(BrokenBackend(), iterations=FAST)
        assert store.load() is None
        assert store.load_ledger() is None

    def test_clear_failure(self):
        store = SecureStateStore(BrokenBackend(), iterations=FAST)
        assert store.clear() is False

    def test_unserializable_snapshot(self, store):
        assert store.save({'address': object()}) is False
        assert store.load() is None

    def test_failing_callback_is_optional(self, store, backend):
        """Without a callback the failure is only logged."""
        backend.set_many({WALLET_KEY: b"garbage"})
        assert store.on_failure is None
        assert store.load() is None


class TestLedgerSnapshotAndClear:
    """Tests for ledger persistence and reset."""

    def test_ledger_round_trip(self, store, backend):
        data = {'difficulty': 2, 'mining_reward': 10, 'chain': [], 'pending': []}
        assert store.save_ledger(data)
        assert backend.get(BLOCKCHAIN_KEY) is not None
        assert store.load_ledger() == data

    def test_ledger_absent(self, store):
        assert store.load_ledger() is None

    def test_clear_removes_everything(self, store, backend):
        store.save(SNAPSHOT)
        store.save_ledger({'chain': []})
        assert store.clear()
        assert backend.keys() == []
        assert store.load() is None
        assert store.load_ledger() is None


class TestFileBackend:
    """Tests for the directory backend."""

    def test_persists_across_instances(self, tmp_path):
        first = SecureStateStore(FileBackend(tmp_path), iterations=FAST)
        assert first.save(SNAPSHOT)

        second = SecureStateStore(FileBackend(tmp_path), iterations=FAST)
        assert second.load() == SNAPSHOT

    def test_one_file_per_key(self, tmp_path):
        store = SecureStateStore(FileBackend(tmp_path), iterations=FAST)
        store.save(SNAPSHOT)
        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == sorted([f"{WALLET_KEY}.bin", f"{VERSION_KEY}.bin"])

    def test_creates_directory(self, tmp_path):
        backend = FileBackend(tmp_path / "nested" / "wallet")
        assert backend.directory.is_dir()
        assert backend.get(WALLET_KEY) is None

    def test_clear(self, tmp_path):
        store = SecureStateStore(FileBackend(tmp_path), iterations=FAST)
        store.save(SNAPSHOT)
        assert store.clear()
        assert list(tmp_path.iterdir()) == []
