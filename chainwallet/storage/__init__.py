# Storage Module
"""
Encrypted persistence of wallet and ledger state:
- PBKDF2 key derivation from the application secret
- AES-256-GCM versioned envelopes
- In-memory and file key/value backends
"""

# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    from . import secure_store
    return getattr(secure_store, name)

__all__ = [
    'SecureStateStore',
    'PersistenceFailure',
    'Envelope',
    'KeyValueBackend',
    'MemoryBackend',
    'FileBackend',
    'derive_storage_key',
    'encrypt_payload',
    'decrypt_payload',
]
