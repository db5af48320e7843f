# Wallet Module
"""
Wallet layer over the ledger:
- Address generation, validation and receive QR codes
- Snapshot sync after every ledger mutation
- Wallet service (composition root) for online and offline transfers
"""

_EXPORTS = {
    'generate_address': 'address',
    'is_valid_address': 'address',
    'parse_scanned_address': 'address',
    'address_qr': 'address',
    'WalletSnapshot': 'sync',
    'WalletSyncService': 'sync',
    'WalletService': 'service',
}


# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import of the public names."""
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    import importlib
    module = importlib.import_module(f".{_EXPORTS[name]}", __name__)
    return getattr(module, name)


__all__ = list(_EXPORTS)
