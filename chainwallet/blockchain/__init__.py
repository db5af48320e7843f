# Blockchain Module
"""
Wallet ledger implementation including:
- Transaction model and lifecycle rules
- Immutable sealed blocks
- Proof of Work sealing with cancellation and attempt cap
- Pending pool with double-spend heuristic
- Background sealing worker
"""

_EXPORTS = {
    'Transaction': 'transaction',
    'TransactionStatus': 'transaction',
    'WalletError': 'transaction',
    'ValidationError': 'transaction',
    'InvalidTransition': 'transaction',
    'create_transaction': 'transaction',
    'can_transition': 'transaction',
    'Block': 'ledger',
    'Blockchain': 'ledger',
    'ProofOfWork': 'ledger',
    'SealingTimeout': 'ledger',
    'SealingCancelled': 'ledger',
    'compute_block_hash': 'ledger',
    'create_blockchain': 'ledger',
    'MiningWorker': 'worker',
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
