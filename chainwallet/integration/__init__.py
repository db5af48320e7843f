# Integration Module
"""
Wallet activity feed that records transfers, mines, offline resolutions and
persistence problems.
"""

# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    from . import event_logger
    return getattr(event_logger, name)

__all__ = [
    'EventType',
    'WalletEvent',
    'ActivityLog',
    'METHOD_ONLINE',
    'METHOD_OFFLINE',
]
