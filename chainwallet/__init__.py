# ChainWallet
"""
Local ledger and transaction-lifecycle engine for a demonstration wallet:
- blockchain: transactions, sealed blocks, proof of work, pending pool
- wallet: addresses, snapshot sync, wallet service
- storage: encrypted persistence of wallet and ledger state
- integration: wallet activity feed
"""

__version__ = "1.0.0"
