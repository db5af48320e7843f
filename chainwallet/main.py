"""
ChainWallet - Main Entry Point
A local blockchain wallet simulation.
"""

import logging
import sys

from chainwallet.storage.secure_store import FileBackend, SecureStateStore
from chainwallet.wallet.address import address_qr
from chainwallet.wallet.service import WalletService


def main(argv=None):
    """Open (or create) the wallet stored in a directory and print a summary."""
    argv = sys.argv[1:] if argv is None else argv
    directory = argv[0] if argv else ".chainwallet"

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    wallet = WalletService(SecureStateStore(FileBackend(directory)), persist_ledger=True)
    snapshot = wallet.initialize()

    print("=" * 50)
    print("Welcome to ChainWallet")
    print("=" * 50)
    print(f"\nAddress: {snapshot.address}")
    print(address_qr(snapshot.address))
    print(f"Balance: {snapshot.balance} coins")
    print(f"Transactions: {len(snapshot.transactions)}")
    print(f"Blocks: {wallet.ledger.length} (valid: {wallet.ledger.is_chain_valid()})")
    print("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
