#!/usr/bin/env python
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                        CHAINWALLET LIVE DEMO                                 ║
╚══════════════════════════════════════════════════════════════════════════════╝

This script walks through ChainWallet's ledger mechanics:
- Wallet creation with a receive QR code
- Mining rewards and the one-block reward delay
- Online transfers, failed transfers and double-spend detection
- Offline (Bluetooth) transfers: confirm or invalidate
- Chain validation and encrypted persistence

Run with --no-pause to skip the presenter pauses.
"""

import logging
import sys

from chainwallet.storage.secure_store import MemoryBackend, SecureStateStore
from chainwallet.wallet.address import address_qr, generate_address
from chainwallet.wallet.service import WalletService


PAUSE = "--no-pause" not in sys.argv


def print_header(title):
    """Print a formatted section header"""
    print("\n" + "═" * 70)
    print(f"  {title}")
    print("═" * 70)


def print_step(step_num, description):
    """Print a numbered step"""
    print(f"\n  [{step_num}] {description}")


def pause(message="Press ENTER to continue..."):
    """Pause for presenter to explain"""
    if PAUSE:
        print(f"\n  [PAUSE] {message}")
        input()


def show_wallet(wallet):
    snapshot = wallet.wallet
    print(f"  Balance: {snapshot.balance} coins, {len(snapshot.transactions)} sealed transactions")
    pending = wallet.ledger.get_pending_transactions()
    print(f"  Pending pool: {len(pending)} entries")
    for tx in pending:
        print(f"    - {tx}")


def main():
    logging.basicConfig(level=logging.WARNING, format="  %(levelname)s %(name)s: %(message)s")

    print("\n" * 2)
    print("╔" + "═" * 68 + "╗")
    print("║" + "        CHAINWALLET - LOCAL BLOCKCHAIN WALLET".center(68) + "║")
    print("╚" + "═" * 68 + "╝")

    pause("Press ENTER to begin the demonstration...")

    print_header("PART 1: WALLET CREATION")

    backend = MemoryBackend()
    store = SecureStateStore(backend)
    wallet = WalletService(store, difficulty=3)
    wallet.initialize()

    print_step("1.1", "New wallet address")
    print(f"\n  Address: {wallet.address}")
    print(address_qr(wallet.address))
    show_wallet(wallet)

    pause()

    print_header("PART 2: MINING REWARDS")

    print_step("2.1", "Mining with an empty pool produces nothing")
    print(f"  Block: {wallet.mine_pending()}")

    bob = generate_address()
    print_step("2.2", f"Sending 10 coins to {bob} with a zero balance")
    tx = wallet.send_transaction(bob, 10)
    print(f"  Status: {tx.status.value}")
    show_wallet(wallet)

    print_step("2.3", "That online send mined a block; the reward waits in the pool")
    wallet.mine_pending()
    print("  After one more mine the first reward is sealed:")
    show_wallet(wallet)

    pause()

    print_header("PART 3: TRANSFERS AND DOUBLE SPENDING")

    for _ in range(2):
        wallet.mine_pending()
    show_wallet(wallet)

    print_step("3.1", "Two offline transfers of 5 coins")
    first = wallet.send_transaction(bob, 5, online=False)
    second = wallet.send_transaction(bob, 5, online=False)
    print(f"  Offline #1: {first.status.value}")
    print(f"  Offline #2: {second.status.value}")

    print_step("3.2", "Invalidate the second, then confirm the first")
    # Confirming mines the whole pool, so invalidate first
    wallet.resolve_offline_transaction(second.id, success=False)
    wallet.resolve_offline_transaction(first.id, success=True)
    show_wallet(wallet)

    print_step("3.3", "Recent activity")
    for event in wallet.activity.recent():
        print(f"  {event}")

    pause()

    print_header("PART 4: INTEGRITY AND PERSISTENCE")

    chain = wallet.ledger
    print(f"\n  Blocks: {chain.length}, difficulty {chain.difficulty}")
    latest = chain.get_latest_block()
    print(f"  Latest block #{latest.index}: {latest.hash[:32]}... nonce {latest.nonce}")
    is_valid = chain.is_chain_valid()
    print(f"\n  Chain Integrity Check: {'[OK] VALID' if is_valid else '[X] TAMPERED'}")

    blob = backend.get("CHAIN_WALLET_DATA")
    print(f"\n  Encrypted wallet blob: {len(blob)} bytes, starts {blob[:12].hex()}...")
    print(f"  Decrypted address: {store.load()['address']}")

    print("\n\n" + "═" * 70)
    print("  DEMONSTRATION COMPLETE!")
    print("═" * 70)


if __name__ == "__main__":
    main()
