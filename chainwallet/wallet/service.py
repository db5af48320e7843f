"""
Wallet Service

Composition root of the wallet: creates the single Ledger instance, wires it
to the sync service and secure store, and exposes the operations a UI layer
calls - send online, prepare offline, resolve offline, reset.

Every ledger mutation is followed by a sync, which persists the new wallet
snapshot after the in-memory state is already updated.

Example:
    >>> wallet = WalletService(SecureStateStore(MemoryBackend()))
    >>> snapshot = wallet.initialize()
    >>> snapshot.balance
    0
"""

import logging
from typing import List, Optional

from ..blockchain.ledger import Block, Blockchain
from ..blockchain.transaction import (
    Transaction,
    TransactionStatus,
    ValidationError,
    create_transaction,
    validate_amount,
)
from ..config import DEFAULT_DIFFICULTY, MINING_REWARD
from ..integration.event_logger import ActivityLog, EventType, METHOD_OFFLINE, METHOD_ONLINE
from ..storage.secure_store import SecureStateStore
from .address import generate_address, is_valid_address, parse_scanned_address
from .sync import WalletSnapshot, WalletSyncService

logger = logging.getLogger(__name__)


class WalletService:
    """
    Single-device wallet over a local ledger.

    The ledger is owned here and passed by reference to the sync service;
    there is no global instance. `reset_wallet` is the only way to replace it.
    """

    def __init__(
        self,
        store: Optional[SecureStateStore] = None,
        difficulty: int = DEFAULT_DIFFICULTY,
        mining_reward: float = MINING_REWARD,
        persist_ledger: bool = False,
        activity: Optional[ActivityLog] = None
    ):
        """
        Args:
            store: Secure store (in-memory if omitted)
            difficulty: PoW difficulty for the ledger
            mining_reward: Reward per mined block
            persist_ledger: Persist and restore the full ledger as well
            activity: Activity feed (a fresh one if omitted)
        """
        self._store = store if store is not None else SecureStateStore()
        self._difficulty = difficulty
        self._mining_reward = mining_reward
        self._persist_ledger = persist_ledger
        self._activity = activity if activity is not None else ActivityLog()
        self._ledger = self._new_ledger()
        self._sync = WalletSyncService(self._ledger, self._store, self._activity, persist_ledger)
        self._address: Optional[str] = None
        if self._store.on_failure is None:
            self._store.on_failure = self._on_persistence_failure

    def _on_persistence_failure(self, operation: str, error: Exception) -> None:
        self._activity.record(
            EventType.PERSISTENCE_FAILED, self._address or "",
            {'operation': operation, 'error': str(error)}
        )

    def _new_ledger(self) -> Blockchain:
        return Blockchain(difficulty=self._difficulty, mining_reward=self._mining_reward)

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def ledger(self) -> Blockchain:
        return self._ledger

    @property
    def store(self) -> SecureStateStore:
        return self._store

    @property
    def activity(self) -> ActivityLog:
        return self._activity

    @property
    def wallet(self) -> Optional[WalletSnapshot]:
        """Latest synced snapshot."""
        return self._sync.snapshot

    def _require_address(self) -> str:
        if self._address is None:
            raise RuntimeError("Wallet not initialized; call initialize() first")
        return self._address

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def initialize(self) -> WalletSnapshot:
        """
        Load the stored wallet or create a new one, then sync.

        With ledger persistence enabled, a stored ledger that passes
        validation replaces the fresh one.
        """
        if self._persist_ledger:
            self._restore_ledger()

        stored = self._store.load()
        if stored and is_valid_address(stored.get('address')):
            self._address = stored['address']
            self._activity.record(EventType.WALLET_LOADED, self._address)
        else:
            self._address = generate_address()
            self._activity.record(EventType.WALLET_CREATED, self._address)

        return self.sync()

    def _restore_ledger(self) -> None:
        data = self._store.load_ledger()
        if data is None:
            return
        try:
            ledger = Blockchain.from_dict(data)
        except ValidationError as e:
            logger.warning("Stored blockchain rejected, starting fresh: %s", e)
            return
        self._ledger = ledger
        self._sync.attach_ledger(ledger)
        logger.info("Blockchain restored: %d blocks", ledger.length)

    def sync(self) -> WalletSnapshot:
        """Recompute and persist the wallet snapshot."""
        return self._sync.sync(self._require_address())

    def reset_wallet(self) -> WalletSnapshot:
        """
        Wipe persisted state, start a fresh genesis chain and a new address.
        """
        old_address = self._address
        self._store.clear()
        self._ledger = self._new_ledger()
        self._sync.attach_ledger(self._ledger)
        self._address = generate_address()
        self._activity.record(
            EventType.WALLET_RESET, self._address, {'previous_address': old_address}
        )
        return self.sync()

    # ========================================================================
    # Transfers
    # ========================================================================

    def send_transaction(self, recipient: str, amount: float, online: bool = True) -> Transaction:
        """
        Send funds to another address.

        Online transfers are mined immediately with this wallet as miner.
        Offline (Bluetooth) transfers wait in the pool as `pending-offline`
        until `resolve_offline_transaction`.

        Args:
            recipient: Recipient address (e.g. from a QR scan)
            amount: Positive amount
            online: False for a deferred offline transfer

        Returns:
            The transaction in its latest state (sealed state when mined)

        Raises:
            ValidationError: Bad recipient or amount, or a transfer to self
        """
        address = self._require_address()
        recipient = parse_scanned_address(recipient)
        validate_amount(amount)

        status = TransactionStatus.PENDING if online else TransactionStatus.PENDING_OFFLINE
        method = METHOD_ONLINE if online else METHOD_OFFLINE
        tx = self._ledger.add_transaction(create_transaction(address, recipient, amount, status))

        if tx.status == TransactionStatus.FAILED:
            self._activity.record_transfer(EventType.TRANSFER_FAILED, address, tx, method)
        elif tx.status == TransactionStatus.DOUBLE_SPENT:
            self._activity.record_transfer(EventType.DOUBLE_SPEND_DETECTED, address, tx, method)
        elif not online:
            self._activity.record_transfer(EventType.OFFLINE_PREPARED, address, tx, method)

        if online:
            self._mine(address)
            tx = self._ledger.find_transaction_by_id(tx.id) or tx
            if tx.status == TransactionStatus.CONFIRMED:
                self._activity.record_transfer(EventType.TRANSFER_SENT, address, tx, method)

        self.sync()
        return tx

    def resolve_offline_transaction(self, tx_id: str, success: bool = False) -> bool:
        """
        Settle an offline transfer.

        Args:
            tx_id: Id of a `pending-offline` transaction in the pool
            success: True confirms and mines; False marks it double-spent

        Returns:
            False if the id was not a pending offline transfer
        """
        address = self._require_address()
        if success:
            settled = self._ledger.confirm_offline_transaction(tx_id)
            if settled:
                self._mine(address)
                self._activity.record(EventType.OFFLINE_CONFIRMED, address, {'tx_id': tx_id})
        else:
            settled = self._ledger.resolve_offline_transaction(tx_id)
            if settled:
                self._activity.record(EventType.OFFLINE_INVALIDATED, address, {'tx_id': tx_id})

        self.sync()
        return settled

    def mine_pending(self) -> Optional[Block]:
        """Mine the pool with this wallet as miner, then sync."""
        block = self._mine(self._require_address())
        self.sync()
        return block

    def _mine(self, miner_address: str) -> Optional[Block]:
        block = self._ledger.mine_pending_transactions(miner_address)
        if block is not None:
            self._activity.record(
                EventType.BLOCK_MINED, miner_address,
                {'index': block.index, 'hash': block.hash, 'transactions': len(block.transactions)}
            )
        return block

    def pending_offline_transactions(self) -> List[Transaction]:
        """This wallet's outgoing transfers still awaiting offline settlement."""
        address = self._require_address()
        return [
            tx for tx in self._ledger.get_pending_transactions()
            if tx.sender == address and tx.status == TransactionStatus.PENDING_OFFLINE
        ]
