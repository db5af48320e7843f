"""
Wallet Sync Service

Keeps the in-memory wallet view consistent with the ledger. A sync replays
the ledger for one address, replaces the snapshot, and hands it to the
secure store. The snapshot is disposable: it is never the source of truth
and the service never writes to the ledger.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..blockchain.ledger import Blockchain
from ..blockchain.transaction import REJECTED_STATUSES, Transaction, TransactionStatus
from ..config import SYSTEM_ADDRESS
from ..integration.event_logger import ActivityLog, EventType, METHOD_OFFLINE, METHOD_ONLINE
from ..storage.secure_store import SecureStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletSnapshot:
    """Derived wallet view: address, sealed balance and sealed history."""
    address: str
    balance: float = 0
    transactions: Tuple[Transaction, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'balance': self.balance,
            'transactions': [tx.to_dict() for tx in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WalletSnapshot':
        return cls(
            address=data['address'],
            balance=data.get('balance', 0),
            transactions=tuple(Transaction.from_dict(tx) for tx in data.get('transactions', [])),
        )


class WalletSyncService:
    """
    Recomputes and persists the wallet snapshot after ledger mutations.

    Called after initial load, every mine, every offline resolution and
    wallet reset.
    """

    def __init__(
        self,
        ledger: Blockchain,
        store: SecureStateStore,
        activity: Optional[ActivityLog] = None,
        persist_ledger: bool = False
    ):
        """
        Args:
            ledger: The application's ledger instance
            store: Where snapshots are persisted
            activity: Optional feed for received-transfer events
            persist_ledger: Also persist the full ledger on every sync
        """
        self._ledger = ledger
        self._store = store
        self._activity = activity
        self._persist_ledger = persist_ledger
        self._snapshot: Optional[WalletSnapshot] = None

    @property
    def ledger(self) -> Blockchain:
        return self._ledger

    @property
    def snapshot(self) -> Optional[WalletSnapshot]:
        """The latest snapshot, or None before the first sync."""
        return self._snapshot

    def attach_ledger(self, ledger: Blockchain) -> None:
        """Point the service at a new ledger (wallet reset)."""
        self._ledger = ledger
        self._snapshot = None

    def sync(self, address: str) -> WalletSnapshot:
        """
        Rebuild the snapshot for an address from the ledger and persist it.

        Calling it twice without a ledger mutation in between yields equal
        snapshots.
        """
        snapshot = WalletSnapshot(
            address=address,
            balance=self._ledger.get_balance_of_address(address),
            transactions=tuple(self._ledger.get_transactions_of_address(address)),
        )

        previous = self._snapshot
        self._snapshot = snapshot
        if previous is not None and previous.address == address:
            self._report_received(previous, snapshot)

        self._store.save(snapshot.to_dict())
        if self._persist_ledger:
            self._store.save_ledger(self._ledger.to_dict())

        logger.debug("Synced %s: balance=%s, %d transactions",
                     address, snapshot.balance, len(snapshot.transactions))
        return snapshot

    def _report_received(self, previous: WalletSnapshot, current: WalletSnapshot) -> None:
        if self._activity is None:
            return
        known = {tx.id for tx in previous.transactions}
        for tx in current.transactions:
            # Rewards from the system address are not transfers
            if (tx.id not in known and tx.recipient == current.address
                    and tx.sender != SYSTEM_ADDRESS
                    and tx.status not in REJECTED_STATUSES):
                method = (METHOD_OFFLINE if tx.status == TransactionStatus.PENDING_OFFLINE
                          else METHOD_ONLINE)
                self._activity.record_transfer(
                    EventType.TRANSFER_RECEIVED, current.address, tx, method
                )
