"""
Activity Log Module

Wallet activity feed: every transfer, mine, offline resolution and
persistence problem is recorded as a `WalletEvent`, both in an in-memory
feed (for "recent activity" lists) and through the standard `logging`
module.

Features:
- Sent / received / failed / double-spent transfer events
- Online vs. offline (Bluetooth) method tagging
- Callbacks notified on every new event
- Recent-event and per-type queries

Author: ChainWallet Project
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..blockchain.transaction import Transaction

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

DEFAULT_RECENT_COUNT = 5
METHOD_ONLINE = "online"
METHOD_OFFLINE = "bluetooth"


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of wallet events that can be recorded."""

    # Wallet lifecycle
    WALLET_CREATED = "wallet_created"
    WALLET_LOADED = "wallet_loaded"
    WALLET_RESET = "wallet_reset"

    # Transfers
    TRANSFER_SENT = "transfer_sent"
    TRANSFER_RECEIVED = "transfer_received"
    TRANSFER_FAILED = "transfer_failed"
    DOUBLE_SPEND_DETECTED = "double_spend_detected"

    # Offline transfers
    OFFLINE_PREPARED = "offline_prepared"
    OFFLINE_CONFIRMED = "offline_confirmed"
    OFFLINE_INVALIDATED = "offline_invalidated"

    # Ledger and storage
    BLOCK_MINED = "block_mined"
    PERSISTENCE_FAILED = "persistence_failed"


_WARNING_EVENTS = {
    EventType.TRANSFER_FAILED,
    EventType.DOUBLE_SPEND_DETECTED,
    EventType.OFFLINE_INVALIDATED,
    EventType.PERSISTENCE_FAILED,
}


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class WalletEvent:
    """A single entry in the activity feed."""
    event_type: EventType
    address: str
    timestamp: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.event_type.value,
            'address': self.address,
            'timestamp': self.timestamp,
            'details': dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WalletEvent':
        return cls(
            event_type=EventType(data['type']),
            address=data['address'],
            timestamp=data['timestamp'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        return f"[{self.timestamp}] {self.event_type.value} | {self.address[:8]}..."


def transfer_details(tx: Transaction, method: str) -> Dict[str, Any]:
    """Event details describing a transfer."""
    return {
        'tx_id': tx.id,
        'from': tx.sender,
        'to': tx.recipient,
        'amount': tx.amount,
        'status': tx.status.value,
        'method': method,
    }


# ============================================================================
# Activity Log
# ============================================================================

class ActivityLog:
    """
    In-memory wallet activity feed.

    Events are appended in order; callbacks registered with `add_callback`
    are called for each new event.
    """

    def __init__(self, max_events: Optional[int] = None):
        """
        Args:
            max_events: Oldest events are dropped beyond this many (unbounded if None)
        """
        self._events: List[WalletEvent] = []
        self._max_events = max_events
        self._callbacks: List[Callable[[WalletEvent], None]] = []

    def record(
        self,
        event_type: EventType,
        address: str,
        details: Optional[Dict[str, Any]] = None
    ) -> WalletEvent:
        """Record a new event and notify callbacks."""
        event = WalletEvent(
            event_type=event_type,
            address=address,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=details or {},
        )
        self._events.append(event)
        if self._max_events is not None and len(self._events) > self._max_events:
            del self._events[:len(self._events) - self._max_events]

        level = logging.WARNING if event_type in _WARNING_EVENTS else logging.INFO
        logger.log(level, "%s %s", event, event.details)

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception:
                # A broken listener must not break the wallet flow
                logger.exception("Activity callback failed for %s", event_type.value)
        return event

    def record_transfer(self, event_type: EventType, address: str,
                        tx: Transaction, method: str = METHOD_ONLINE) -> WalletEvent:
        """Record a transfer-related event."""
        return self.record(event_type, address, transfer_details(tx, method))

    def add_callback(self, callback: Callable[[WalletEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[WalletEvent], None]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ========================================================================
    # Retrieval
    # ========================================================================

    def get_all_events(self) -> List[WalletEvent]:
        return list(self._events)

    def recent(self, count: int = DEFAULT_RECENT_COUNT) -> List[WalletEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._events[-count:])) if count > 0 else []

    def by_type(self, event_type: EventType) -> List[WalletEvent]:
        """All events of a specific type, oldest first."""
        return [e for e in self._events if e.event_type == event_type]

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
