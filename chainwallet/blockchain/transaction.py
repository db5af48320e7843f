"""
Transaction Module

Transaction model and lifecycle rules for the wallet ledger.

A transaction moves `amount` from one address to another. Its status follows
a small state machine:

    pending ──────────┬──> confirmed      (sealed by a mine)
                      ├──> failed         (insufficient funds at admission)
                      └──> double-spent   (conflict in the pending pool)

    pending-offline ──┬──> confirmed      (explicit confirmation, then mine)
                      ├──> failed         (insufficient funds at admission)
                      └──> double-spent   (explicit invalidation)

confirmed, failed and double-spent are terminal.

Transactions are immutable: a status change produces a new instance through
`Transaction.with_status`, so a transaction sealed into a block can never be
altered afterwards.

Author: ChainWallet Project
"""

import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping


# ============================================================================
# Errors
# ============================================================================

class WalletError(Exception):
    """Base class for all ledger and wallet errors."""
    pass


class ValidationError(WalletError, ValueError):
    """Raised when a transaction or address is malformed."""
    pass


class InvalidTransition(WalletError):
    """Raised when a status change is not allowed by the lifecycle."""
    pass


# ============================================================================
# Status
# ============================================================================

class TransactionStatus(Enum):
    """Lifecycle states of a transaction."""

    PENDING = "pending"
    PENDING_OFFLINE = "pending-offline"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    DOUBLE_SPENT = "double-spent"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


INITIAL_STATUSES: FrozenSet[TransactionStatus] = frozenset({
    TransactionStatus.PENDING,
    TransactionStatus.PENDING_OFFLINE,
})

TERMINAL_STATUSES: FrozenSet[TransactionStatus] = frozenset({
    TransactionStatus.CONFIRMED,
    TransactionStatus.FAILED,
    TransactionStatus.DOUBLE_SPENT,
})

# Admission outcomes that reject a transfer; never announced as received
REJECTED_STATUSES: FrozenSet[TransactionStatus] = frozenset({
    TransactionStatus.FAILED,
    TransactionStatus.DOUBLE_SPENT,
})

ALLOWED_TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.CONFIRMED,
        TransactionStatus.FAILED,
        TransactionStatus.DOUBLE_SPENT,
    }),
    TransactionStatus.PENDING_OFFLINE: frozenset({
        TransactionStatus.CONFIRMED,
        TransactionStatus.FAILED,
        TransactionStatus.DOUBLE_SPENT,
    }),
    TransactionStatus.CONFIRMED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.DOUBLE_SPENT: frozenset(),
}


def can_transition(current: TransactionStatus, new: TransactionStatus) -> bool:
    """Check whether the lifecycle allows moving from `current` to `new`."""
    return new in ALLOWED_TRANSITIONS[current]


# ============================================================================
# Transaction Structure (Immutable)
# ============================================================================

def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Transaction:
    """
    Immutable value transfer between two ledger addresses.

    `sender` and `recipient` serialize as `from` and `to`.
    """
    id: str
    sender: str
    recipient: str
    amount: float
    status: TransactionStatus
    timestamp: str

    def with_status(self, status: TransactionStatus) -> 'Transaction':
        """
        Return a copy of this transaction in a new status.

        Raises:
            InvalidTransition: If the lifecycle does not allow the change
        """
        if status == self.status:
            return self
        if not can_transition(self.status, status):
            raise InvalidTransition(
                f"Transaction {self.id}: {self.status.value} -> {status.value} not allowed"
            )
        return replace(self, status=status)

    def touches(self, address: str) -> bool:
        """True if the address is the sender or the recipient."""
        return self.sender == address or self.recipient == address

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to dictionary for hashing and serialization."""
        return {
            'id': self.id,
            'from': self.sender,
            'to': self.recipient,
            'amount': self.amount,
            'status': self.status.value,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Transaction':
        """Create transaction from dictionary."""
        return cls(
            id=data['id'],
            sender=data['from'],
            recipient=data['to'],
            amount=data['amount'],
            status=TransactionStatus(data['status']),
            timestamp=data['timestamp'],
        )

    def __str__(self) -> str:
        return (
            f"{self.amount} {self.sender} -> {self.recipient} "
            f"({self.status.value}, id={self.id[:8]})"
        )


# ============================================================================
# Validation and Factory
# ============================================================================

def validate_amount(amount: Any) -> None:
    """
    Require a positive, finite number.

    Raises:
        ValidationError: If the amount is not a number or not positive
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError(f"Amount must be a number, got {type(amount).__name__}")
    if not math.isfinite(amount):
        raise ValidationError("Amount must be finite")
    if amount <= 0:
        raise ValidationError("Transaction amount must be positive")


def validate_transaction_fields(sender: Any, recipient: Any, amount: Any) -> None:
    """
    Validate the parties and amount of a transfer.

    Raises:
        ValidationError: On missing parties, self-transfer or a bad amount
    """
    if not isinstance(sender, str) or not sender.strip():
        raise ValidationError("Transaction must include a sender")
    if not isinstance(recipient, str) or not recipient.strip():
        raise ValidationError("Transaction must include a recipient")
    if sender == recipient:
        raise ValidationError("Sender and recipient cannot be the same")
    validate_amount(amount)


def create_transaction(
    sender: str,
    recipient: str,
    amount: float,
    status: TransactionStatus = TransactionStatus.PENDING
) -> Transaction:
    """
    Create a new, unsealed transaction.

    Args:
        sender: Sending address
        recipient: Receiving address
        amount: Positive amount to transfer
        status: Initial status, `pending` (online) or `pending-offline`

    Returns:
        New transaction with a fresh UUID and timestamp

    Raises:
        ValidationError: If the fields or the initial status are invalid
    """
    validate_transaction_fields(sender, recipient, amount)
    if status not in INITIAL_STATUSES:
        raise ValidationError(f"Invalid initial status: {status.value}")

    return Transaction(
        id=str(uuid.uuid4()),
        sender=sender,
        recipient=recipient,
        amount=amount,
        status=status,
        timestamp=utc_timestamp(),
    )
