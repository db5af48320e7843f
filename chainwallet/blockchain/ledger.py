"""
Blockchain Ledger Module

Implements the wallet's local ledger:
- Append-only chain of immutable, sealed blocks
- Proof of Work sealing (leading hex zeros in a SHA-256 content hash)
- Pending-transaction pool with balance check and double-spend heuristic
- Balance and history derived by replaying sealed blocks

Rules worth knowing:
- Pending transactions never affect a balance; funds are real once mined.
- Failed and double-spent entries are sealed into history as-is, so a
  conflict stays visible. A failed entry moves no value; a double-spent
  entry is still replayed like any other sealed transfer.
- The mining reward is queued in the pool after a mine and is only sealed by
  the next mine, so it shows up in the miner's balance one cycle later.

Author: ChainWallet Project
"""

import copy
import json
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple, Dict, Any, Sequence

from ..config import (
    DEFAULT_DIFFICULTY,
    GENESIS_PREVIOUS_HASH,
    GENESIS_TX_ID,
    MAX_NONCE,
    MINING_REWARD,
    NETWORK_ADDRESS,
    SYSTEM_ADDRESS,
)
from ..core_crypto.hasher import content_hash, meets_difficulty
from .transaction import (
    INITIAL_STATUSES,
    Transaction,
    TransactionStatus,
    ValidationError,
    WalletError,
    create_transaction,
    utc_timestamp,
    validate_transaction_fields,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================

class SealingTimeout(WalletError, RuntimeError):
    """Raised when no valid nonce is found within the attempt limit."""
    pass


class SealingCancelled(WalletError):
    """Raised when a seal in progress is cancelled by its caller."""
    pass


# ============================================================================
# Block Structure (Immutable)
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Immutable sealed block.

    frozen=True plus a tuple of frozen transactions means nothing in a block
    can change after sealing.
    """
    index: int
    timestamp: str
    transactions: Tuple[Transaction, ...]
    previous_hash: str
    nonce: int
    hash: str

    def compute_hash(self) -> str:
        """Recompute the block hash from its stored fields."""
        return compute_block_hash(
            self.index,
            self.previous_hash,
            self.timestamp,
            [tx.to_dict() for tx in self.transactions],
            self.nonce,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert block to dictionary for serialization."""
        return {
            'index': self.index,
            'timestamp': self.timestamp,
            'transactions': [tx.to_dict() for tx in self.transactions],
            'previous_hash': self.previous_hash,
            'nonce': self.nonce,
            'hash': self.hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Block':
        """Create block from dictionary."""
        return cls(
            index=data['index'],
            timestamp=data['timestamp'],
            transactions=tuple(Transaction.from_dict(tx) for tx in data['transactions']),
            previous_hash=data['previous_hash'],
            nonce=data['nonce'],
            hash=data['hash'],
        )

    def __str__(self) -> str:
        return (
            f"Block #{self.index}\n"
            f"  Hash: {self.hash[:16]}...\n"
            f"  Prev: {self.previous_hash[:16]}...\n"
            f"  Nonce: {self.nonce}\n"
            f"  Transactions: {len(self.transactions)}"
        )


def compute_block_hash(
    index: int,
    previous_hash: str,
    timestamp: str,
    transactions: Sequence[Dict[str, Any]],
    nonce: int
) -> str:
    """Hash the sealed fields of a block."""
    return content_hash({
        'index': index,
        'previous_hash': previous_hash,
        'timestamp': timestamp,
        'transactions': list(transactions),
        'nonce': nonce,
    })


# ============================================================================
# Proof of Work
# ============================================================================

class ProofOfWork:
    """
    Proof of Work with a hex-prefix difficulty.

    A hash is valid when it begins with `difficulty` "0" characters, so each
    step of difficulty multiplies the expected work by 16.
    """

    def __init__(self, difficulty: int = DEFAULT_DIFFICULTY, max_nonce: int = MAX_NONCE):
        """
        Args:
            difficulty: Leading hex zeros required (1-64)
            max_nonce: Attempts before giving up with SealingTimeout
        """
        if not 1 <= difficulty <= 64:
            raise ValueError("Difficulty must be between 1 and 64")
        if max_nonce < 1:
            raise ValueError("max_nonce must be positive")
        self.difficulty = difficulty
        self.max_nonce = max_nonce

    def hash_meets_target(self, hash_hex: str) -> bool:
        """Check if a hash meets the difficulty target."""
        return meets_difficulty(hash_hex, self.difficulty)

    def mine(
        self,
        index: int,
        previous_hash: str,
        timestamp: str,
        transactions: Sequence[Dict[str, Any]],
        max_nonce: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> Tuple[int, str]:
        """
        Search for a valid nonce.

        The nonce starts at 0 and is incremented before every attempt.

        Args:
            index: Block index
            previous_hash: Hash of the prior block
            timestamp: Block timestamp
            transactions: Serialized transactions of the block
            max_nonce: Override for the attempt limit
            cancel_event: Checked between attempts; when set the search stops

        Returns:
            Tuple of (nonce, hash)

        Raises:
            SealingTimeout: If no valid nonce found within the limit
            SealingCancelled: If cancel_event was set
        """
        limit = self.max_nonce if max_nonce is None else max_nonce
        nonce = 0
        while nonce < limit:
            if cancel_event is not None and cancel_event.is_set():
                raise SealingCancelled(f"Sealing of block #{index} cancelled at nonce {nonce}")
            nonce += 1
            block_hash = compute_block_hash(index, previous_hash, timestamp, transactions, nonce)
            if self.hash_meets_target(block_hash):
                return nonce, block_hash

        raise SealingTimeout(
            f"Failed to find valid nonce for block #{index} after {limit} attempts"
        )


# ============================================================================
# Blockchain
# ============================================================================

class Blockchain:
    """
    Local wallet ledger: sealed blocks plus a pending-transaction pool.

    One instance is created by the application's composition root and passed
    to everything that needs it. All mutations hold an internal re-entrant
    lock, so there is a single writer at any time.
    """

    def __init__(
        self,
        difficulty: int = DEFAULT_DIFFICULTY,
        mining_reward: float = MINING_REWARD,
        max_nonce: int = MAX_NONCE
    ):
        """
        Initialize a new ledger with a freshly sealed genesis block.

        Args:
            difficulty: PoW difficulty (leading hex zeros required)
            mining_reward: Amount credited to a miner per mined block
            max_nonce: Sealing attempt limit
        """
        self._chain: List[Block] = []
        self._pow = ProofOfWork(difficulty, max_nonce)
        self._mining_reward = mining_reward
        self._pending: List[Transaction] = []
        self._lock = threading.RLock()

        self._create_genesis_block()

    def _create_genesis_block(self) -> None:
        """Create the genesis (first) block."""
        genesis_tx = Transaction(
            id=GENESIS_TX_ID,
            sender=SYSTEM_ADDRESS,
            recipient=NETWORK_ADDRESS,
            amount=0,
            status=TransactionStatus.CONFIRMED,
            timestamp=utc_timestamp(),
        )
        genesis = self._seal_block((genesis_tx,), GENESIS_PREVIOUS_HASH)
        self._chain.append(genesis)
        logger.info("Genesis block created: %s", genesis.hash)

    def _seal_block(
        self,
        transactions: Tuple[Transaction, ...],
        previous_hash: str,
        cancel_event: Optional[threading.Event] = None
    ) -> Block:
        """Run proof of work and build the sealed block (not yet appended)."""
        index = len(self._chain)
        timestamp = utc_timestamp()
        nonce, block_hash = self._pow.mine(
            index=index,
            previous_hash=previous_hash,
            timestamp=timestamp,
            transactions=[tx.to_dict() for tx in transactions],
            cancel_event=cancel_event,
        )
        return Block(
            index=index,
            timestamp=timestamp,
            transactions=transactions,
            previous_hash=previous_hash,
            nonce=nonce,
            hash=block_hash,
        )

    # ========================================================================
    # Read Accessors
    # ========================================================================

    @property
    def length(self) -> int:
        """Number of sealed blocks, genesis included."""
        return len(self._chain)

    @property
    def difficulty(self) -> int:
        return self._pow.difficulty

    @property
    def mining_reward(self) -> float:
        return self._mining_reward

    def get_latest_block(self) -> Block:
        """Get the last block in the chain."""
        with self._lock:
            return self._chain[-1]

    def get_chain(self) -> List[Block]:
        """Deep copy of the full block sequence."""
        with self._lock:
            return copy.deepcopy(self._chain)

    def get_pending_transactions(self) -> List[Transaction]:
        """Copy of the pending pool in admission order."""
        with self._lock:
            return list(self._pending)

    def get_block_by_index(self, index: int) -> Optional[Block]:
        with self._lock:
            if 0 <= index < len(self._chain):
                return self._chain[index]
        return None

    def _sealed_blocks(self) -> List[Block]:
        # Shallow copy is enough: sealed blocks are immutable
        with self._lock:
            return list(self._chain)

    def find_transaction_by_id(self, tx_id: str) -> Optional[Transaction]:
        """Look up a sealed transaction by id."""
        for block in self._sealed_blocks():
            for tx in block.transactions:
                if tx.id == tx_id:
                    return tx
        return None

    def find_pending_transaction(self, tx_id: str) -> Optional[Transaction]:
        """Look up a pool entry by id."""
        with self._lock:
            index = self._pending_index(tx_id)
            return None if index is None else self._pending[index]

    # ========================================================================
    # Balance and History
    # ========================================================================

    def get_balance_of_address(self, address: str) -> float:
        """
        Derive the sealed balance of an address.

        Replays every sealed block: debits where the address sends, credits
        where it receives. Pool entries and sealed `failed` entries are
        ignored; every other sealed status, `double-spent` included, counts.
        """
        balance = 0
        for block in self._sealed_blocks():
            for tx in block.transactions:
                if tx.status == TransactionStatus.FAILED:
                    continue
                if tx.sender == address:
                    balance -= tx.amount
                if tx.recipient == address:
                    balance += tx.amount
        return balance

    def get_transactions_of_address(self, address: str) -> List[Transaction]:
        """Every sealed transaction touching the address, in sealed order."""
        return [
            tx
            for block in self._sealed_blocks()
            for tx in block.transactions
            if tx.touches(address)
        ]

    # ========================================================================
    # Pool Admission
    # ========================================================================

    def add_transaction(self, tx: Transaction) -> Transaction:
        """
        Admit a transaction to the pending pool.

        The transaction is re-validated here regardless of what the caller
        checked. It is then marked `failed` if the sender's sealed balance is
        short, or `double-spent` if the pool already holds a `pending` entry
        with the same sender and amount. The entry is appended either way.

        Args:
            tx: Transaction in status `pending` or `pending-offline`

        Returns:
            The admitted transaction, possibly with a new status

        Raises:
            ValidationError: If the transaction is malformed
        """
        if not isinstance(tx, Transaction):
            raise ValidationError("Expected a Transaction")
        validate_transaction_fields(tx.sender, tx.recipient, tx.amount)
        if tx.status not in INITIAL_STATUSES:
            raise ValidationError(f"Cannot admit a transaction in status {tx.status.value}")

        with self._lock:
            if self.get_balance_of_address(tx.sender) < tx.amount:
                tx = tx.with_status(TransactionStatus.FAILED)
                logger.warning("Transaction %s failed: insufficient balance", tx.id)
            elif self._has_pending_conflict(tx):
                tx = tx.with_status(TransactionStatus.DOUBLE_SPENT)
                logger.warning("Double spend detected in pending pool: %s", tx.id)

            self._pending.append(tx)

        logger.debug("Transaction added: %s", tx)
        return tx

    def _has_pending_conflict(self, tx: Transaction) -> bool:
        # Same sender and same amount only; no per-sender sequence numbers
        return any(
            other.sender == tx.sender
            and other.amount == tx.amount
            and other.status == TransactionStatus.PENDING
            for other in self._pending
        )

    def _pending_index(self, tx_id: str) -> Optional[int]:
        for i, tx in enumerate(self._pending):
            if tx.id == tx_id:
                return i
        return None

    # ========================================================================
    # Mining
    # ========================================================================

    def mine_pending_transactions(
        self,
        miner_address: str,
        cancel_event: Optional[threading.Event] = None
    ) -> Optional[Block]:
        """
        Seal the whole pending pool into a new block.

        `pending` entries become `confirmed`; every other entry is sealed with
        its status unchanged. Afterwards the pool holds only the miner's
        reward, already `confirmed`, waiting for the next mine.

        Args:
            miner_address: Address credited with the reward
            cancel_event: Optional cancellation token for the seal

        Returns:
            The new block, or None if the pool was empty

        Raises:
            ValidationError: If the miner address is unusable
            SealingTimeout, SealingCancelled: Sealing stopped; ledger unchanged
        """
        if not isinstance(miner_address, str) or not miner_address.strip():
            raise ValidationError("Miner address required")
        if miner_address == SYSTEM_ADDRESS:
            raise ValidationError("The system address cannot mine")

        with self._lock:
            if not self._pending:
                logger.info("No transactions to mine.")
                return None

            transactions = tuple(
                tx.with_status(TransactionStatus.CONFIRMED)
                if tx.status == TransactionStatus.PENDING else tx
                for tx in self._pending
            )
            block = self._seal_block(
                transactions, self.get_latest_block().hash, cancel_event
            )
            self._chain.append(block)

            reward = create_transaction(SYSTEM_ADDRESS, miner_address, self._mining_reward)
            self._pending = [reward.with_status(TransactionStatus.CONFIRMED)]

        logger.info("Block mined: #%d (%d transactions)", block.index, len(block.transactions))
        return block

    # ========================================================================
    # Offline Transfers
    # ========================================================================

    def confirm_offline_transaction(self, tx_id: str) -> bool:
        """
        Mark a `pending-offline` pool entry `confirmed`.

        The caller mines afterwards to seal it.

        Returns:
            False if no `pending-offline` entry with that id is in the pool
        """
        return self._settle_offline(tx_id, TransactionStatus.CONFIRMED)

    def resolve_offline_transaction(self, tx_id: str) -> bool:
        """
        Invalidate a `pending-offline` pool entry as `double-spent`.

        Does not mine; the entry is sealed by the next unrelated mine.

        Returns:
            False if no `pending-offline` entry with that id is in the pool
        """
        return self._settle_offline(tx_id, TransactionStatus.DOUBLE_SPENT)

    def _settle_offline(self, tx_id: str, status: TransactionStatus) -> bool:
        with self._lock:
            index = self._pending_index(tx_id)
            if index is None:
                logger.warning("Offline transaction not found in pending pool: %s", tx_id)
                return False

            tx = self._pending[index]
            if tx.status != TransactionStatus.PENDING_OFFLINE:
                logger.warning(
                    "Transaction %s is %s, not pending-offline", tx_id, tx.status.value
                )
                return False

            self._pending[index] = tx.with_status(status)

        logger.info("Offline transaction %s marked %s", tx_id, status.value)
        return True

    # ========================================================================
    # Validation
    # ========================================================================

    def is_chain_valid(self) -> bool:
        """
        Validate the entire chain.

        For every block after genesis: the stored hash must equal the
        recomputed hash and meet the difficulty, `previous_hash` must equal
        the prior block's hash, and the index must follow the prior index.

        Returns:
            True if the chain is intact. Never raises, never mutates.
        """
        chain = self._sealed_blocks()

        if not chain or chain[0].index != 0:
            return False

        for i in range(1, len(chain)):
            current, prev = chain[i], chain[i - 1]
            if current.hash != current.compute_hash():
                return False
            if current.previous_hash != prev.hash:
                return False
            if current.index != prev.index + 1:
                return False
            if not self._pow.hash_meets_target(current.hash):
                return False
        return True

    # ========================================================================
    # Serialization
    # ========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of chain, pool and parameters."""
        with self._lock:
            return {
                'difficulty': self._pow.difficulty,
                'mining_reward': self._mining_reward,
                'chain': [block.to_dict() for block in self._chain],
                'pending': [tx.to_dict() for tx in self._pending],
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], max_nonce: int = MAX_NONCE) -> 'Blockchain':
        """
        Restore a ledger from a snapshot.

        Raises:
            ValidationError: If the snapshot is malformed or the chain invalid
        """
        try:
            blockchain = cls.__new__(cls)
            blockchain._pow = ProofOfWork(data['difficulty'], max_nonce)
            blockchain._mining_reward = data.get('mining_reward', MINING_REWARD)
            blockchain._lock = threading.RLock()
            blockchain._chain = [Block.from_dict(b) for b in data['chain']]
            blockchain._pending = [Transaction.from_dict(tx) for tx in data.get('pending', [])]
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed ledger snapshot: {e}") from e

        if not blockchain._chain or blockchain._chain[0].previous_hash != GENESIS_PREVIOUS_HASH:
            raise ValidationError("Invalid genesis block")
        if not blockchain.is_chain_valid():
            raise ValidationError("Restored chain failed validation")

        return blockchain

    def to_json(self) -> str:
        """Serialize ledger to JSON."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'Blockchain':
        """Deserialize ledger from JSON."""
        return cls.from_dict(json.loads(json_str))

    def print_chain(self) -> None:
        """Print the blockchain."""
        print(f"\nBlockchain (difficulty={self.difficulty}, length={self.length})")
        print("=" * 60)
        for block in self._chain:
            print(block)
            for tx in block.transactions:
                print(f"    {tx}")
            print("-" * 40)


# ============================================================================
# Convenience Functions
# ============================================================================

def create_blockchain(difficulty: int = DEFAULT_DIFFICULTY) -> Blockchain:
    """Create a new ledger with given difficulty."""
    return Blockchain(difficulty)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    chain = Blockchain(difficulty=2)
    chain.mine_pending_transactions("0xaaaaaaaaaaaaaaaa")  # empty pool, no block
    chain.add_transaction(create_transaction("0xaaaaaaaaaaaaaaaa", "0xbbbbbbbbbbbbbbbb", 5))
    chain.mine_pending_transactions("0xaaaaaaaaaaaaaaaa")
    chain.mine_pending_transactions("0xaaaaaaaaaaaaaaaa")
    chain.print_chain()
    print(f"Chain valid: {chain.is_chain_valid()}")
    print(f"Balance: {chain.get_balance_of_address('0xaaaaaaaaaaaaaaaa')}")
