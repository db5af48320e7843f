"""
Integration tests for ChainWallet.

Tests complete workflows combining multiple modules:
- Activity feed recording and callbacks
- Background mining with cancellation
- Two-wallet transfer on a shared ledger
- Full wallet session from creation to restart
"""

import threading

import pytest
from chainwallet.blockchain.ledger import Blockchain, ProofOfWork, SealingCancelled
from chainwallet.blockchain.transaction import TransactionStatus, create_transaction
from chainwallet.blockchain.worker import MiningWorker
from chainwallet.integration.event_logger import (
    ActivityLog, EventType, WalletEvent, transfer_details
)
from chainwallet.storage.secure_store import FileBackend, MemoryBackend, SecureStateStore
from chainwallet.wallet.service import WalletService
from chainwallet.wallet.sync import WalletSyncService

FAST = 1000
ALICE = "0xaaaaaaaaaaaaaaaa"
BOB = "0xbbbbbbbbbbbbbbbb"
MINER = "0xcccccccccccccccc"


class TestActivityLog:
    """Tests for the activity feed."""

    def test_record(self):
        log = ActivityLog()
        event = log.record(EventType.WALLET_CREATED, ALICE)
        assert event.event_type == EventType.WALLET_CREATED
        assert event.address == ALICE
        assert event.details == {}
        assert len(log) == 1

    def test_recent_newest_first(self):
        log = ActivityLog()
        for i in range(8):
            log.record(EventType.BLOCK_MINED, MINER, {'index': i})

        recent = log.recent()
        assert [e.details['index'] for e in recent] == [7, 6, 5, 4, 3]
        assert log.recent(0) == []
        assert len(log.recent(100)) == 8

    def test_by_type(self):
        log = ActivityLog()
        log.record(EventType.WALLET_CREATED, ALICE)
        log.record(EventType.BLOCK_MINED, ALICE)
        log.record(EventType.BLOCK_MINED, ALICE)
        assert len(log.by_type(EventType.BLOCK_MINED)) == 2
        assert log.by_type(EventType.WALLET_RESET) == []

    def test_max_events(self):
        log = ActivityLog(max_events=3)
        for i in range(5):
            log.record(EventType.BLOCK_MINED, MINER, {'index': i})
        assert [e.details['index'] for e in log.get_all_events()] == [2, 3, 4]

    def test_callbacks(self):
        log = ActivityLog()
        seen = []
        log.add_callback(seen.append)
        log.record(EventType.WALLET_CREATED, ALICE)
        log.remove_callback(seen.append)
        log.record(EventType.WALLET_RESET, ALICE)
        assert [e.event_type for e in seen] == [EventType.WALLET_CREATED]

    def test_broken_callback_does_not_propagate(self):
        log = ActivityLog()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        log.add_callback(broken)
        log.add_callback(seen.append)
        log.record(EventType.BLOCK_MINED, MINER)
        assert len(seen) == 1
        assert len(log) == 1

    def test_transfer_details(self):
        tx = create_transaction(ALICE, BOB, 3)
        details = transfer_details(tx, "bluetooth")
        assert details == {
            'tx_id': tx.id, 'from': ALICE, 'to': BOB, 'amount': 3,
            'status': 'pending', 'method': 'bluetooth',
        }

    def test_event_dict_round_trip(self):
        log = ActivityLog()
        event = log.record(EventType.OFFLINE_CONFIRMED, ALICE, {'tx_id': 'abc'})
        assert WalletEvent.from_dict(event.to_dict()) == event

    def test_clear(self):
        log = ActivityLog()
        log.record(EventType.WALLET_CREATED, ALICE)
        log.clear()
        assert len(log) == 0


class TestMiningWorker:
    """Tests for background sealing."""

    def _ledger(self):
        bc = Blockchain(difficulty=1)
        bc.add_transaction(create_transaction(ALICE, BOB, 1))
        return bc

    def test_submit(self):
        bc = self._ledger()
        with MiningWorker(bc) as worker:
            block = worker.submit(MINER).result(timeout=30)
        assert block.index == 1
        assert bc.length == 2
        assert bc.is_chain_valid()

    def test_empty_pool(self):
        with MiningWorker(Blockchain(difficulty=1)) as worker:
            assert worker.submit(MINER).result(timeout=30) is None

    def test_cancel(self):
        """Cancelling stops an unbounded seal and leaves the ledger unchanged."""
        bc = self._ledger()
        pool = bc.get_pending_transactions()
        bc._pow = ProofOfWork(difficulty=64)

        worker = MiningWorker(bc)
        future = worker.submit(MINER)
        worker.cancel()
        with pytest.raises(SealingCancelled):
            future.result(timeout=30)
        worker.shutdown()

        assert bc.length == 1
        assert bc.get_pending_transactions() == pool

    def test_resubmit_after_cancel(self):
        bc = self._ledger()
        with MiningWorker(bc) as worker:
            worker.cancel()
            assert worker.submit(MINER).result(timeout=30) is not None

    def test_cancel_spares_queued_job(self):
        """Only the running seal is cancelled; the job queued behind it runs."""
        bc = self._ledger()
        started = threading.Event()

        class SignallingProofOfWork(ProofOfWork):
            def mine(self, *args, **kwargs):
                started.set()
                return super().mine(*args, **kwargs)

        bc._pow = SignallingProofOfWork(difficulty=64)
        with MiningWorker(bc) as worker:
            running = worker.submit(MINER)
            queued = worker.submit(MINER)
            assert started.wait(timeout=30)

            bc._pow = ProofOfWork(difficulty=1)
            worker.cancel()

            with pytest.raises(SealingCancelled):
                running.result(timeout=30)
            block = queued.result(timeout=30)

        assert block is not None
        assert block.index == 1
        assert bc.is_chain_valid()

    def test_shutdown_cancels_queued_jobs(self):
        bc = self._ledger()
        bc._pow = ProofOfWork(difficulty=64)
        worker = MiningWorker(bc)
        futures = [worker.submit(MINER) for _ in range(3)]
        worker.shutdown()
        for future in futures:
            with pytest.raises(SealingCancelled):
                future.result(timeout=30)
        assert bc.length == 1

    def test_concurrent_admission_while_mining(self):
        """Pool admissions from other threads are serialized with sealing."""
        bc = Blockchain(difficulty=1)
        bc.add_transaction(create_transaction(ALICE, BOB, 1))
        bc.mine_pending_transactions(ALICE)
        bc.mine_pending_transactions(ALICE)

        def admit():
            for _ in range(20):
                bc.add_transaction(create_transaction(ALICE, BOB, 0.5))

        threads = [threading.Thread(target=admit) for _ in range(3)]
        with MiningWorker(bc) as worker:
            futures = []
            for t in threads:
                t.start()
                futures.append(worker.submit(MINER))
            for t in threads:
                t.join()
            for f in futures:
                f.result(timeout=30)
            worker.submit(MINER).result(timeout=30)

        assert bc.is_chain_valid()
        sealed = [tx for block in bc.get_chain() for tx in block.transactions]
        assert len({tx.id for tx in sealed}) == len(sealed)


class TestSharedLedgerTransfer:
    """Two wallets' views over one ledger."""

    def test_sender_and_recipient_views(self):
        bc = Blockchain(difficulty=1)
        alice_sync = WalletSyncService(bc, SecureStateStore(MemoryBackend(), iterations=FAST))
        bob_activity = ActivityLog()
        bob_sync = WalletSyncService(
            bc, SecureStateStore(MemoryBackend(), iterations=FAST), bob_activity
        )

        failed = bc.add_transaction(create_transaction(ALICE, BOB, 10))
        bc.mine_pending_transactions(ALICE)
        bc.mine_pending_transactions(ALICE)
        assert alice_sync.sync(ALICE).balance == 10
        assert bob_sync.sync(BOB).balance == 0

        tx = bc.add_transaction(create_transaction(ALICE, BOB, 6))
        bc.mine_pending_transactions(MINER)

        alice = alice_sync.sync(ALICE)
        bob = bob_sync.sync(BOB)
        assert alice.balance == 14
        assert bob.balance == 6
        assert [t.id for t in bob.transactions] == [failed.id, tx.id]

        received = bob_activity.by_type(EventType.TRANSFER_RECEIVED)
        assert [e.details['tx_id'] for e in received] == [tx.id]


class TestFullWalletSession:
    """Complete wallet session on disk."""

    def test_session(self, tmp_path):
        store = SecureStateStore(FileBackend(tmp_path), iterations=FAST)
        wallet = WalletService(store, difficulty=1, persist_ledger=True)
        wallet.initialize()

        # Bootstrap funds
        wallet.send_transaction(BOB, 1)
        wallet.mine_pending()
        assert wallet.wallet.balance == 10

        # Online transfer
        sent = wallet.send_transaction(BOB, 3)
        assert sent.status == TransactionStatus.CONFIRMED

        # One offline transfer settled, one invalidated
        keep = wallet.send_transaction(BOB, 2, online=False)
        drop = wallet.send_transaction(BOB, 1, online=False)
        assert wallet.resolve_offline_transaction(drop.id, success=False)
        assert wallet.resolve_offline_transaction(keep.id, success=True)

        ledger = wallet.ledger
        assert ledger.is_chain_valid()
        assert ledger.find_transaction_by_id(keep.id).status == TransactionStatus.CONFIRMED
        assert ledger.find_transaction_by_id(drop.id).status == TransactionStatus.DOUBLE_SPENT
        # 3 online + 2 confirmed offline + 1 invalidated, still replayed
        assert ledger.get_balance_of_address(BOB) == 6
        balance = wallet.wallet.balance

        # Restart from disk
        restored = WalletService(
            SecureStateStore(FileBackend(tmp_path), iterations=FAST),
            difficulty=1, persist_ledger=True
        )
        snapshot = restored.initialize()
        assert restored.address == wallet.address
        assert snapshot.balance == balance
        assert restored.ledger.to_dict() == ledger.to_dict()

        recent = wallet.activity.recent()
        assert len(recent) == 5
        assert recent[0].event_type == EventType.OFFLINE_CONFIRMED
        assert recent[1].event_type == EventType.BLOCK_MINED
        assert wallet.activity.by_type(EventType.TRANSFER_RECEIVED) == []
