"""
Test suite for the pending transaction store and its lifecycle.
"""

import pytest

from cosigner.core.result import ErrorCode
from cosigner.core.types import TransactionStatus
from cosigner.state.pending_store import (
    PendingTransactionStore,
    SignatureProgress,
    signature_progress,
)


@pytest.fixture
def store() -> PendingTransactionStore:
    return PendingTransactionStore()


def _signer_id(tx, index):
    return tx.signers[index].id


# ============================================================================
# Test Insertion
# ============================================================================

class TestInsertion:
    """Tests for adding and importing transactions."""

    def test_add(self, store, make_pending):
        tx = make_pending()

        assert store.add(tx) is True
        assert tx.id in store
        assert store.get(tx.id) is tx
        assert len(store) == 1

    def test_add_duplicate(self, store, make_pending):
        tx = make_pending()
        store.add(tx)
        assert store.add(tx) is False
        assert len(store) == 1

    def test_import_duplicate_leaves_store_unchanged(self, store, make_pending):
        original = make_pending()
        store.add(original)
        copy = make_pending(id=original.id, signed_by=[0])

        assert store.import_transaction(copy) is False
        assert len(store) == 1
        assert store.get(original.id).signature_count == 0

    def test_list_in_insertion_order(self, store, make_pending):
        txs = [make_pending(id=f"tx-{i}") for i in range(3)]
        for tx in txs:
            store.add(tx)

        assert [tx.id for tx in store.list()] == ["tx-0", "tx-1", "tx-2"]
        assert store.ids() == ["tx-0", "tx-1", "tx-2"]

    def test_list_by_status(self, store, make_pending):
        store.add(make_pending(id="a"))
        store.add(make_pending(id="b", status=TransactionStatus.READY, signed_by=[0, 1]))

        assert [tx.id for tx in store.list(TransactionStatus.READY)] == ["b"]


# ============================================================================
# Test Signatures
# ============================================================================

class TestSignatures:
    """Tests for signature collection against the threshold."""

    def test_below_threshold_stays_pending(self, store, make_pending):
        tx = make_pending()
        store.add(tx)

        result = store.add_signature(tx.id, _signer_id(tx, 0), b"\x01" * 64)

        assert result.ok
        assert result.value.status == TransactionStatus.PENDING
        assert result.value.signature_count == 1

    def test_threshold_makes_ready(self, store, make_pending):
        tx = make_pending()
        store.add(tx)

        store.add_signature(tx.id, _signer_id(tx, 0), b"\x01" * 64)
        result = store.add_signature(tx.id, _signer_id(tx, 2), b"\x03" * 64)

        assert result.value.status == TransactionStatus.READY
        assert store.get(tx.id).is_ready

    def test_same_signer_twice_does_not_reach_threshold(self, store, make_pending):
        tx = make_pending()
        store.add(tx)
        signer_id = _signer_id(tx, 0)

        store.add_signature(tx.id, signer_id, b"\x01" * 64)
        result = store.add_signature(tx.id, signer_id, b"\x02" * 64)

        assert result.value.signature_count == 1
        assert result.value.status == TransactionStatus.PENDING
        assert result.value.signature_for(signer_id).signature == b"\x02" * 64

    def test_signature_is_stamped(self, store, make_pending):
        tx = make_pending()
        store.add(tx)

        updated = store.add_signature(tx.id, _signer_id(tx, 1), b"\x01" * 64).value

        assert updated.signature_for(_signer_id(tx, 1)).signed_at is not None

    def test_record_is_replaced_not_mutated(self, store, make_pending):
        tx = make_pending()
        store.add(tx)

        store.add_signature(tx.id, _signer_id(tx, 0), b"\x01" * 64)

        assert tx.signature_count == 0
        assert store.get(tx.id) is not tx

    def test_unknown_transaction(self, store):
        result = store.add_signature("missing", "signer", b"\x01")
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_unknown_signer(self, store, make_pending):
        tx = make_pending()
        store.add(tx)

        result = store.add_signature(tx.id, "stranger", b"\x01")

        assert result.error.code == ErrorCode.INVALID_STATE

    def test_late_signature_keeps_broadcast_status(self, store, make_pending):
        tx = make_pending(status=TransactionStatus.BROADCAST, signed_by=[0, 1])
        store.add(tx)

        result = store.add_signature(tx.id, _signer_id(tx, 2), b"\x03" * 64)

        assert result.value.status == TransactionStatus.BROADCAST
        assert result.value.signature_count == 3

    def test_update_signed_tx(self, store, make_pending):
        tx = make_pending()
        store.add(tx)

        result = store.update_signed_tx(tx.id, b"signed")

        assert result.value.signed_tx == b"signed"
        assert result.value.status == TransactionStatus.PENDING
        assert store.update_signed_tx("missing", b"x").error.code == ErrorCode.NOT_FOUND


# ============================================================================
# Test Lifecycle
# ============================================================================

class TestLifecycle:
    """Tests for broadcast, confirmation and removal."""

    def test_broadcast_requires_ready(self, store, make_pending):
        tx = make_pending(signed_by=[0])
        store.add(tx)

        result = store.broadcast_transaction(tx.id, "net-hash")

        assert result.error.code == ErrorCode.INVALID_STATE
        assert result.error.message == "Transaction is not ready for broadcast"
        assert store.get(tx.id).status == TransactionStatus.PENDING

    def test_broadcast_records_hash(self, store, make_pending):
        tx = make_pending(status=TransactionStatus.READY, signed_by=[0, 1])
        store.add(tx)

        result = store.broadcast_transaction(tx.id, "net-hash-0123456789abcdef")

        assert result.value.status == TransactionStatus.BROADCAST
        assert result.value.tx_hash == "net-hash-0123456789abcdef"

    def test_broadcast_twice_rejected(self, store, make_pending):
        tx = make_pending(status=TransactionStatus.READY, signed_by=[0, 1])
        store.add(tx)
        store.broadcast_transaction(tx.id, "first-hash")

        result = store.broadcast_transaction(tx.id, "second-hash")

        assert result.error.code == ErrorCode.INVALID_STATE
        assert store.get(tx.id).tx_hash == "first-hash"

    def test_confirm(self, store, make_pending):
        tx = make_pending(status=TransactionStatus.BROADCAST, signed_by=[0, 1])
        store.add(tx)

        assert store.confirm_transaction(tx.id).value.status == TransactionStatus.CONFIRMED

    def test_confirm_requires_broadcast(self, store, make_pending):
        tx = make_pending(status=TransactionStatus.READY, signed_by=[0, 1])
        store.add(tx)

        assert store.confirm_transaction(tx.id).error.code == ErrorCode.INVALID_STATE

    def test_status_order(self):
        ranks = [s.rank for s in TransactionStatus]
        assert ranks == sorted(ranks)

    @pytest.mark.parametrize("status", list(TransactionStatus))
    def test_remove_any_status(self, store, make_pending, status):
        tx = make_pending(status=status)
        store.add(tx)

        assert store.remove_pending_transaction(tx.id) is tx
        assert tx.id not in store

    def test_remove_missing(self, store):
        assert store.remove_pending_transaction("missing") is None

    def test_clear_and_stats(self, store, make_pending):
        store.add(make_pending(id="a"))
        store.add(make_pending(id="b", status=TransactionStatus.READY, signed_by=[0, 1]))

        stats = store.get_stats()
        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["ready"] == 1

        store.clear()
        assert len(store) == 0


# ============================================================================
# Test Progress
# ============================================================================

class TestSignatureProgress:
    """Tests for threshold progress reporting."""

    def test_progress(self, make_pending):
        progress = signature_progress(make_pending(signed_by=[0]))

        assert progress == SignatureProgress(signed=1, required=2, total=3)
        assert progress.remaining == 1
        assert progress.percent == 50.0
        assert not progress.is_complete

    def test_progress_capped(self):
        progress = SignatureProgress(signed=3, required=2, total=3)
        assert progress.is_complete
        assert progress.remaining == 0
        assert progress.percent == 100.0

    def test_store_progress(self, store, make_pending):
        tx = make_pending(signed_by=[0, 1])
        store.add(tx)

        assert store.signature_progress(tx.id).is_complete
        assert store.signature_progress("missing") is None
