"""
Pending Transaction Store - owns every built or imported transaction.

Tracks transactions from build through signature collection to broadcast
and confirmation. Records are immutable; each state change replaces the
stored record with an updated copy.
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import structlog

from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import (
    PendingTransaction,
    TransactionStatus,
    now_ms,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SignatureProgress:
    """How far a transaction is towards its threshold."""
    signed: int
    required: int
    total: int

    @property
    def is_complete(self) -> bool:
        return self.signed >= self.required

    @property
    def remaining(self) -> int:
        return max(self.required - self.signed, 0)

    @property
    def percent(self) -> float:
        if self.required <= 0:
            return 100.0
        return min(self.signed / self.required * 100.0, 100.0)


def signature_progress(tx: PendingTransaction) -> SignatureProgress:
    return SignatureProgress(
        signed=tx.signature_count,
        required=tx.threshold,
        total=len(tx.signers),
    )


class PendingTransactionStore:
    """
    Ordered collection of pending transactions keyed by id.

    Lifecycle: pending -> ready -> broadcast -> confirmed. Status never
    moves backwards, and only a ready transaction may be broadcast.
    """

    def __init__(self):
        # Insertion-ordered, oldest first
        self._transactions: Dict[str, PendingTransaction] = {}

    def __len__(self) -> int:
        return len(self._transactions)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._transactions

    def get(self, tx_id: str) -> Optional[PendingTransaction]:
        """Get a transaction by ID."""
        return self._transactions.get(tx_id)

    def list(self, status: Optional[TransactionStatus] = None) -> List[PendingTransaction]:
        """
        List transactions in insertion order.

        Args:
            status: Only return transactions with this status

        Returns:
            List of transactions
        """
        if status is None:
            return list(self._transactions.values())
        return [tx for tx in self._transactions.values() if tx.status == status]

    def ids(self) -> List[str]:
        return list(self._transactions)

    def add(self, tx: PendingTransaction) -> bool:
        """
        Add a freshly built transaction.

        Returns:
            True if added, False if the id already exists
        """
        if tx.id in self._transactions:
            logger.debug("transaction_already_exists", tx_id=tx.id)
            return False
        self._transactions[tx.id] = tx
        logger.info(
            "transaction_added",
            tx_id=tx.id,
            threshold=tx.threshold,
            signers=len(tx.signers),
        )
        return True

    def import_transaction(self, tx: PendingTransaction) -> bool:
        """
        Insert an imported transaction unless its id is already present.

        Returns:
            True if inserted, False for a duplicate (store unchanged)
        """
        if tx.id in self._transactions:
            logger.debug("import_skipped_duplicate", tx_id=tx.id)
            return False
        self._transactions[tx.id] = tx
        logger.info(
            "transaction_imported",
            tx_id=tx.id,
            status=tx.status.value,
            signed=tx.signature_count,
            threshold=tx.threshold,
        )
        return True

    def add_signature(self, tx_id: str, signer_id: str, signature: bytes) -> Result:
        """
        Record a signer's signature.

        The signer's slot is filled and stamped. A pending or ready
        transaction becomes ready once the signed count reaches the
        threshold; broadcast and confirmed records keep their status.

        Args:
            tx_id: Transaction to update
            signer_id: Configured signer who signed
            signature: Signature bytes

        Returns:
            Result holding the updated PendingTransaction
        """
        tx = self._transactions.get(tx_id)
        if tx is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Transaction not found", tx_id)

        if tx.signature_for(signer_id) is None:
            return Result.failure(
                ErrorCode.INVALID_STATE,
                "Signer is not part of this transaction",
                signer_id,
            )

        signed_at = now_ms()
        signatures = [
            replace(record, signature=bytes(signature), signed_at=signed_at)
            if record.signer_id == signer_id
            else record
            for record in tx.signatures
        ]
        updated = replace(tx, signatures=signatures)

        if tx.status in (TransactionStatus.PENDING, TransactionStatus.READY):
            status = TransactionStatus.READY if updated.is_ready else TransactionStatus.PENDING
            updated = replace(updated, status=status)

        self._transactions[tx_id] = updated
        logger.info(
            "signature_added",
            tx_id=tx_id,
            signer_id=signer_id,
            signed=updated.signature_count,
            threshold=updated.threshold,
            status=updated.status.value,
        )
        return Result.success(updated)

    def update_signed_tx(self, tx_id: str, signed_tx: bytes) -> Result:
        """Store the latest signed serialization. No threshold gating."""
        tx = self._transactions.get(tx_id)
        if tx is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Transaction not found", tx_id)

        updated = replace(tx, signed_tx=bytes(signed_tx))
        self._transactions[tx_id] = updated
        logger.debug("signed_tx_updated", tx_id=tx_id, size=len(signed_tx))
        return Result.success(updated)

    def broadcast_transaction(self, tx_id: str, tx_hash: str) -> Result:
        """
        Mark a ready transaction as broadcast and record the network hash.

        Returns:
            Result holding the updated PendingTransaction; INVALID_STATE
            unless the transaction is ready
        """
        tx = self._transactions.get(tx_id)
        if tx is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Transaction not found", tx_id)

        if tx.status != TransactionStatus.READY:
            logger.warning(
                "broadcast_rejected",
                tx_id=tx_id,
                status=tx.status.value,
            )
            return Result.failure(
                ErrorCode.INVALID_STATE,
                "Transaction is not ready for broadcast",
                f"Status is {tx.status.value}",
            )

        updated = replace(tx, status=TransactionStatus.BROADCAST, tx_hash=tx_hash)
        self._transactions[tx_id] = updated
        logger.info("transaction_broadcast", tx_id=tx_id, tx_hash=tx_hash[:16] + "...")
        return Result.success(updated)

    def confirm_transaction(self, tx_id: str) -> Result:
        """Mark a broadcast transaction as confirmed on-chain."""
        tx = self._transactions.get(tx_id)
        if tx is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Transaction not found", tx_id)

        if tx.status != TransactionStatus.BROADCAST:
            return Result.failure(
                ErrorCode.INVALID_STATE,
                "Only broadcast transactions can be confirmed",
                f"Status is {tx.status.value}",
            )

        updated = replace(tx, status=TransactionStatus.CONFIRMED)
        self._transactions[tx_id] = updated
        logger.info("transaction_confirmed", tx_id=tx_id)
        return Result.success(updated)

    def remove_pending_transaction(self, tx_id: str) -> Optional[PendingTransaction]:
        """
        Remove a transaction regardless of its status.

        Returns:
            The removed transaction, or None if not found
        """
        tx = self._transactions.pop(tx_id, None)
        if tx is None:
            return None
        if tx.status in (TransactionStatus.BROADCAST, TransactionStatus.CONFIRMED):
            logger.warning("submitted_transaction_removed", tx_id=tx_id, status=tx.status.value)
        else:
            logger.debug("transaction_removed", tx_id=tx_id)
        return tx

    def signature_progress(self, tx_id: str) -> Optional[SignatureProgress]:
        tx = self._transactions.get(tx_id)
        if tx is None:
            return None
        return signature_progress(tx)

    def clear(self) -> None:
        self._transactions.clear()

    def get_stats(self) -> dict:
        """Get store statistics."""
        stats = {"total": len(self._transactions)}
        for status in TransactionStatus:
            stats[status.value] = sum(1 for tx in self._transactions.values() if tx.status == status)
        return stats
