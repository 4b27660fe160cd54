"""
Signing and broadcast orchestration.

Coordinates the co-signing half of the lifecycle on top of the pending
store: collecting the connected user's signature, exchanging
transactions with other co-signers through the export codec, and
simulating then broadcasting once the threshold is met.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import structlog

from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import PendingTransaction, TransactionStatus
from cosigner.ledger.interface import LedgerEngine, ledger_call, parse_ledger_error
from cosigner.state.pending_store import PendingTransactionStore, SignatureProgress, signature_progress
from cosigner.tx.codec import export_transaction, import_transaction
from cosigner.tx.simulation import simulate_transaction
from cosigner.wallet.interface import SigningMetadata
from cosigner.wallet.session import WalletSession
from cosigner.wallet.test_mode import mock_tx_hash

logger = structlog.get_logger(__name__)


class BroadcastStatus(str, Enum):
    """Progress of the most recent broadcast attempt."""
    IDLE = "idle"
    SIMULATING = "simulating"
    BROADCASTING = "broadcasting"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class BroadcastState:
    """What the user should see about the most recent broadcast."""
    tx_id: Optional[str] = None
    status: BroadcastStatus = BroadcastStatus.IDLE
    message: Optional[str] = None
    details: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class SignerStatus:
    """One configured signer of a transaction, as seen by the current user."""
    id: str
    public_key_hash: str
    label: str
    has_signed: bool
    signed_at: Optional[int]
    is_current_user: bool


class SigningCoordinator:
    """
    Signs, exchanges and broadcasts pending transactions.

    At most one signing and one broadcast run at a time; a second request
    while one is in flight is refused with BUSY.
    """

    def __init__(
        self,
        store: PendingTransactionStore,
        session: WalletSession,
        ledger: LedgerEngine,
    ):
        self.store = store
        self.session = session
        self.ledger = ledger

        self.signing: Optional[str] = None
        self.sign_error: Optional[str] = None
        self.broadcast_state = BroadcastState()
        self._broadcasting: Optional[str] = None

    @property
    def broadcasting(self) -> Optional[str]:
        """Id of the transaction being simulated or broadcast, if any."""
        return self._broadcasting

    @property
    def broadcast_error(self) -> Optional[str]:
        if self.broadcast_state.status == BroadcastStatus.ERROR:
            return self.broadcast_state.message
        return None

    def clear_broadcast_state(self) -> None:
        self.broadcast_state = BroadcastState()

    # Queries

    def signature_progress(self, tx: PendingTransaction) -> SignatureProgress:
        return signature_progress(tx)

    def can_current_user_sign(self, tx: PendingTransaction) -> bool:
        """True when the connected key is a signer whose slot is still empty."""
        pkh = self.session.pkh
        if not pkh:
            return False
        signer = tx.find_signer(pkh)
        if signer is None:
            return False
        record = tx.signature_for(signer.id)
        return record is not None and not record.is_signed

    def signer_status(self, tx: PendingTransaction) -> List[SignerStatus]:
        pkh = (self.session.pkh or "").lower()
        statuses = []
        for signer in tx.signers:
            record = tx.signature_for(signer.id)
            statuses.append(
                SignerStatus(
                    id=signer.id,
                    public_key_hash=signer.public_key_hash,
                    label=signer.label,
                    has_signed=bool(record and record.is_signed),
                    signed_at=record.signed_at if record else None,
                    is_current_user=bool(pkh) and signer.public_key_hash.lower() == pkh,
                )
            )
        return statuses

    # Exchange

    def export(self, tx_id: str) -> Result:
        """Export a pending transaction as a portable token."""
        tx = self.store.get(tx_id)
        if tx is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Transaction not found", tx_id)
        return Result.success(export_transaction(tx))

    def import_token(self, token: str) -> Result:
        """
        Decode a co-signer's token and add it to the store.

        Returns:
            Result holding the imported PendingTransaction
        """
        result = import_transaction(token, self.store.ids())
        if not result.ok:
            logger.warning("import_failed", code=result.error.code.value, error=result.error.message)
            return result
        if not self.store.import_transaction(result.value):
            return Result.failure(ErrorCode.DUPLICATE_IMPORT, "Transaction already exists", result.value.id)
        return result

    def remove(self, tx_id: str) -> bool:
        return self.store.remove_pending_transaction(tx_id) is not None

    # Signing

    async def sign(self, tx_id: str) -> Result:
        """
        Sign a pending transaction with the connected wallet.

        Returns:
            Result holding the updated PendingTransaction
        """
        if self.signing is not None:
            return Result.failure(ErrorCode.BUSY, "Another transaction is being signed", self.signing)

        self.sign_error = None
        result = await self._sign(tx_id)
        if not result.ok:
            self.sign_error = result.error.message
            logger.warning("sign_failed", tx_id=tx_id, code=result.error.code.value, error=result.error.message)
        return result

    async def _sign(self, tx_id: str) -> Result:
        pkh = self.session.pkh
        if not pkh:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Wallet not connected")

        tx = self.store.get(tx_id)
        if tx is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Transaction not found", tx_id)

        if not tx.raw_tx_jam:
            return Result.failure(
                ErrorCode.MISSING_REQUIRED_DATA,
                "Transaction is missing required data for signing",
            )

        signer = tx.find_signer(pkh)
        if signer is None:
            return Result.failure(
                ErrorCode.INVALID_STATE,
                "Your wallet is not a signer for this transaction",
            )

        self.signing = tx_id
        try:
            if self.session.is_test_mode:
                signed = await self.session.wallet.sign_transaction(None, SigningMetadata())
                if not signed.ok:
                    return signed
                signature = signed.value
                # Test mode has no real witness; append the signature to the body
                signed_tx = tx.raw_tx_jam + signature
            else:
                prepared = self._prepare_signing(tx)
                if not prepared.ok:
                    return prepared
                unsigned_tx, metadata = prepared.value
                signed = await self.session.wallet.sign_transaction(unsigned_tx, metadata)
                if not signed.ok:
                    return signed
                signature = signed.value
                signed_tx = signature

            updated = self.store.add_signature(tx_id, signer.id, signature)
            if not updated.ok:
                return updated
            updated = self.store.update_signed_tx(tx_id, signed_tx)
            logger.info("transaction_signed", tx_id=tx_id, signer=signer.label)
            return updated
        finally:
            self.signing = None

    def _prepare_signing(self, tx: PendingTransaction) -> Result:
        """Decode the transaction and its source notes for the signer."""
        if not tx.note_protobufs:
            return Result.failure(
                ErrorCode.MISSING_REQUIRED_DATA,
                "Transaction is missing note data required for signing. "
                "Please re-export from the original creator.",
            )

        ledger = self.ledger
        return ledger_call(
            "Failed to decode transaction for signing",
            lambda: (
                ledger.parse_transaction(tx.raw_tx_jam),
                SigningMetadata(
                    notes=[ledger.parse_note(n) for n in tx.note_protobufs],
                    spend_conditions=[ledger.parse_spend_condition(s) for s in tx.spend_condition_protobufs],
                ),
            ),
            code=ErrorCode.SIGNING_FAILED,
        )

    # Broadcast

    def _set_state(
        self,
        tx_id: str,
        status: BroadcastStatus,
        message: Optional[str],
        details: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> None:
        self.broadcast_state = BroadcastState(
            tx_id=tx_id,
            status=status,
            message=message,
            details=details,
            warnings=list(warnings or []),
        )

    def _fail_broadcast(self, tx_id: str, result: Result, warnings: Optional[List[str]] = None) -> Result:
        self._set_state(tx_id, BroadcastStatus.ERROR, result.error.message, result.error.details, warnings)
        logger.warning("broadcast_failed", tx_id=tx_id, error=result.error.message)
        return result

    async def broadcast(self, tx_id: str) -> Result:
        """
        Simulate and then broadcast a ready transaction.

        Returns:
            Result holding the updated PendingTransaction
        """
        if self._broadcasting is not None:
            return Result.failure(ErrorCode.BUSY, "Another transaction is being broadcast", self._broadcasting)

        tx = self.store.get(tx_id)
        if tx is None:
            return self._fail_broadcast(
                tx_id, Result.failure(ErrorCode.NOT_FOUND, "Transaction not found")
            )

        if tx.status != TransactionStatus.READY:
            return self._fail_broadcast(
                tx_id,
                Result.failure(
                    ErrorCode.INVALID_STATE,
                    "Transaction is not ready for broadcast",
                    "More signatures are needed before broadcasting",
                ),
            )

        self._broadcasting = tx_id
        try:
            return await self._broadcast(tx)
        finally:
            self._broadcasting = None

    async def _broadcast(self, tx: PendingTransaction) -> Result:
        test_mode = self.session.is_test_mode

        self._set_state(
            tx.id,
            BroadcastStatus.SIMULATING,
            "Validating transaction (Test Mode)..." if test_mode else "Validating transaction...",
        )
        simulation = simulate_transaction(tx, self.ledger, test_mode=test_mode)
        if not simulation.ok:
            return self._fail_broadcast(tx.id, simulation)

        warnings = simulation.value.warnings
        self._set_state(
            tx.id,
            BroadcastStatus.BROADCASTING,
            "Simulating broadcast..." if test_mode else "Broadcasting to network...",
            warnings=warnings,
        )

        if test_mode:
            tx_hash = mock_tx_hash(tx.id)
            warnings = warnings + [
                "This is a simulated broadcast - no actual transaction was sent to the network"
            ]
            success_message = "Transaction broadcast successfully (Test Mode)"
        else:
            sent = await self.session.wallet.broadcast_transaction(tx.signed_tx or tx.raw_tx_jam)
            if not sent.ok:
                message, details = parse_ledger_error(sent.error.details or sent.error.message)
                return self._fail_broadcast(
                    tx.id,
                    Result.failure(sent.error.code, message, details),
                    warnings,
                )
            tx_hash = sent.value
            success_message = "Transaction broadcast successfully"

        updated = self.store.broadcast_transaction(tx.id, tx_hash)
        if not updated.ok:
            return self._fail_broadcast(tx.id, updated, warnings)

        self._set_state(tx.id, BroadcastStatus.SUCCESS, success_message, tx_hash, warnings)
        return updated
