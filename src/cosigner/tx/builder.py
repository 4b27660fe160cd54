"""
Transaction Builder - constructs unsigned multisig transactions.

Turns a validated draft plus the concrete notes behind its selected
inputs into a balanced, unsigned transaction via the ledger engine.
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from cosigner.config import CosignerConfig, get_config
from cosigner.core.amount import Amount
from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import TransactionDraft
from cosigner.core.validation import find_duplicate_pkhs, is_valid_address
from cosigner.ledger.interface import LedgerEngine, ledger_call
from cosigner.wallet.interface import WalletNote

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BuildTransactionResult:
    """Output of a successful build."""
    tx_hash: str
    raw_tx_jam: bytes


def estimate_fee(
    num_inputs: int,
    num_outputs: int,
    fee_per_word: int,
    config: Optional[CosignerConfig] = None,
) -> Amount:
    """
    Estimate the transaction fee.

    A linear size model in words multiplied by the fee rate. The exact fee
    is whatever balancing during build produces; this is only the amount
    reserved up front.

    Args:
        num_inputs: Number of selected inputs
        num_outputs: Number of outputs
        fee_per_word: Fee rate in nicks per word
        config: Configuration holding the size constants

    Returns:
        Estimated fee in nicks
    """
    config = config or get_config()
    size = (
        config.fee_base_words
        + num_inputs * config.fee_words_per_input
        + num_outputs * config.fee_words_per_output
    )
    return Amount(size * int(fee_per_word))


def validate_outputs(draft: TransactionDraft) -> Result:
    """Check that every output has a valid recipient and a positive amount."""
    if not draft.outputs:
        return Result.failure(ErrorCode.INVALID_OUTPUT, "At least one output is required")

    for output in draft.outputs:
        if not output.recipient_address or output.amount <= 0:
            return Result.failure(
                ErrorCode.INVALID_OUTPUT,
                "All outputs must have a valid recipient address and positive amount",
                f"Output {output.id}",
            )
        if not is_valid_address(output.recipient_address):
            return Result.failure(
                ErrorCode.INVALID_OUTPUT,
                f"Invalid recipient address format: {output.recipient_address[:20]}...",
                output.recipient_address,
            )
    return Result.success(None)


def validate_multisig(draft: TransactionDraft) -> Result:
    """Check signer count, threshold range and every signer key."""
    threshold = draft.multisig_config.threshold
    signers = draft.multisig_config.signers

    if not signers:
        return Result.failure(ErrorCode.INVALID_MULTISIG, "At least one signer is required")
    if threshold < 1 or threshold > len(signers):
        return Result.failure(
            ErrorCode.INVALID_MULTISIG,
            f"Invalid threshold: {threshold} of {len(signers)} signers",
        )
    for signer in signers:
        if not is_valid_address(signer.public_key_hash):
            return Result.failure(
                ErrorCode.INVALID_MULTISIG,
                f"Invalid public key hash for {signer.label or 'signer'}",
                signer.public_key_hash,
            )
    duplicates = find_duplicate_pkhs(s.public_key_hash for s in signers)
    if duplicates:
        return Result.failure(
            ErrorCode.INVALID_MULTISIG,
            "Each signer must have a distinct public key hash",
            ", ".join(duplicates),
        )
    return Result.success(None)


class TransactionBuilder:
    """
    Builds unsigned multisig transactions.

    Change always returns under the same threshold-of-signers lock as the
    draft's multisig configuration, never to an individual signer.
    """

    def __init__(self, ledger: LedgerEngine):
        """
        Initialize the transaction builder.

        Args:
            ledger: Ledger engine used for every encoding and balancing step
        """
        self.ledger = ledger

    async def build(
        self,
        draft: TransactionDraft,
        notes: List[WalletNote],
        total_input_amount: int,
        total_output_amount: int,
        estimated_fee: int,
    ) -> Result:
        """
        Build an unsigned transaction for a draft.

        Args:
            draft: The draft to build
            notes: Wallet notes behind the draft's selected inputs, in order
            total_input_amount: Sum of the selected inputs
            total_output_amount: Sum of the outputs
            estimated_fee: Fee to reserve

        Returns:
            Result holding a BuildTransactionResult
        """
        total_needed = int(total_output_amount) + int(estimated_fee)
        if int(total_input_amount) < total_needed:
            return Result.failure(
                ErrorCode.INSUFFICIENT_FUNDS,
                f"Insufficient funds: have {int(total_input_amount)} nicks, need {total_needed} nicks",
            )

        checked = validate_outputs(draft)
        if not checked.ok:
            return checked

        checked = validate_multisig(draft)
        if not checked.ok:
            return checked

        if not notes:
            return Result.failure(ErrorCode.BUILD_FAILED, "No input notes to spend")

        logger.info(
            "building_transaction",
            inputs=len(notes),
            outputs=len(draft.outputs),
            threshold=draft.multisig_config.threshold,
            signers=len(draft.multisig_config.signers),
        )

        result = self._build_spends(draft, notes, int(estimated_fee))
        if not result.ok:
            logger.error(
                "transaction_build_failed",
                error=result.error.message,
                details=result.error.details,
            )
            return result

        logger.info(
            "transaction_built",
            tx_hash=result.value.tx_hash[:16] + "...",
            size=len(result.value.raw_tx_jam),
        )
        return result

    def _build_spends(
        self,
        draft: TransactionDraft,
        notes: List[WalletNote],
        estimated_fee: int,
    ) -> Result:
        ledger = self.ledger
        threshold = draft.multisig_config.threshold
        signer_pkhs = [s.public_key_hash for s in draft.multisig_config.signers]

        parsed = ledger_call("Failed to parse notes", lambda: [ledger.parse_note(n.note_protobuf) for n in notes])
        if not parsed.ok:
            return parsed
        ledger_notes = parsed.value

        parsed = ledger_call(
            "Failed to parse spend conditions",
            lambda: [ledger.parse_spend_condition(n.spend_condition_protobuf) for n in notes],
        )
        if not parsed.ok:
            return parsed
        spend_conditions = parsed.value

        step = ledger_call(
            "Failed to initialize transaction builder",
            lambda: ledger.new_transaction_builder(int(draft.fee_per_word)),
        )
        if not step.ok:
            return step
        tx_builder = step.value

        if len(signer_pkhs) > 1:
            step = ledger_call(
                "Failed to create refund lock",
                lambda: ledger.threshold_pkh_lock(threshold, signer_pkhs),
            )
        else:
            step = ledger_call(
                "Failed to create refund lock",
                lambda: ledger.single_pkh_lock(signer_pkhs[0]),
            )
        if not step.ok:
            return step
        refund_lock = step.value

        remaining_fee = estimated_fee
        for i, (wallet_note, note, spend_condition) in enumerate(zip(notes, ledger_notes, spend_conditions)):
            step = ledger_call(
                f"Failed to create spend builder for note {i}",
                lambda: ledger.new_spend(note, spend_condition, refund_lock),
            )
            if not step.ok:
                return step
            spend = step.value

            seeded = 0
            # Only the first spend carries the outputs; the others just
            # contribute their value as refund under the shared lock.
            if i == 0:
                for output in draft.outputs:
                    step = self._attach_seed(spend, wallet_note, output.recipient_address, int(output.amount))
                    if not step.ok:
                        return step
                    seeded += int(output.amount)

            is_last = i == len(notes) - 1
            if is_last:
                fee_share = remaining_fee
            else:
                fee_share = min(remaining_fee, max(int(wallet_note.assets) - seeded, 0))
            remaining_fee -= fee_share

            step = ledger_call(
                f"Failed to compute refund for note {i}",
                lambda: ledger.compute_refund(spend, fee_share),
            )
            if not step.ok:
                return step

            step = ledger_call(f"Failed to check balance of spend {i}", lambda: ledger.is_balanced(spend))
            if not step.ok:
                return step
            if not step.value:
                return Result.failure(
                    ErrorCode.BUILD_FAILED,
                    f"Spend {i} is not balanced: input assets do not equal seeds + fee",
                )

            step = ledger_call(
                f"Failed to add spend {i} to transaction",
                lambda: ledger.add_spend(tx_builder, spend),
            )
            if not step.ok:
                return step

        # Non-strict build: a strict validation would demand the
        # signatures that co-signers have not provided yet.
        step = ledger_call("Failed to build transaction", lambda: ledger.build_transaction(tx_builder))
        if not step.ok:
            return step
        transaction = step.value

        tx_hash = ledger_call("Failed to get transaction hash", lambda: ledger.transaction_id(transaction))
        if not tx_hash.ok:
            return tx_hash

        raw = ledger_call("Failed to serialize transaction", lambda: ledger.serialize_transaction(transaction))
        if not raw.ok:
            return raw

        return Result.success(BuildTransactionResult(tx_hash=tx_hash.value, raw_tx_jam=bytes(raw.value)))

    def _attach_seed(self, spend, wallet_note: WalletNote, recipient: str, amount: int) -> Result:
        """Lock one output's amount to the recipient and add it to a spend."""
        ledger = self.ledger

        step = ledger_call("Failed to create recipient PKH", lambda: ledger.single_pkh_lock(recipient))
        if not step.ok:
            return step
        recipient_lock = step.value

        step = ledger_call("Failed to get recipient lock digest", lambda: ledger.lock_digest(recipient_lock))
        if not step.ok:
            return step
        recipient_digest = step.value

        step = ledger_call(
            "Failed to create seed",
            lambda: ledger.new_seed(recipient_digest, amount, wallet_note.note_hash),
        )
        if not step.ok:
            return step
        seed = step.value

        return ledger_call("Failed to add seed to spend", lambda: ledger.add_seed(spend, seed))
