"""
Transaction Wizard - step-by-step orchestration of building a transaction.

Walks the live draft through the inputs, outputs, multisig and review
stages, derives totals and the fee estimate from it, and hands it to the
transaction builder. A successful build lands in the pending store and
resets the draft for the next transaction.
"""

from enum import Enum
from typing import Callable, List, Optional

import structlog

from cosigner.config import CosignerConfig, get_config
from cosigner.core.amount import Amount
from cosigner.core.draft import DraftEditor
from cosigner.core.result import ErrorCode, OperationError, Result
from cosigner.core.types import (
    PendingTransaction,
    SignatureRecord,
    TransactionInput,
    generate_transaction_id,
    now_ms,
)
from cosigner.core.validation import find_duplicate_pkhs, is_valid_address
from cosigner.state.pending_store import PendingTransactionStore
from cosigner.tx.builder import TransactionBuilder, estimate_fee
from cosigner.wallet.interface import WalletNote

logger = structlog.get_logger(__name__)


class BuilderStep(str, Enum):
    """Wizard stages, in order."""
    INPUTS = "inputs"
    OUTPUTS = "outputs"
    MULTISIG = "multisig"
    REVIEW = "review"


STEPS = [BuilderStep.INPUTS, BuilderStep.OUTPUTS, BuilderStep.MULTISIG, BuilderStep.REVIEW]


class TransactionWizard:
    """
    Drives the draft from note selection to a built pending transaction.

    The wizard never mutates the draft's contents itself; edits go through
    the DraftEditor it was given.
    """

    def __init__(
        self,
        editor: DraftEditor,
        builder: TransactionBuilder,
        store: PendingTransactionStore,
        notes_provider: Callable[[], List[WalletNote]],
        config: Optional[CosignerConfig] = None,
    ):
        """
        Initialize the wizard.

        Args:
            editor: Owner of the live draft
            builder: Transaction builder
            store: Destination for built transactions
            notes_provider: Returns the active account's wallet notes
            config: Configuration holding the fee estimate constants
        """
        self.editor = editor
        self.builder = builder
        self.store = store
        self.notes_provider = notes_provider
        self.config = config or get_config()

        self.step = BuilderStep.INPUTS
        self.is_building = False
        self.build_error: Optional[OperationError] = None

    # Navigation

    @property
    def is_first_step(self) -> bool:
        return self.step == STEPS[0]

    @property
    def is_last_step(self) -> bool:
        return self.step == STEPS[-1]

    def set_step(self, step: BuilderStep) -> None:
        self.step = BuilderStep(step)

    def next_step(self) -> BuilderStep:
        index = STEPS.index(self.step)
        if index < len(STEPS) - 1:
            self.step = STEPS[index + 1]
        return self.step

    def prev_step(self) -> BuilderStep:
        index = STEPS.index(self.step)
        if index > 0:
            self.step = STEPS[index - 1]
        return self.step

    # Derived values

    @property
    def selected_inputs(self) -> List[TransactionInput]:
        return self.editor.draft.selected_inputs

    @property
    def total_input_amount(self) -> Amount:
        return self.editor.draft.total_input_amount

    @property
    def total_output_amount(self) -> Amount:
        return self.editor.draft.total_output_amount

    @property
    def estimated_fee(self) -> Amount:
        draft = self.editor.draft
        return estimate_fee(
            len(draft.selected_inputs),
            len(draft.outputs),
            int(draft.fee_per_word),
            self.config,
        )

    @property
    def remaining_balance(self) -> int:
        """Change left after outputs and fee. Negative when underfunded."""
        return int(self.total_input_amount) - int(self.total_output_amount) - int(self.estimated_fee)

    def _has_enough_funds(self) -> bool:
        return self.remaining_balance >= 0

    # Validation

    def _inputs_error(self) -> Optional[str]:
        if not self.selected_inputs:
            return "Select at least one input note"
        return None

    def _outputs_error(self) -> Optional[str]:
        outputs = self.editor.draft.outputs
        if not outputs:
            return "Add at least one output"
        for output in outputs:
            if not output.recipient_address:
                return "Enter recipient address"
            if not is_valid_address(output.recipient_address):
                return "Invalid recipient address"
            if output.amount <= 0:
                return "Enter a positive amount"
        if not self._has_enough_funds():
            return "Insufficient funds"
        return None

    def _multisig_error(self) -> Optional[str]:
        config = self.editor.draft.multisig_config
        if not config.signers:
            return "Add at least one signer"
        if config.threshold < 1:
            return "Threshold must be at least 1"
        if config.threshold > len(config.signers):
            return "Threshold exceeds number of signers"
        for signer in config.signers:
            if not is_valid_address(signer.public_key_hash):
                return f"Invalid PKH for {signer.label or 'signer'}"
        if find_duplicate_pkhs(s.public_key_hash for s in config.signers):
            return "Signers must have distinct public key hashes"
        return None

    def _review_error(self) -> Optional[str]:
        return self._inputs_error() or self._outputs_error() or self._multisig_error()

    def _error_for(self, step: BuilderStep) -> Optional[str]:
        checks = {
            BuilderStep.INPUTS: self._inputs_error,
            BuilderStep.OUTPUTS: self._outputs_error,
            BuilderStep.MULTISIG: self._multisig_error,
            BuilderStep.REVIEW: self._review_error,
        }
        return checks[step]()

    @property
    def validation_error(self) -> Optional[str]:
        """Why the current step cannot proceed, or None."""
        return self._error_for(self.step)

    @property
    def can_proceed(self) -> bool:
        return self.validation_error is None

    # Build

    def _resolve_notes(self, selected: List[TransactionInput]) -> List[WalletNote]:
        by_key = {note.key: note for note in self.notes_provider()}
        return [by_key[i.key] for i in selected if i.key in by_key]

    async def build(self) -> Result:
        """
        Build the live draft into a pending transaction.

        On success the transaction is added to the store and the draft and
        step are reset. On failure build_error is set and the draft is
        left exactly as it was.

        Returns:
            Result holding the new PendingTransaction
        """
        if self.is_building:
            return Result.failure(ErrorCode.BUSY, "A build is already in progress")

        self.is_building = True
        self.build_error = None
        try:
            draft = self.editor.snapshot()
            selected = draft.selected_inputs
            notes = self._resolve_notes(selected)
            if len(notes) != len(selected):
                result = Result.failure(
                    ErrorCode.BUILD_FAILED,
                    "Selected notes are no longer available",
                    f"{len(selected) - len(notes)} of {len(selected)} selected notes missing from wallet",
                )
                self.build_error = result.error
                return result

            total_input = draft.total_input_amount
            total_output = draft.total_output_amount
            fee = self.estimated_fee

            result = await self.builder.build(draft, notes, total_input, total_output, fee)
            if not result.ok:
                self.build_error = result.error
                return result

            built = result.value
            tx = PendingTransaction(
                id=generate_transaction_id(),
                created_at=now_ms(),
                draft=draft,
                selected_inputs=selected,
                total_input_amount=total_input,
                total_output_amount=total_output,
                total_fee=fee,
                signatures=[
                    SignatureRecord(signer_id=signer.id)
                    for signer in draft.multisig_config.signers
                ],
                raw_tx_jam=built.raw_tx_jam,
                tx_hash=built.tx_hash,
                note_protobufs=[n.note_protobuf for n in notes],
                spend_condition_protobufs=[n.spend_condition_protobuf for n in notes],
            )
            self.store.add(tx)
            self.editor.reset()
            # Fresh draft starts with the account's notes, none selected
            self.editor.set_available_notes(self.notes_provider())
            self.step = BuilderStep.INPUTS

            logger.info("draft_built", tx_id=tx.id, fee=int(fee))
            return Result.success(tx)
        finally:
            self.is_building = False
