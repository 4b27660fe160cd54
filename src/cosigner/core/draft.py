"""
Draft editor - owns the single live transaction draft.

All mutation of the draft goes through the named operations here.
Edits are allowed to leave the draft transiently invalid (for example an
output with a zero amount while the user is typing); full validation is
deferred to the wizard and the transaction builder.
"""

from typing import TYPE_CHECKING, Iterable, List, Optional

import structlog

from cosigner.core.amount import Amount
from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import (
    MultisigConfig,
    SignerConfig,
    TransactionDraft,
    TransactionInput,
    TransactionOutput,
    create_empty_draft,
    generate_signer_id,
)
from cosigner.core.validation import normalize_pkh

if TYPE_CHECKING:
    from cosigner.wallet.interface import WalletNote

logger = structlog.get_logger(__name__)

_UNSET = object()


def clamp_threshold(threshold: int, signer_count: int) -> int:
    """Clamp a threshold into [1, signer_count] (1 when there are no signers)."""
    return max(1, min(threshold, max(signer_count, 1)))


class DraftEditor:
    """
    Mutators for the live draft.

    The editor never hands out its draft for mutation elsewhere:
    snapshot() returns a deep copy, and reset() replaces the draft with a
    fresh empty one.
    """

    def __init__(self, default_fee_per_word: int = 32768):
        """
        Initialize the editor with an empty draft.

        Args:
            default_fee_per_word: Fee rate applied to new drafts
        """
        self._default_fee_per_word = default_fee_per_word
        self._draft = create_empty_draft(default_fee_per_word)

    @property
    def draft(self) -> TransactionDraft:
        """The live draft (read it, mutate it only through the editor)."""
        return self._draft

    def snapshot(self) -> TransactionDraft:
        return self._draft.copy()

    def reset(self) -> None:
        """Replace the live draft with an empty one."""
        self._draft = create_empty_draft(self._default_fee_per_word)
        logger.debug("draft_reset")

    # Inputs

    def set_available_notes(self, wallet_notes: Iterable["WalletNote"]) -> None:
        """
        Rebuild the candidate inputs from the wallet's note list.

        Selections survive the refresh for notes whose (name_first,
        name_last) is unchanged; notes that disappeared drop their
        selection with them.
        """
        existing = {i.key: i.selected for i in self._draft.inputs}
        inputs: List[TransactionInput] = []
        for note in wallet_notes:
            tx_input = note.to_transaction_input()
            tx_input.selected = existing.get(tx_input.key, False)
            inputs.append(tx_input)
        self._draft.inputs = inputs
        logger.debug(
            "available_notes_set",
            count=len(inputs),
            selected=sum(1 for i in inputs if i.selected),
        )

    def toggle_note_selection(self, index: int) -> bool:
        """Flip selection of the input at index. Returns False if out of range."""
        if not 0 <= index < len(self._draft.inputs):
            return False
        tx_input = self._draft.inputs[index]
        tx_input.selected = not tx_input.selected
        return True

    def select_all_notes(self) -> None:
        for tx_input in self._draft.inputs:
            tx_input.selected = True

    def deselect_all_notes(self) -> None:
        for tx_input in self._draft.inputs:
            tx_input.selected = False

    # Outputs

    def add_output(
        self,
        recipient_address: str = "",
        amount: int = 0,
    ) -> TransactionOutput:
        """Append an output and return it."""
        output = TransactionOutput(
            recipient_address=recipient_address,
            amount=Amount(amount),
        )
        self._draft.outputs.append(output)
        return output

    def update_output(
        self,
        output_id: str,
        recipient_address: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> Result:
        """
        Update an output's recipient and/or amount.

        A zero amount is accepted here; positivity is checked at build time.
        Negative amounts are rejected with INVALID_AMOUNT.
        """
        output = self._find_output(output_id)
        if output is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"Output not found: {output_id}")

        if amount is not None:
            if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
                return Result.failure(
                    ErrorCode.INVALID_AMOUNT,
                    "Amount must be a non-negative integer",
                    f"Got {amount!r}",
                )
            output.amount = Amount(amount)
        if recipient_address is not None:
            output.recipient_address = recipient_address

        return Result.success(output)

    def remove_output(self, output_id: str) -> bool:
        before = len(self._draft.outputs)
        self._draft.outputs = [o for o in self._draft.outputs if o.id != output_id]
        return len(self._draft.outputs) != before

    def _find_output(self, output_id: str) -> Optional[TransactionOutput]:
        for output in self._draft.outputs:
            if output.id == output_id:
                return output
        return None

    # Multisig configuration

    def set_threshold(self, threshold: int) -> int:
        """Set the threshold, clamped to the signer count. Returns the stored value."""
        config = self._draft.multisig_config
        config.threshold = clamp_threshold(threshold, len(config.signers))
        return config.threshold

    def add_signer(self, public_key_hash: str = "", label: Optional[str] = None) -> Result:
        """
        Append a signer.

        A key that normalizes to an existing signer's key is rejected with
        DUPLICATE_SIGNER and the draft is left unchanged.

        Returns:
            Result holding the new SignerConfig
        """
        config = self._draft.multisig_config
        conflict = self._conflicting_signer(public_key_hash)
        if conflict is not None:
            logger.debug("duplicate_signer_rejected", conflicts_with=conflict.id)
            return Result.failure(
                ErrorCode.DUPLICATE_SIGNER,
                "Another signer already uses this public key hash",
                f"Conflicts with {conflict.label or conflict.id}",
            )

        signer = SignerConfig(
            public_key_hash=public_key_hash,
            label=label or f"Signer {len(config.signers) + 1}",
        )
        config.signers.append(signer)
        return Result.success(signer)

    def _conflicting_signer(
        self,
        public_key_hash: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[SignerConfig]:
        normalized = normalize_pkh(public_key_hash or "")
        if not normalized:
            return None
        for other in self._draft.multisig_config.signers:
            if other.id != exclude_id and normalize_pkh(other.public_key_hash) == normalized:
                return other
        return None

    def update_signer(
        self,
        signer_id: str,
        public_key_hash: Optional[str] = None,
        label: Optional[str] = None,
    ) -> Result:
        """
        Update a signer's key and/or label.

        An edit that would give two signers the same normalized key is
        rejected: the draft is left unchanged and a DUPLICATE_SIGNER
        failure is returned.
        """
        config = self._draft.multisig_config
        signer = next((s for s in config.signers if s.id == signer_id), None)
        if signer is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"Signer not found: {signer_id}")

        conflict = self._conflicting_signer(public_key_hash, exclude_id=signer_id)
        if conflict is not None:
            logger.debug("duplicate_signer_rejected", signer_id=signer_id)
            return Result.failure(
                ErrorCode.DUPLICATE_SIGNER,
                "Another signer already uses this public key hash",
                f"Conflicts with {conflict.label or conflict.id}",
            )

        if public_key_hash is not None:
            signer.public_key_hash = public_key_hash
        if label is not None:
            signer.label = label

        return Result.success(signer)

    def remove_signer(self, signer_id: str) -> bool:
        """Remove a signer and re-clamp the threshold."""
        config = self._draft.multisig_config
        signers = [s for s in config.signers if s.id != signer_id]
        if len(signers) == len(config.signers):
            return False
        config.signers = signers
        config.threshold = clamp_threshold(config.threshold, len(signers))
        return True

    def set_multisig_from_account(self, threshold: int, signer_pkhs: List[str]) -> None:
        """Replace the multisig configuration with a saved account's signers."""
        signers = [
            SignerConfig(
                id=generate_signer_id(),
                public_key_hash=pkh,
                label=f"Signer {index + 1}",
            )
            for index, pkh in enumerate(signer_pkhs)
        ]
        self._draft.multisig_config = MultisigConfig(threshold=threshold, signers=signers)

    # Fees

    def set_fee_per_word(self, fee: int) -> Result:
        if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
            return Result.failure(
                ErrorCode.INVALID_AMOUNT,
                "Fee rate must be a non-negative integer",
                f"Got {fee!r}",
            )
        self._draft.fee_per_word = Amount(fee)
        return Result.success(self._draft.fee_per_word)
