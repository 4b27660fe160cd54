"""
Test suite for transaction construction.

Tests cover:
- Fee estimation
- Output and multisig validation
- Balancing through the local ledger engine
- Failure attribution to the ledger sub-operation
"""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from cosigner.core.amount import Amount
from cosigner.core.result import ErrorCode
from cosigner.core.types import (
    MultisigConfig,
    SignerConfig,
    TransactionDraft,
    TransactionInput,
    TransactionOutput,
)
from cosigner.tx.builder import (
    TransactionBuilder,
    estimate_fee,
    validate_multisig,
    validate_outputs,
)


def _draft_for(notes, outputs, signer_pkhs, threshold=1, fee_per_word=1):
    return TransactionDraft(
        inputs=[n.to_transaction_input(selected=True) for n in notes],
        outputs=[TransactionOutput(recipient_address=addr, amount=Amount(amt)) for addr, amt in outputs],
        multisig_config=MultisigConfig(
            threshold=threshold,
            signers=[SignerConfig(public_key_hash=p, label=f"Signer {i + 1}") for i, p in enumerate(signer_pkhs)],
        ),
        fee_per_word=Amount(fee_per_word),
    )


# ============================================================================
# Test Fee Estimation
# ============================================================================

class TestEstimateFee:
    """Tests for the linear fee estimate."""

    def test_single_input_single_output(self, test_config):
        assert estimate_fee(1, 1, 1, test_config) == 190

    def test_scales_with_rate(self, test_config):
        assert estimate_fee(2, 3, 2, test_config) == (100 + 100 + 120) * 2

    def test_uses_configured_constants(self, test_config):
        config = test_config.model_copy(update={"fee_base_words": 0})
        assert estimate_fee(1, 0, 10, config) == 500

    def test_returns_amount(self, test_config):
        assert isinstance(estimate_fee(0, 0, 32768, test_config), Amount)


# ============================================================================
# Test Validation
# ============================================================================

class TestValidateOutputs:
    """Tests for output checks."""

    def test_valid_outputs(self, sample_draft):
        assert validate_outputs(sample_draft).ok

    def test_no_outputs(self, sample_draft):
        sample_draft.outputs = []
        result = validate_outputs(sample_draft)
        assert result.error.code == ErrorCode.INVALID_OUTPUT
        assert result.error.message == "At least one output is required"

    def test_zero_amount(self, sample_draft):
        sample_draft.outputs[0].amount = Amount(0)
        result = validate_outputs(sample_draft)
        assert result.error.message == "All outputs must have a valid recipient address and positive amount"

    def test_bad_address_is_cited(self, sample_draft):
        bad = "0OIl-not-a-real-address-at-all"
        sample_draft.outputs[0].recipient_address = bad

        result = validate_outputs(sample_draft)

        assert result.error.code == ErrorCode.INVALID_OUTPUT
        assert result.error.message == f"Invalid recipient address format: {bad[:20]}..."
        assert result.error.details == bad


class TestValidateMultisig:
    """Tests for multisig checks."""

    def test_valid(self, sample_draft):
        assert validate_multisig(sample_draft).ok

    def test_no_signers(self, sample_draft):
        sample_draft.multisig_config = MultisigConfig(threshold=1, signers=[])
        assert validate_multisig(sample_draft).error.code == ErrorCode.INVALID_MULTISIG

    def test_threshold_above_signers(self, sample_draft):
        sample_draft.multisig_config.threshold = 4
        result = validate_multisig(sample_draft)
        assert result.error.message == "Invalid threshold: 4 of 3 signers"

    def test_bad_signer_key(self, sample_draft):
        sample_draft.multisig_config.signers[1].public_key_hash = "short"
        result = validate_multisig(sample_draft)
        assert result.error.message == "Invalid public key hash for Signer 2"
        assert result.error.details == "short"

    def test_duplicate_signer_keys(self, sample_draft, pkhs):
        sample_draft.multisig_config.signers[2].public_key_hash = pkhs[0]

        result = validate_multisig(sample_draft)

        assert result.error.code == ErrorCode.INVALID_MULTISIG
        assert result.error.message == "Each signer must have a distinct public key hash"
        assert result.error.details == pkhs[0].lower()


# ============================================================================
# Test Building
# ============================================================================

class TestTransactionBuilder:
    """Tests for building balanced transactions."""

    @pytest.mark.asyncio
    async def test_single_signer_refund(self, ledger, make_wallet_note, pkhs, recipient):
        note = make_wallet_note(100, owner=pkhs[0])
        draft = _draft_for([note], [(recipient, 40)], [pkhs[0]])

        result = await TransactionBuilder(ledger).build(draft, [note], 100, 40, 10)

        assert result.ok
        tx = ledger.parse_transaction(result.value.raw_tx_jam)
        assert tx.id == result.value.tx_hash
        spend = tx.spends[0]
        assert spend.refund == 50
        assert spend.fee == 10
        assert [s.amount for s in spend.seeds] == [40]
        assert ledger.is_balanced(spend)
        assert spend.refund_lock == ledger.single_pkh_lock(pkhs[0])

    @pytest.mark.asyncio
    async def test_seed_locked_to_recipient(self, ledger, make_wallet_note, pkhs, recipient):
        note = make_wallet_note(100, owner=pkhs[0])
        draft = _draft_for([note], [(recipient, 40)], [pkhs[0]])

        result = await TransactionBuilder(ledger).build(draft, [note], 100, 40, 10)

        seed = ledger.parse_transaction(result.value.raw_tx_jam).spends[0].seeds[0]
        assert seed.lock_digest == ledger.lock_digest(ledger.single_pkh_lock(recipient))
        assert seed.parent_hash == note.note_hash

    @pytest.mark.asyncio
    async def test_multisig_refund_uses_threshold_lock(self, ledger, make_wallet_note, pkhs, recipient):
        first = make_wallet_note(100, owner=pkhs[0], name_last="first")
        second = make_wallet_note(20, owner=pkhs[0], name_last="second")
        draft = _draft_for([first, second], [(recipient, 40)], pkhs, threshold=2)

        result = await TransactionBuilder(ledger).build(draft, [first, second], 120, 40, 10)

        assert result.ok
        spends = ledger.parse_transaction(result.value.raw_tx_jam).spends
        assert [s.refund for s in spends] == [50, 20]
        assert sum(s.fee for s in spends) == 10
        assert spends[1].seeds == []
        expected_lock = ledger.threshold_pkh_lock(2, pkhs)
        assert all(s.refund_lock == expected_lock for s in spends)

    @pytest.mark.asyncio
    async def test_fee_spills_to_later_notes(self, ledger, make_wallet_note, pkhs, recipient):
        first = make_wallet_note(45, owner=pkhs[0], name_last="first")
        second = make_wallet_note(20, owner=pkhs[0], name_last="second")
        draft = _draft_for([first, second], [(recipient, 40)], [pkhs[0]])

        result = await TransactionBuilder(ledger).build(draft, [first, second], 65, 40, 10)

        assert result.ok
        spends = ledger.parse_transaction(result.value.raw_tx_jam).spends
        assert [s.fee for s in spends] == [5, 5]
        assert [s.refund for s in spends] == [0, 15]

    @pytest.mark.asyncio
    async def test_deterministic_hash(self, ledger, make_wallet_note, pkhs, recipient):
        note = make_wallet_note(100, owner=pkhs[0])
        draft = _draft_for([note], [(recipient, 40)], [pkhs[0]])
        builder = TransactionBuilder(ledger)

        first = await builder.build(draft, [note], 100, 40, 10)
        second = await builder.build(draft, [note], 100, 40, 10)

        assert first.value == second.value

    @pytest.mark.asyncio
    async def test_insufficient_funds_makes_no_ledger_calls(self, sample_draft):
        ledger = MagicMock()

        result = await TransactionBuilder(ledger).build(sample_draft, [], 10, 40, 10)

        assert result.error.code == ErrorCode.INSUFFICIENT_FUNDS
        assert result.error.message == "Insufficient funds: have 10 nicks, need 50 nicks"
        assert ledger.method_calls == []

    @pytest.mark.asyncio
    async def test_invalid_output_makes_no_ledger_calls(self, sample_draft):
        ledger = MagicMock()
        sample_draft.outputs[0].recipient_address = "not-an-address"

        result = await TransactionBuilder(ledger).build(sample_draft, [], 100, 40, 10)

        assert result.error.code == ErrorCode.INVALID_OUTPUT
        assert "not-an-address" in result.error.message
        assert ledger.method_calls == []

    @pytest.mark.asyncio
    async def test_invalid_multisig(self, ledger, sample_draft):
        sample_draft.multisig_config.threshold = 0

        result = await TransactionBuilder(ledger).build(sample_draft, [], 100, 40, 10)

        assert result.error.code == ErrorCode.INVALID_MULTISIG

    @pytest.mark.asyncio
    async def test_duplicate_signers_make_no_ledger_calls(self, sample_draft, pkhs):
        ledger = MagicMock()
        sample_draft.multisig_config.signers[1].public_key_hash = pkhs[0]

        result = await TransactionBuilder(ledger).build(sample_draft, [], 100, 40, 10)

        assert result.error.code == ErrorCode.INVALID_MULTISIG
        assert ledger.method_calls == []

    @pytest.mark.asyncio
    async def test_no_notes(self, ledger, sample_draft):
        result = await TransactionBuilder(ledger).build(sample_draft, [], 100, 40, 10)

        assert result.error.code == ErrorCode.BUILD_FAILED
        assert result.error.message == "No input notes to spend"

    @pytest.mark.asyncio
    async def test_failure_names_sub_operation(self, ledger, make_wallet_note, pkhs, recipient):
        note = make_wallet_note(100, owner=pkhs[0])
        other_lock = ledger.serialize_spend_condition(ledger.single_pkh_lock(pkhs[1]))
        mismatched = replace(note, spend_condition_protobuf=other_lock)
        draft = _draft_for([mismatched], [(recipient, 40)], [pkhs[0]])

        result = await TransactionBuilder(ledger).build(draft, [mismatched], 100, 40, 10)

        assert result.error.code == ErrorCode.BUILD_FAILED
        assert result.error.message == (
            "Failed to create spend builder for note 0: Invalid lock or spend condition configuration"
        )
        assert result.error.details == "spend condition does not match note lock hash"

    @pytest.mark.asyncio
    async def test_corrupt_note_bytes(self, ledger, make_wallet_note, pkhs, recipient):
        note = replace(make_wallet_note(100, owner=pkhs[0]), note_protobuf=b"\xff\xfe")
        draft = _draft_for([note], [(recipient, 40)], [pkhs[0]])

        result = await TransactionBuilder(ledger).build(draft, [note], 100, 40, 10)

        assert result.error.message == "Failed to parse notes: Transaction data is malformed or corrupted"

    @pytest.mark.asyncio
    async def test_underfunded_note_reports_refund_step(self, ledger, make_wallet_note, pkhs, recipient):
        # Declared totals pass the funds check but the note itself is short
        note = make_wallet_note(45, owner=pkhs[0])
        draft = _draft_for([note], [(recipient, 40)], [pkhs[0]])

        result = await TransactionBuilder(ledger).build(draft, [note], 100, 40, 10)

        assert result.error.message == (
            "Failed to compute refund for note 0: Transaction would result in negative balance"
        )
