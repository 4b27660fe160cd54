"""
Pytest configuration and shared fixtures for the test suite.
"""

from typing import Callable, List, Optional

import pytest

from cosigner.config import CosignerConfig, NetworkType, set_config
from cosigner.core.amount import Amount
from cosigner.core.draft import DraftEditor
from cosigner.core.result import Result
from cosigner.core.types import (
    MultisigConfig,
    PendingTransaction,
    SignatureRecord,
    SignerConfig,
    TransactionDraft,
    TransactionInput,
    TransactionOutput,
    generate_transaction_id,
    now_ms,
)
from cosigner.ledger.local import LocalLedgerEngine, digest
from cosigner.wallet.interface import (
    ConnectionInfo,
    SigningMetadata,
    WalletNote,
    WalletService,
)
from cosigner.wallet.test_mode import create_test_notes


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> CosignerConfig:
    """Create a test configuration."""
    config = CosignerConfig(
        network=NetworkType.LOCAL,
        wallet_bridge_url="http://bridge.test",
        node_url="http://node.test",
        test_mode=False,
        log_level="DEBUG",
    )
    set_config(config)
    return config


# ============================================================================
# Test Data Generators
# ============================================================================

def generate_test_pkh(index: int = 0) -> str:
    """Generate a deterministic, well-formed public-key hash."""
    return digest(f"test-pkh-{index}".encode("utf-8"))


@pytest.fixture
def ledger() -> LocalLedgerEngine:
    return LocalLedgerEngine()


@pytest.fixture
def pkhs() -> List[str]:
    """Three distinct signer public-key hashes (A, B, C)."""
    return [generate_test_pkh(i) for i in range(1, 4)]


@pytest.fixture
def recipient() -> str:
    return generate_test_pkh(99)


@pytest.fixture
def make_wallet_note(ledger) -> Callable[..., WalletNote]:
    """Factory for wallet notes locked to a single key."""

    def _make(assets: int, owner: Optional[str] = None, name_last: Optional[str] = None) -> WalletNote:
        owner = owner or generate_test_pkh(0)
        spend_condition = ledger.single_pkh_lock(owner)
        note = ledger.create_note(
            spend_condition,
            name_last or digest(f"note-{owner}-{assets}".encode("utf-8")),
            assets,
        )
        return WalletNote(
            note_protobuf=ledger.serialize_note(note),
            spend_condition_protobuf=ledger.serialize_spend_condition(spend_condition),
            note_hash=ledger.note_hash(note),
            name_first=note.name_first,
            name_last=note.name_last,
            assets=note.assets,
            origin_page=note.origin_page,
        )

    return _make


@pytest.fixture
def wallet_notes(ledger) -> List[WalletNote]:
    """The three synthetic test-mode notes."""
    return create_test_notes(ledger)


@pytest.fixture
def editor() -> DraftEditor:
    return DraftEditor(default_fee_per_word=1)


@pytest.fixture
def sample_draft(pkhs, recipient) -> TransactionDraft:
    """A 2-of-3 draft spending one 100-nick input to one 40-nick output."""
    return TransactionDraft(
        inputs=[
            TransactionInput(name_first=pkhs[0], name_last="note-a", assets=Amount(100), selected=True),
        ],
        outputs=[TransactionOutput(recipient_address=recipient, amount=Amount(40))],
        multisig_config=MultisigConfig(
            threshold=2,
            signers=[
                SignerConfig(public_key_hash=pkh, label=f"Signer {i + 1}")
                for i, pkh in enumerate(pkhs)
            ],
        ),
        fee_per_word=Amount(1),
    )


@pytest.fixture
def make_pending(sample_draft) -> Callable[..., PendingTransaction]:
    """Factory for pending transactions built from the sample draft."""

    def _make(
        raw_tx_jam: bytes = b"raw-transaction-bytes",
        total_fee: int = 10,
        signed_by: Optional[List[int]] = None,
        draft: Optional[TransactionDraft] = None,
        **overrides,
    ) -> PendingTransaction:
        draft = (draft or sample_draft).copy()
        signed_by = signed_by or []
        signatures = [
            SignatureRecord(
                signer_id=signer.id,
                signature=bytes([index + 1]) * 64 if index in signed_by else None,
                signed_at=now_ms() if index in signed_by else None,
            )
            for index, signer in enumerate(draft.multisig_config.signers)
        ]
        fields = dict(
            id=generate_transaction_id(),
            created_at=now_ms(),
            draft=draft,
            selected_inputs=draft.selected_inputs,
            total_input_amount=draft.total_input_amount,
            total_output_amount=draft.total_output_amount,
            total_fee=Amount(total_fee),
            signatures=signatures,
            raw_tx_jam=raw_tx_jam,
            tx_hash="built-tx-hash",
            note_protobufs=[b"note-bytes"],
            spend_condition_protobufs=[b"spend-condition-bytes"],
        )
        fields.update(overrides)
        return PendingTransaction(**fields)

    return _make


# ============================================================================
# Mock Wallet
# ============================================================================

class MockWallet(WalletService):
    """Mock wallet service for testing."""

    def __init__(self, pkh: str, notes: Optional[List[WalletNote]] = None):
        self.pkh = pkh
        self.notes = notes or []
        self.connected = False
        self.connect_result: Optional[Result] = None
        self.sign_result: Optional[Result] = None
        self.broadcast_result: Optional[Result] = None
        self.sign_calls: List[tuple] = []
        self.broadcast_calls: List[bytes] = []
        self.fetch_calls: List[str] = []

    def is_available(self) -> bool:
        return True

    async def connect(self) -> Result:
        if self.connect_result is not None:
            return self.connect_result
        self.connected = True
        return Result.success(ConnectionInfo(pkh=self.pkh, endpoint="http://node.test"))

    async def disconnect(self) -> None:
        self.connected = False

    async def fetch_notes(self, lock_digest: str) -> Result:
        self.fetch_calls.append(lock_digest)
        if lock_digest == self.pkh:
            return Result.success(list(self.notes))
        return Result.success([])

    async def sign_transaction(self, unsigned_tx, metadata: SigningMetadata) -> Result:
        self.sign_calls.append((unsigned_tx, metadata))
        if self.sign_result is not None:
            return self.sign_result
        return Result.success(b"\x07" * 64)

    async def broadcast_transaction(self, tx_bytes: bytes) -> Result:
        self.broadcast_calls.append(tx_bytes)
        if self.broadcast_result is not None:
            return self.broadcast_result
        return Result.success("network-tx-hash-0001")


@pytest.fixture
def mock_wallets(pkhs) -> List[MockWallet]:
    """One mock wallet per signer (A, B, C)."""
    return [MockWallet(pkh) for pkh in pkhs]


@pytest.fixture
def mock_wallet(mock_wallets) -> MockWallet:
    """Mock wallet connected as signer A."""
    return mock_wallets[0]

