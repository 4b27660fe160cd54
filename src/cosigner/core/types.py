"""
Transaction data model.

Drafts are mutable working state. A PendingTransaction is an immutable
record: every state change produces a new record via dataclasses.replace().
"""

import copy
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from cosigner.core.amount import Amount, total

DEFAULT_FEE_PER_WORD = 32768


class TransactionStatus(str, Enum):
    """Lifecycle status of a pending transaction."""
    PENDING = "pending"           # Collecting signatures, below threshold
    READY = "ready"               # Threshold met, may be broadcast
    BROADCAST = "broadcast"       # Submitted to the network
    CONFIRMED = "confirmed"       # Confirmed on-chain (terminal)

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [
    TransactionStatus.PENDING,
    TransactionStatus.READY,
    TransactionStatus.BROADCAST,
    TransactionStatus.CONFIRMED,
]


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def _generate_id(prefix: str) -> str:
    return f"{prefix}-{now_ms()}-{secrets.token_hex(4)}"


def generate_output_id() -> str:
    return _generate_id("output")


def generate_signer_id() -> str:
    return _generate_id("signer")


def generate_transaction_id() -> str:
    return _generate_id("tx")


@dataclass
class TransactionInput:
    """
    A candidate note that can fund a transaction.

    Attributes:
        name_first: First half of the note name (the lock digest)
        name_last: Second half of the note name
        assets: Value held by the note
        origin_page: Block page the note was created at
        selected: Whether the user chose to spend this note
    """
    name_first: str
    name_last: str
    assets: Amount
    origin_page: int = 0
    selected: bool = False

    def __post_init__(self):
        if not isinstance(self.assets, Amount):
            self.assets = Amount(self.assets)

    @property
    def key(self) -> Tuple[str, str]:
        """Identity of the note across balance refreshes."""
        return (self.name_first, self.name_last)


@dataclass
class TransactionOutput:
    """A recipient and the amount sent to it."""
    id: str = field(default_factory=generate_output_id)
    recipient_address: str = ""
    amount: Amount = field(default_factory=lambda: Amount.ZERO)

    def __post_init__(self):
        if not isinstance(self.amount, Amount):
            self.amount = Amount(self.amount)


@dataclass
class SignerConfig:
    """One co-signer of a multisig configuration."""
    id: str = field(default_factory=generate_signer_id)
    public_key_hash: str = ""
    label: str = ""


@dataclass
class MultisigConfig:
    """Threshold and signer set."""
    threshold: int = 1
    signers: List[SignerConfig] = field(default_factory=list)


@dataclass
class TransactionDraft:
    """The in-progress transaction being assembled."""
    inputs: List[TransactionInput] = field(default_factory=list)
    outputs: List[TransactionOutput] = field(default_factory=list)
    multisig_config: MultisigConfig = field(default_factory=MultisigConfig)
    fee_per_word: Amount = field(default_factory=lambda: Amount(DEFAULT_FEE_PER_WORD))

    def __post_init__(self):
        if not isinstance(self.fee_per_word, Amount):
            self.fee_per_word = Amount(self.fee_per_word)

    @property
    def selected_inputs(self) -> List[TransactionInput]:
        return [i for i in self.inputs if i.selected]

    @property
    def total_input_amount(self) -> Amount:
        return total(i.assets for i in self.selected_inputs)

    @property
    def total_output_amount(self) -> Amount:
        return total(o.amount for o in self.outputs)

    def copy(self) -> "TransactionDraft":
        """Deep copy that shares no mutable state with this draft."""
        return copy.deepcopy(self)


def create_empty_draft(fee_per_word: int = DEFAULT_FEE_PER_WORD) -> TransactionDraft:
    return TransactionDraft(fee_per_word=Amount(fee_per_word))


@dataclass(frozen=True)
class SignatureRecord:
    """Signature slot for one configured signer."""
    signer_id: str
    signature: Optional[bytes] = None
    signed_at: Optional[int] = None

    @property
    def is_signed(self) -> bool:
        return self.signature is not None


@dataclass(frozen=True)
class PendingTransaction:
    """
    A built transaction awaiting signatures or broadcast.

    Attributes:
        id: Local identifier shared by every co-signer's copy
        created_at: Creation time in epoch milliseconds
        draft: Frozen copy of the draft the transaction was built from
        selected_inputs: Inputs that were selected at build time
        total_input_amount: Sum of selected input assets
        total_output_amount: Sum of output amounts
        total_fee: Fee charged at build time
        signatures: One slot per configured signer
        status: Lifecycle status
        raw_tx_jam: Serialized unsigned transaction
        signed_tx: Latest signed serialization, if any
        tx_hash: Transaction id (set at build, replaced on broadcast)
        note_protobufs: Serialized source notes, for co-signers without them
        spend_condition_protobufs: Serialized spend conditions of the notes
    """
    id: str
    created_at: int
    draft: TransactionDraft
    selected_inputs: List[TransactionInput]
    total_input_amount: Amount
    total_output_amount: Amount
    total_fee: Amount
    signatures: List[SignatureRecord]
    raw_tx_jam: bytes
    status: TransactionStatus = TransactionStatus.PENDING
    signed_tx: Optional[bytes] = None
    tx_hash: Optional[str] = None
    note_protobufs: List[bytes] = field(default_factory=list)
    spend_condition_protobufs: List[bytes] = field(default_factory=list)

    @property
    def threshold(self) -> int:
        return self.draft.multisig_config.threshold

    @property
    def signers(self) -> List[SignerConfig]:
        return self.draft.multisig_config.signers

    @property
    def signature_count(self) -> int:
        return sum(1 for s in self.signatures if s.is_signed)

    @property
    def is_ready(self) -> bool:
        return self.signature_count >= self.threshold

    def find_signer(self, public_key_hash: str) -> Optional[SignerConfig]:
        """Find the configured signer owning a public-key hash."""
        wanted = public_key_hash.strip().lower()
        for signer in self.signers:
            if signer.public_key_hash.strip().lower() == wanted:
                return signer
        return None

    def signature_for(self, signer_id: str) -> Optional[SignatureRecord]:
        for record in self.signatures:
            if record.signer_id == signer_id:
                return record
        return None

    def to_dict(self) -> dict:
        """Summary for logging and display."""
        return {
            "id": self.id,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "threshold": self.threshold,
            "signers": len(self.signers),
            "signed": self.signature_count,
            "inputs": len(self.selected_inputs),
            "outputs": len(self.draft.outputs),
            "total_input_amount": int(self.total_input_amount),
            "total_output_amount": int(self.total_output_amount),
            "total_fee": int(self.total_fee),
        }

    def __repr__(self) -> str:
        return (
            f"PendingTransaction(id={self.id}, status={self.status.value}, "
            f"signed={self.signature_count}/{self.threshold})"
        )
