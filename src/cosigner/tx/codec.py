"""
Export/import codec for pending transactions.

A pending transaction travels between co-signers out-of-band as a single
base64 token wrapping a versioned JSON envelope:

    {"version": 1, "transaction": {...}}

Amounts are carried as decimal strings and byte fields as arrays of
integers. Decoding goes through pydantic wire models, so every amount and
byte array is converted explicitly and schema violations surface as
IMPORT_FORMAT_ERROR instead of half-built records.
"""

import base64
import binascii
import json
from typing import Annotated, Any, Container, List, Optional

import structlog
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from cosigner.config import EXPORT_FORMAT_VERSION
from cosigner.core.amount import Amount, InvalidAmount
from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import (
    MultisigConfig,
    PendingTransaction,
    SignatureRecord,
    SignerConfig,
    TransactionDraft,
    TransactionInput,
    TransactionOutput,
    TransactionStatus,
)

logger = structlog.get_logger(__name__)


def _unwrap_bigint(value: Any) -> Any:
    # Older exports wrapped big integers as {"__type": "bigint", "value": "..."}
    if isinstance(value, dict) and value.get("__type") == "bigint":
        return value.get("value")
    return value


def _bytes_from_array(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, list):
        raise ValueError("expected an array of byte values")
    if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
        raise ValueError("byte values must be integers in 0..255")
    return bytes(value)


WireAmount = Annotated[
    int,
    BeforeValidator(_unwrap_bigint),
    Field(ge=0),
    PlainSerializer(lambda v: str(v), return_type=str),
]

WireBytes = Annotated[
    bytes,
    BeforeValidator(_bytes_from_array),
    PlainSerializer(lambda v: list(v), return_type=list),
]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WireNoteName(WireModel):
    first: str
    last: str


class WireNote(WireModel):
    name: WireNoteName
    assets: WireAmount
    origin_page: WireAmount


class WireInput(WireModel):
    note: WireNote
    selected: bool

    @classmethod
    def from_domain(cls, tx_input: TransactionInput) -> "WireInput":
        return cls(
            note=WireNote(
                name=WireNoteName(first=tx_input.name_first, last=tx_input.name_last),
                assets=int(tx_input.assets),
                origin_page=tx_input.origin_page,
            ),
            selected=tx_input.selected,
        )

    def to_domain(self) -> TransactionInput:
        return TransactionInput(
            name_first=self.note.name.first,
            name_last=self.note.name.last,
            assets=Amount(self.note.assets),
            origin_page=self.note.origin_page,
            selected=self.selected,
        )


class WireOutput(WireModel):
    id: str
    recipient_address: str
    amount: WireAmount


class WireSigner(WireModel):
    id: str
    public_key_hash: str
    label: str


class WireMultisigConfig(WireModel):
    threshold: int
    signers: List[WireSigner]


class WireDraft(WireModel):
    inputs: List[WireInput]
    outputs: List[WireOutput]
    multisig_config: WireMultisigConfig
    fee_per_word: WireAmount


class WireSignature(WireModel):
    signer_id: str
    signature: Optional[WireBytes] = None
    signed_at: Optional[int] = None


class WireTransaction(WireModel):
    id: str
    created_at: int
    draft: WireDraft
    selected_inputs: List[WireInput]
    total_input_amount: WireAmount
    total_output_amount: WireAmount
    total_fee: WireAmount
    signatures: List[WireSignature]
    status: TransactionStatus
    tx_hash: Optional[str] = None
    raw_tx_jam: WireBytes
    signed_tx: Optional[WireBytes] = None
    note_protobufs: List[WireBytes] = Field(default_factory=list)
    spend_condition_protobufs: List[WireBytes] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, tx: PendingTransaction) -> "WireTransaction":
        draft = tx.draft
        return cls(
            id=tx.id,
            created_at=tx.created_at,
            draft=WireDraft(
                inputs=[WireInput.from_domain(i) for i in draft.inputs],
                outputs=[
                    WireOutput(id=o.id, recipient_address=o.recipient_address, amount=int(o.amount))
                    for o in draft.outputs
                ],
                multisig_config=WireMultisigConfig(
                    threshold=draft.multisig_config.threshold,
                    signers=[
                        WireSigner(id=s.id, public_key_hash=s.public_key_hash, label=s.label)
                        for s in draft.multisig_config.signers
                    ],
                ),
                fee_per_word=int(draft.fee_per_word),
            ),
            selected_inputs=[WireInput.from_domain(i) for i in tx.selected_inputs],
            total_input_amount=int(tx.total_input_amount),
            total_output_amount=int(tx.total_output_amount),
            total_fee=int(tx.total_fee),
            signatures=[
                WireSignature(signer_id=s.signer_id, signature=s.signature, signed_at=s.signed_at)
                for s in tx.signatures
            ],
            status=tx.status,
            tx_hash=tx.tx_hash,
            raw_tx_jam=tx.raw_tx_jam,
            signed_tx=tx.signed_tx,
            note_protobufs=list(tx.note_protobufs),
            spend_condition_protobufs=list(tx.spend_condition_protobufs),
        )

    def to_domain(self) -> PendingTransaction:
        wire_draft = self.draft
        draft = TransactionDraft(
            inputs=[i.to_domain() for i in wire_draft.inputs],
            outputs=[
                TransactionOutput(id=o.id, recipient_address=o.recipient_address, amount=Amount(o.amount))
                for o in wire_draft.outputs
            ],
            multisig_config=MultisigConfig(
                threshold=wire_draft.multisig_config.threshold,
                signers=[
                    SignerConfig(id=s.id, public_key_hash=s.public_key_hash, label=s.label)
                    for s in wire_draft.multisig_config.signers
                ],
            ),
            fee_per_word=Amount(wire_draft.fee_per_word),
        )
        return PendingTransaction(
            id=self.id,
            created_at=self.created_at,
            draft=draft,
            selected_inputs=[i.to_domain() for i in self.selected_inputs],
            total_input_amount=Amount(self.total_input_amount),
            total_output_amount=Amount(self.total_output_amount),
            total_fee=Amount(self.total_fee),
            signatures=[
                SignatureRecord(signer_id=s.signer_id, signature=s.signature, signed_at=s.signed_at)
                for s in self.signatures
            ],
            status=self.status,
            tx_hash=self.tx_hash,
            raw_tx_jam=self.raw_tx_jam,
            signed_tx=self.signed_tx,
            note_protobufs=list(self.note_protobufs),
            spend_condition_protobufs=list(self.spend_condition_protobufs),
        )


def export_transaction(tx: PendingTransaction) -> str:
    """
    Serialize a pending transaction into a portable token.

    Args:
        tx: The transaction to export

    Returns:
        Base64 text of the versioned JSON envelope
    """
    envelope = {
        "version": EXPORT_FORMAT_VERSION,
        "transaction": WireTransaction.from_domain(tx).model_dump(mode="json", by_alias=True),
    }
    data = json.dumps(envelope, separators=(",", ":")).encode("utf-8")
    logger.debug("transaction_exported", tx_id=tx.id, size=len(data))
    return base64.b64encode(data).decode("ascii")


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors()[:3]:
        location = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def import_transaction(
    token: str,
    existing_ids: Optional[Container[str]] = None,
) -> Result:
    """
    Decode a token produced by export_transaction.

    Checks run in order: envelope decoding, envelope shape, format
    version, duplicate id, presence of the raw transaction, and finally
    the typed decode of the record.

    Args:
        token: Base64 text of an export envelope
        existing_ids: Ids already held locally

    Returns:
        Result holding the decoded PendingTransaction
    """
    existing_ids = existing_ids if existing_ids is not None else ()

    try:
        # Tokens may arrive wrapped across lines
        raw = base64.b64decode("".join(token.split()), validate=True)
        envelope = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError, AttributeError, RecursionError) as e:
        return Result.failure(
            ErrorCode.IMPORT_FORMAT_ERROR,
            "Could not decode transaction data",
            str(e),
        )

    if not isinstance(envelope, dict) or "version" not in envelope or "transaction" not in envelope:
        return Result.failure(
            ErrorCode.IMPORT_FORMAT_ERROR,
            "Invalid transaction format: missing version or transaction",
        )

    version = envelope["version"]
    if isinstance(version, bool) or version != EXPORT_FORMAT_VERSION:
        return Result.failure(
            ErrorCode.UNSUPPORTED_VERSION,
            f"Unsupported export version: {version}",
            f"This client reads version {EXPORT_FORMAT_VERSION}",
        )

    payload = envelope["transaction"]
    if not isinstance(payload, dict):
        return Result.failure(ErrorCode.IMPORT_FORMAT_ERROR, "Invalid transaction format: transaction is not an object")

    tx_id = payload.get("id")
    if isinstance(tx_id, str) and tx_id in existing_ids:
        return Result.failure(
            ErrorCode.DUPLICATE_IMPORT,
            "Transaction already exists",
            f"Transaction {tx_id} is already in the pending list",
        )

    if payload.get("rawTxJam") is None:
        return Result.failure(
            ErrorCode.MISSING_REQUIRED_DATA,
            "Transaction is missing its raw transaction data",
            "rawTxJam",
        )

    try:
        tx = WireTransaction.model_validate(payload).to_domain()
    except ValidationError as e:
        return Result.failure(
            ErrorCode.IMPORT_FORMAT_ERROR,
            "Invalid transaction format",
            _format_validation_error(e),
        )
    except InvalidAmount as e:
        return Result.failure(ErrorCode.IMPORT_FORMAT_ERROR, "Invalid transaction format", str(e))

    if len(tx.signatures) != len(tx.signers):
        return Result.failure(
            ErrorCode.IMPORT_FORMAT_ERROR,
            "Invalid transaction format: signature slots do not match signers",
            f"{len(tx.signatures)} slots for {len(tx.signers)} signers",
        )

    if tx.threshold < 1 or tx.threshold > len(tx.signers):
        return Result.failure(
            ErrorCode.IMPORT_FORMAT_ERROR,
            "Invalid transaction format: threshold out of range",
            f"threshold {tx.threshold} for {len(tx.signers)} signers",
        )

    logger.info("transaction_decoded", tx_id=tx.id, status=tx.status.value)
    return Result.success(tx)
