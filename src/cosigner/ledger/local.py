"""
Local reference ledger engine.

A deterministic, dependency-light implementation of the LedgerEngine
contract. Objects serialize to canonical JSON and are content-addressed
with BLAKE2b digests rendered in base58. Used by test mode and the test
suite; it performs the balancing arithmetic of a real engine but no
signature cryptography.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import base58
import structlog

from cosigner.core.validation import is_valid_pkh
from cosigner.ledger.interface import LedgerEngine, LedgerError

logger = structlog.get_logger(__name__)

NOTE_VERSION = 1
DIGEST_SIZE = 32


def digest(data: bytes) -> str:
    """Base58 BLAKE2b digest of a byte string."""
    return base58.b58encode(hashlib.blake2b(data, digest_size=DIGEST_SIZE).digest()).decode("ascii")


def _canonical(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _load(data: bytes, kind: str) -> Dict[str, Any]:
    try:
        obj = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise LedgerError(f"malformed {kind}: {e}")
    if not isinstance(obj, dict) or obj.get("kind") != kind:
        raise LedgerError(f"malformed {kind}: unexpected payload")
    return obj


@dataclass(frozen=True)
class Note:
    """An unspent note."""
    name_first: str
    name_last: str
    assets: int
    origin_page: int = 0
    version: int = NOTE_VERSION

    def to_primitive(self) -> Dict[str, Any]:
        return {
            "kind": "note",
            "version": self.version,
            "origin_page": self.origin_page,
            "name": [self.name_first, self.name_last],
            "assets": self.assets,
        }

    @classmethod
    def from_primitive(cls, obj: Dict[str, Any]) -> "Note":
        try:
            first, last = obj["name"]
            return cls(
                name_first=str(first),
                name_last=str(last),
                assets=int(obj["assets"]),
                origin_page=int(obj["origin_page"]),
                version=int(obj["version"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"malformed note: {e}")


@dataclass(frozen=True)
class SpendCondition:
    """Public-key-hash lock: threshold of the listed keys must sign."""
    threshold: int
    pkhs: tuple

    def to_primitive(self) -> Dict[str, Any]:
        return {"kind": "spend_condition", "threshold": self.threshold, "pkhs": list(self.pkhs)}

    @classmethod
    def from_primitive(cls, obj: Dict[str, Any]) -> "SpendCondition":
        try:
            return cls(threshold=int(obj["threshold"]), pkhs=tuple(str(p) for p in obj["pkhs"]))
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"malformed spend condition: {e}")


@dataclass(frozen=True)
class Seed:
    """Value output created by a spend."""
    lock_digest: str
    amount: int
    parent_hash: str

    def to_primitive(self) -> Dict[str, Any]:
        return {"lock": self.lock_digest, "amount": self.amount, "parent": self.parent_hash}


@dataclass
class Spend:
    """A note being spent, its seeds, and its balancing refund."""
    note: Note
    spend_condition: SpendCondition
    refund_lock: SpendCondition
    seeds: List[Seed] = field(default_factory=list)
    fee: int = 0
    refund: Optional[int] = None

    @property
    def seeded_amount(self) -> int:
        return sum(s.amount for s in self.seeds)

    def to_primitive(self) -> Dict[str, Any]:
        return {
            "note": self.note.to_primitive(),
            "spend_condition": self.spend_condition.to_primitive(),
            "refund_lock": self.refund_lock.to_primitive(),
            "seeds": [s.to_primitive() for s in self.seeds],
            "fee": self.fee,
            "refund": self.refund,
        }

    @classmethod
    def from_primitive(cls, obj: Dict[str, Any]) -> "Spend":
        try:
            return cls(
                note=Note.from_primitive(obj["note"]),
                spend_condition=SpendCondition.from_primitive(obj["spend_condition"]),
                refund_lock=SpendCondition.from_primitive(obj["refund_lock"]),
                seeds=[
                    Seed(lock_digest=s["lock"], amount=int(s["amount"]), parent_hash=s["parent"])
                    for s in obj["seeds"]
                ],
                fee=int(obj["fee"]),
                refund=None if obj["refund"] is None else int(obj["refund"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"malformed spend: {e}")


@dataclass
class TxBuilder:
    """Spends collected for one transaction."""
    fee_per_word: int
    spends: List[Spend] = field(default_factory=list)


@dataclass(frozen=True)
class Transaction:
    """An assembled (unsigned) transaction."""
    id: str
    fee_per_word: int
    spends: tuple

    @property
    def total_fee(self) -> int:
        return sum(s.fee for s in self.spends)

    def body(self) -> Dict[str, Any]:
        return {
            "kind": "transaction",
            "fee_per_word": self.fee_per_word,
            "spends": [s.to_primitive() for s in self.spends],
        }


class LocalLedgerEngine(LedgerEngine):
    """Reference ledger engine with canonical JSON encoding."""

    # Encoding

    def parse_note(self, data: bytes) -> Note:
        return Note.from_primitive(_load(data, "note"))

    def serialize_note(self, note: Note) -> bytes:
        return _canonical(note.to_primitive())

    def parse_spend_condition(self, data: bytes) -> SpendCondition:
        return SpendCondition.from_primitive(_load(data, "spend_condition"))

    def serialize_spend_condition(self, spend_condition: SpendCondition) -> bytes:
        return _canonical(spend_condition.to_primitive())

    def parse_transaction(self, data: bytes) -> Transaction:
        obj = _load(data, "transaction")
        try:
            spends = tuple(Spend.from_primitive(s) for s in obj["spends"])
            fee_per_word = int(obj["fee_per_word"])
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"malformed transaction: {e}")
        return self._assemble(fee_per_word, spends)

    def serialize_transaction(self, transaction: Transaction) -> bytes:
        return _canonical(transaction.body())

    # Digests

    def note_hash(self, note: Note) -> str:
        return digest(self.serialize_note(note))

    def lock_digest(self, spend_condition: SpendCondition) -> str:
        return digest(self.serialize_spend_condition(spend_condition))

    def transaction_id(self, transaction: Transaction) -> str:
        return transaction.id

    # Locks

    def single_pkh_lock(self, pkh: str) -> SpendCondition:
        if not is_valid_pkh(pkh):
            raise LedgerError(f"invalid pkh: {pkh!r}")
        return SpendCondition(threshold=1, pkhs=(pkh,))

    def threshold_pkh_lock(self, threshold: int, pkhs: List[str]) -> SpendCondition:
        if not pkhs:
            raise LedgerError("threshold lock requires at least one pkh")
        if not 1 <= threshold <= len(pkhs):
            raise LedgerError(f"invalid threshold {threshold} for {len(pkhs)} keys")
        for pkh in pkhs:
            if not is_valid_pkh(pkh):
                raise LedgerError(f"invalid pkh: {pkh!r}")
        return SpendCondition(threshold=threshold, pkhs=tuple(pkhs))

    def create_note(
        self,
        spend_condition: SpendCondition,
        name_last: str,
        assets: int,
        origin_page: int = 0,
    ) -> Note:
        """Create a note locked to a spend condition."""
        if assets < 0:
            raise LedgerError("underflow: note assets cannot be negative")
        return Note(
            name_first=self.lock_digest(spend_condition),
            name_last=name_last,
            assets=assets,
            origin_page=origin_page,
        )

    # Spend construction

    def new_transaction_builder(self, fee_per_word: int) -> TxBuilder:
        if fee_per_word < 0:
            raise LedgerError(f"invalid fee rate: {fee_per_word}")
        return TxBuilder(fee_per_word=int(fee_per_word))

    def new_spend(
        self,
        note: Note,
        spend_condition: SpendCondition,
        refund_lock: SpendCondition,
    ) -> Spend:
        if note.name_first != self.lock_digest(spend_condition):
            raise LedgerError("spend condition does not match note lock hash")
        return Spend(note=note, spend_condition=spend_condition, refund_lock=refund_lock)

    def new_seed(self, lock_digest: str, amount: int, parent_hash: str) -> Seed:
        if amount <= 0:
            raise LedgerError(f"underflow: seed amount must be positive, got {amount}")
        return Seed(lock_digest=lock_digest, amount=int(amount), parent_hash=parent_hash)

    def add_seed(self, spend: Spend, seed: Seed) -> None:
        if seed.parent_hash != self.note_hash(spend.note):
            raise LedgerError("seed parent hash not found in spend")
        spend.seeds.append(seed)
        spend.refund = None

    def compute_refund(self, spend: Spend, fee: int) -> int:
        if fee < 0:
            raise LedgerError(f"invalid fee: {fee}")
        refund = spend.note.assets - spend.seeded_amount - fee
        if refund < 0:
            raise LedgerError(
                f"underflow: note assets {spend.note.assets} < seeds {spend.seeded_amount} + fee {fee}"
            )
        spend.fee = int(fee)
        spend.refund = refund
        return refund

    def is_balanced(self, spend: Spend) -> bool:
        if spend.refund is None:
            return False
        return spend.note.assets == spend.seeded_amount + spend.refund + spend.fee

    def add_spend(self, builder: TxBuilder, spend: Spend) -> None:
        for existing in builder.spends:
            if (existing.note.name_first, existing.note.name_last) == (
                spend.note.name_first,
                spend.note.name_last,
            ):
                raise LedgerError("duplicate input: note already spent in this transaction")
        builder.spends.append(spend)

    def build_transaction(self, builder: TxBuilder) -> Transaction:
        if not builder.spends:
            raise LedgerError("transaction has no spends")
        for index, spend in enumerate(builder.spends):
            if not self.is_balanced(spend):
                raise LedgerError(f"spend {index} is not balanced")
        transaction = self._assemble(builder.fee_per_word, tuple(builder.spends))
        logger.debug(
            "local_transaction_built",
            tx_id=transaction.id[:16] + "...",
            spends=len(transaction.spends),
            fee=transaction.total_fee,
        )
        return transaction

    def _assemble(self, fee_per_word: int, spends: tuple) -> Transaction:
        draft = Transaction(id="", fee_per_word=fee_per_word, spends=spends)
        return Transaction(
            id=digest(_canonical(draft.body())),
            fee_per_word=fee_per_word,
            spends=spends,
        )
