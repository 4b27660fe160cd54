"""
Abstract interface for the ledger engine.

The ledger engine owns note, spend-condition and transaction encoding,
content digests, and the spend/seed/refund construction used to
assemble a transaction. The co-signer treats every object it returns
as opaque and only passes it back into the engine.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Tuple, TypeVar

from cosigner.core.result import ErrorCode, Result

T = TypeVar("T")


class LedgerError(Exception):
    """Raised by ledger engines when an operation fails."""
    pass


class LedgerEngine(ABC):
    """
    Abstract ledger engine.

    Every method may raise; call sites wrap each call with ledger_call()
    so a failure reports which sub-operation failed.
    """

    # Encoding

    @abstractmethod
    def parse_note(self, data: bytes) -> Any:
        """Decode a note from its serialized form."""
        pass

    @abstractmethod
    def serialize_note(self, note: Any) -> bytes:
        pass

    @abstractmethod
    def parse_spend_condition(self, data: bytes) -> Any:
        pass

    @abstractmethod
    def serialize_spend_condition(self, spend_condition: Any) -> bytes:
        pass

    @abstractmethod
    def parse_transaction(self, data: bytes) -> Any:
        """Decode a transaction from its serialized form."""
        pass

    @abstractmethod
    def serialize_transaction(self, transaction: Any) -> bytes:
        pass

    # Digests

    @abstractmethod
    def note_hash(self, note: Any) -> str:
        """Content digest of a note."""
        pass

    @abstractmethod
    def lock_digest(self, spend_condition: Any) -> str:
        """Content digest of a spend condition (the lock's first name)."""
        pass

    @abstractmethod
    def transaction_id(self, transaction: Any) -> str:
        pass

    # Locks

    @abstractmethod
    def single_pkh_lock(self, pkh: str) -> Any:
        """Spend condition requiring one key's signature."""
        pass

    @abstractmethod
    def threshold_pkh_lock(self, threshold: int, pkhs: List[str]) -> Any:
        """Spend condition requiring threshold-of-pkhs signatures."""
        pass

    # Spend construction

    @abstractmethod
    def new_transaction_builder(self, fee_per_word: int) -> Any:
        pass

    @abstractmethod
    def new_spend(self, note: Any, spend_condition: Any, refund_lock: Any) -> Any:
        """Open a spend of a note; change returns under refund_lock."""
        pass

    @abstractmethod
    def new_seed(self, lock_digest: str, amount: int, parent_hash: str) -> Any:
        """Value output locked to lock_digest, tied to its parent note."""
        pass

    @abstractmethod
    def add_seed(self, spend: Any, seed: Any) -> None:
        pass

    @abstractmethod
    def compute_refund(self, spend: Any, fee: int) -> int:
        """Attach the balancing refund (assets - seeds - fee). Returns the refund."""
        pass

    @abstractmethod
    def is_balanced(self, spend: Any) -> bool:
        pass

    @abstractmethod
    def add_spend(self, builder: Any, spend: Any) -> None:
        pass

    @abstractmethod
    def build_transaction(self, builder: Any) -> Any:
        """
        Assemble the spends into an unsigned transaction.

        Non-strict: does not require signatures to be present.
        """
        pass


# Substring rules mapping raw engine errors to user-facing messages
ERROR_MAPPINGS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"insufficient.*funds?", re.I), "Insufficient funds to complete this transaction"),
    (re.compile(r"invalid.*signature", re.I), "One or more signatures are invalid"),
    (re.compile(r"invalid.*address|invalid.*pkh", re.I), "Invalid recipient address format"),
    (re.compile(r"duplicate.*input|double.*spend", re.I), "Transaction contains duplicate inputs (potential double-spend)"),
    (re.compile(r"overflow", re.I), "Transaction amount exceeds maximum allowed value"),
    (re.compile(r"underflow", re.I), "Transaction would result in negative balance"),
    (re.compile(r"invalid.*fee", re.I), "Transaction fee is invalid or too low"),
    (re.compile(r"malformed|parse.*error|deserialize", re.I), "Transaction data is malformed or corrupted"),
    (re.compile(r"lock.*hash|spend.*condition", re.I), "Invalid lock or spend condition configuration"),
    (re.compile(r"threshold", re.I), "Signature threshold configuration is invalid"),
    (re.compile(r"timeout|network", re.I), "Network timeout - please try again"),
    (re.compile(r"not.*found", re.I), "Referenced note or resource not found on chain"),
    (re.compile(r"already.*spent", re.I), "One or more notes have already been spent"),
]

GENERIC_FAILURE_MESSAGE = "Transaction operation failed"


def parse_ledger_error(error: object) -> Tuple[str, str]:
    """
    Map a raw error to (user-facing message, raw details).

    The first matching rule wins; unmatched errors get a generic message.
    """
    raw = str(error) if not isinstance(error, str) else error
    for pattern, message in ERROR_MAPPINGS:
        if pattern.search(raw):
            return message, raw
    return GENERIC_FAILURE_MESSAGE, raw


def ledger_call(
    context: str,
    operation: Callable[[], T],
    code: ErrorCode = ErrorCode.BUILD_FAILED,
) -> Result:
    """
    Run one ledger operation, converting any failure into a Result.

    Args:
        context: Name of the sub-operation, prefixed to the message
        operation: Zero-argument callable performing the ledger call
        code: Error code used on failure

    Returns:
        Result holding the operation's return value
    """
    try:
        return Result.success(operation())
    except Exception as e:
        message, details = parse_ledger_error(e)
        return Result.failure(code, f"{context}: {message}", details)
