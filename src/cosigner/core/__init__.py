"""
Core co-signer components.

This module contains the amount type, validators, the transaction data
model, the result/error taxonomy and the draft editor.
"""

from cosigner.core.amount import Amount, InvalidAmount
from cosigner.core.result import CosignerError, ErrorCode, OperationError, Result
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
from cosigner.core.draft import DraftEditor

__all__ = [
    "Amount",
    "InvalidAmount",
    "CosignerError",
    "ErrorCode",
    "OperationError",
    "Result",
    "MultisigConfig",
    "PendingTransaction",
    "SignatureRecord",
    "SignerConfig",
    "TransactionDraft",
    "TransactionInput",
    "TransactionOutput",
    "TransactionStatus",
    "DraftEditor",
]
