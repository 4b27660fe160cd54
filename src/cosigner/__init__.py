"""
Multisig Co-Signer

Coordinates the creation, co-signing and broadcast of M-of-N multisig
transactions. Unsigned transactions are built from selected notes,
handed between co-signers as portable export tokens, and broadcast once
enough signatures have been collected.
"""

__version__ = "0.1.0"

from cosigner.app import CosignerApp
from cosigner.core.result import CosignerError, ErrorCode, OperationError, Result
from cosigner.core.types import PendingTransaction, TransactionDraft, TransactionStatus

__all__ = [
    "CosignerApp",
    "CosignerError",
    "ErrorCode",
    "OperationError",
    "Result",
    "PendingTransaction",
    "TransactionDraft",
    "TransactionStatus",
]
