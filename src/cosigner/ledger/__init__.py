"""
Ledger Engine layer.

Note, spend-condition and transaction encoding, digests and spend
construction, behind an abstract engine interface.
"""

from cosigner.ledger.interface import LedgerEngine, LedgerError, ledger_call, parse_ledger_error
from cosigner.ledger.local import LocalLedgerEngine

__all__ = [
    "LedgerEngine",
    "LedgerError",
    "LocalLedgerEngine",
    "ledger_call",
    "parse_ledger_error",
]
