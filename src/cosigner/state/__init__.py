"""
State Management module.

Tracks pending transactions through signature collection and broadcast.
"""

from cosigner.state.pending_store import PendingTransactionStore, SignatureProgress

__all__ = [
    "PendingTransactionStore",
    "SignatureProgress",
]
