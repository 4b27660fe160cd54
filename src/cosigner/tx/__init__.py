"""
Transaction module.

Handles transaction construction, pre-broadcast simulation, and the
export/import codec.
"""

from cosigner.tx.builder import BuildTransactionResult, TransactionBuilder, estimate_fee
from cosigner.tx.codec import export_transaction, import_transaction
from cosigner.tx.simulation import SimulationResult, simulate_transaction

__all__ = [
    "BuildTransactionResult",
    "TransactionBuilder",
    "estimate_fee",
    "export_transaction",
    "import_transaction",
    "SimulationResult",
    "simulate_transaction",
]
