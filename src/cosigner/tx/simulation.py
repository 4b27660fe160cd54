"""
Pre-broadcast simulation.

Checks that a pending transaction is still worth submitting: the raw
transaction is present, enough signatures are collected, and the amounts
still balance. Runs before every broadcast.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import PendingTransaction
from cosigner.ledger.interface import LedgerEngine, parse_ledger_error

logger = structlog.get_logger(__name__)

# Size contribution of one signature
SIGNATURE_SIZE = 64


@dataclass
class SimulationResult:
    """Outcome of a successful simulation."""
    valid: bool
    signature_count: int
    required_signatures: int
    estimated_size: int
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "signature_count": self.signature_count,
            "required_signatures": self.required_signatures,
            "estimated_size": self.estimated_size,
            "warnings": list(self.warnings),
        }


def _fail(message: str, details: Optional[str] = None) -> Result:
    logger.info("simulation_failed", reason=message)
    return Result.failure(ErrorCode.SIMULATION_FAILED, message, details)


def simulate_transaction(
    tx: PendingTransaction,
    ledger: Optional[LedgerEngine] = None,
    test_mode: bool = False,
) -> Result:
    """
    Simulate a pending transaction before broadcast.

    The checks run in a fixed order and the first failure is returned.
    Fee and decode concerns are reported as warnings, not failures.

    Args:
        tx: The pending transaction
        ledger: Engine used for a best-effort decode of the raw bytes
        test_mode: Skip engine validation entirely

    Returns:
        Result holding a SimulationResult
    """
    if not tx.raw_tx_jam:
        return _fail("Transaction data is missing")

    signature_count = tx.signature_count
    required = tx.threshold
    if signature_count < required:
        return _fail(
            f"Insufficient signatures: {signature_count} of {required} required",
            f"Need {required - signature_count} more signature(s) before broadcasting",
        )

    if not tx.selected_inputs:
        return _fail("Transaction has no inputs")

    if not tx.draft.outputs:
        return _fail("Transaction has no outputs")

    total_input = int(tx.total_input_amount)
    total_output = int(tx.total_output_amount)
    total_fee = int(tx.total_fee)
    if total_input - total_output - total_fee < 0:
        return _fail(
            "Transaction would result in negative balance",
            f"Input: {total_input}, Output: {total_output}, Fee: {total_fee}",
        )

    warnings: List[str] = []
    if total_fee > total_output:
        warnings.append(f"Fee ({total_fee} nicks) exceeds total output ({total_output} nicks)")

    if test_mode:
        warnings.append("Test mode: ledger validation skipped")
    elif ledger is not None:
        try:
            ledger.parse_transaction(tx.raw_tx_jam)
        except Exception as e:
            message, details = parse_ledger_error(e)
            logger.warning("simulation_decode_failed", tx_id=tx.id, error=details)
            warnings.append(f"Could not fully validate transaction: {message}")

    result = SimulationResult(
        valid=True,
        signature_count=signature_count,
        required_signatures=required,
        estimated_size=len(tx.raw_tx_jam) + SIGNATURE_SIZE * signature_count,
        warnings=warnings,
    )
    logger.info(
        "simulation_passed",
        tx_id=tx.id,
        signatures=signature_count,
        required=required,
        warnings=len(warnings),
    )
    return Result.success(result)
