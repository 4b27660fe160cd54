"""
Command-line interface for the multisig co-signer.

Provides commands for inspecting and simulating exported transactions and
a self-contained test-mode walkthrough of the full co-signing lifecycle.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from cosigner import __version__
from cosigner.app import CosignerApp
from cosigner.config import CosignerConfig, NetworkType, set_config
from cosigner.core.amount import Amount
from cosigner.core.result import Result
from cosigner.core.validation import short_address
from cosigner.ledger.local import LocalLedgerEngine, digest
from cosigner.state.pending_store import signature_progress
from cosigner.tx.codec import import_transaction
from cosigner.tx.simulation import simulate_transaction
from cosigner.wallet.test_mode import TEST_PKH, TestModeWallet


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cosigner",
        description="Multisig co-signing coordinator",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser(
        "demo",
        help="Run a 2-of-3 co-signing walkthrough in test mode",
    )
    demo_parser.add_argument(
        "--amount",
        type=int,
        default=100,
        help="Amount to send in NOCK (default: 100)",
    )
    demo_parser.add_argument(
        "--network",
        choices=[n.value for n in NetworkType],
        default=NetworkType.LOCAL.value,
    )
    _add_logging_args(demo_parser)

    # Inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Decode an exported transaction")
    inspect_parser.add_argument(
        "artifact",
        help="File holding the exported token, or - for stdin",
    )
    _add_logging_args(inspect_parser)

    # Simulate command
    simulate_parser = subparsers.add_parser(
        "simulate",
        help="Run the pre-broadcast checks on an exported transaction",
    )
    simulate_parser.add_argument(
        "artifact",
        help="File holding the exported token, or - for stdin",
    )
    simulate_parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Skip ledger decoding of the raw transaction",
    )
    _add_logging_args(simulate_parser)

    return parser


def _read_artifact(path: str) -> str:
    if path == "-":
        return sys.stdin.read().strip()
    return Path(path).read_text(encoding="utf-8").strip()


def _exit_on_failure(result: Result, context: str) -> None:
    if not result.ok:
        print(f"{context}: {result.error.message}", file=sys.stderr)
        if result.error.details:
            print(f"  {result.error.details}", file=sys.stderr)
        sys.exit(1)


def _print_transaction(tx) -> None:
    progress = signature_progress(tx)
    print(f"  Transaction ID: {tx.id}")
    print(f"    Status: {tx.status.value}")
    print(f"    Tx Hash: {tx.tx_hash or '-'}")
    print(f"    Signatures: {progress.signed}/{progress.required} (of {progress.total} signers)")
    print(f"    Inputs: {len(tx.selected_inputs)} totalling {tx.total_input_amount.format_display()}")
    for output in tx.draft.outputs:
        print(f"    Output: {short_address(output.recipient_address)} <- {output.amount.format_display()}")
    print(f"    Fee: {int(tx.total_fee)} nicks")
    for signer in tx.signers:
        record = tx.signature_for(signer.id)
        mark = "signed" if record and record.is_signed else "waiting"
        print(f"    Signer {signer.label}: {short_address(signer.public_key_hash)} [{mark}]")


def inspect_artifact(args: argparse.Namespace) -> None:
    """Decode a token and print its summary."""
    result = import_transaction(_read_artifact(args.artifact))
    _exit_on_failure(result, "Import failed")
    _print_transaction(result.value)


def simulate_artifact(args: argparse.Namespace) -> None:
    """Decode a token and simulate it."""
    result = import_transaction(_read_artifact(args.artifact))
    _exit_on_failure(result, "Import failed")

    simulation = simulate_transaction(result.value, LocalLedgerEngine(), test_mode=args.test_mode)
    _exit_on_failure(simulation, "Simulation failed")

    outcome = simulation.value
    print("Simulation passed")
    print(f"  Signatures: {outcome.signature_count}/{outcome.required_signatures}")
    print(f"  Estimated size: {outcome.estimated_size} bytes")
    for warning in outcome.warnings:
        print(f"  Warning: {warning}")


def demo_signer_pkh(index: int) -> str:
    """Deterministic public-key hash for a demo co-signer."""
    return digest(f"demo-signer-{index}".encode("utf-8"))


async def run_demo(args: argparse.Namespace) -> None:
    """Walk two co-signers through build, exchange, signing and broadcast."""
    config = CosignerConfig(
        network=NetworkType(args.network),
        test_mode=True,
        log_level=args.log_level,
        log_json=args.log_json,
    )
    set_config(config)

    ledger = LocalLedgerEngine()
    second_pkh = demo_signer_pkh(2)
    signers = [TEST_PKH, second_pkh, demo_signer_pkh(3)]
    recipient = demo_signer_pkh(99)

    creator = CosignerApp(config, ledger, TestModeWallet(ledger, TEST_PKH))
    _exit_on_failure(await creator.start(), "Connect failed")
    print(f"Creator connected as {short_address(TEST_PKH)} with {len(creator.session.notes)} notes")

    creator.editor.toggle_note_selection(0)
    creator.editor.add_output(recipient, Amount.from_display(args.amount))
    for pkh in signers:
        creator.editor.add_signer(pkh)
    creator.editor.set_threshold(2)
    print(f"Estimated fee: {int(creator.wizard.estimated_fee)} nicks")

    built = await creator.wizard.build()
    _exit_on_failure(built, "Build failed")
    tx_id = built.value.id
    print(f"Built transaction {tx_id}")

    _exit_on_failure(await creator.signing.sign(tx_id), "Signing failed")
    token = creator.signing.export(tx_id).unwrap()
    print(f"Creator signed and exported ({len(token)} chars)")

    cosigner = CosignerApp(config, ledger, TestModeWallet(ledger, second_pkh))
    _exit_on_failure(await cosigner.start(), "Connect failed")
    _exit_on_failure(cosigner.signing.import_token(token), "Import failed")
    print(f"Co-signer {short_address(second_pkh)} imported the transaction")

    _exit_on_failure(await cosigner.signing.sign(tx_id), "Signing failed")
    _exit_on_failure(await cosigner.signing.broadcast(tx_id), "Broadcast failed")

    state = cosigner.signing.broadcast_state
    print(state.message)
    for warning in state.warnings:
        print(f"  Warning: {warning}")
    print()
    _print_transaction(cosigner.store.get(tx_id))

    await cosigner.stop()
    await creator.stop()


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    log_level = getattr(args, "log_level", "WARNING")
    log_json = getattr(args, "log_json", False)
    setup_logging(log_level, log_json)

    # Run appropriate command
    if args.command == "demo":
        asyncio.run(run_demo(args))
    elif args.command == "inspect":
        inspect_artifact(args)
    elif args.command == "simulate":
        simulate_artifact(args)


if __name__ == "__main__":
    main()
