"""
Application root context.

Wires one user's components together: a single live draft, the pending
store, the wallet session, the build wizard and the signing coordinator.
Components receive their collaborators explicitly; nothing is global
except configuration.
"""

from typing import Optional

import structlog

from cosigner.config import CosignerConfig, get_config
from cosigner.core.draft import DraftEditor
from cosigner.core.wizard import TransactionWizard
from cosigner.ledger.interface import LedgerEngine
from cosigner.ledger.local import LocalLedgerEngine
from cosigner.signing import SigningCoordinator
from cosigner.state.pending_store import PendingTransactionStore
from cosigner.tx.builder import TransactionBuilder
from cosigner.wallet.http import HttpWalletService
from cosigner.wallet.interface import WalletService
from cosigner.wallet.session import WalletSession
from cosigner.wallet.test_mode import TestModeWallet

logger = structlog.get_logger(__name__)


class CosignerApp:
    """
    One co-signer's session.

    Example:
        app = CosignerApp(config)
        await app.start()
        app.editor.add_output(recipient, amount)
        result = await app.wizard.build()
    """

    def __init__(
        self,
        config: Optional[CosignerConfig] = None,
        ledger: Optional[LedgerEngine] = None,
        wallet: Optional[WalletService] = None,
    ):
        """
        Initialize the application.

        Args:
            config: Configuration. Uses global config if not provided.
            ledger: Ledger engine. Defaults to the local reference engine.
            wallet: Wallet service. Defaults to the test-mode wallet when
                config.test_mode is set, the HTTP wallet otherwise.
        """
        self.config = config or get_config()
        self.ledger = ledger or LocalLedgerEngine()

        if wallet is None:
            if self.config.test_mode:
                wallet = TestModeWallet(self.ledger if isinstance(self.ledger, LocalLedgerEngine) else None)
            else:
                wallet = HttpWalletService(self.ledger, self.config)

        self.editor = DraftEditor(default_fee_per_word=self.config.default_fee_per_word)
        self.store = PendingTransactionStore()
        self.session = WalletSession(wallet, self.ledger, self.editor, self.store)
        self.builder = TransactionBuilder(self.ledger)
        self.wizard = TransactionWizard(
            self.editor,
            self.builder,
            self.store,
            notes_provider=self.session.get_notes,
            config=self.config,
        )
        self.signing = SigningCoordinator(self.store, self.session, self.ledger)

    async def start(self):
        """Connect the wallet and load the user's notes."""
        result = await self.session.connect()
        if result.ok:
            logger.info(
                "cosigner_started",
                network=self.config.network.value,
                test_mode=self.session.is_test_mode,
            )
        return result

    async def stop(self) -> None:
        await self.session.disconnect()
        logger.info("cosigner_stopped")
