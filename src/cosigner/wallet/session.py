"""
Wallet session - connection state, notes and saved multisig accounts.

The session owns the connected account's note list and keeps the live
draft's candidate inputs in step with it. Switching accounts replaces the
notes and the draft's inputs together, so no selection from the previous
account survives the switch.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import structlog

from cosigner.core.draft import DraftEditor
from cosigner.core.result import ErrorCode, OperationError, Result
from cosigner.core.types import now_ms
from cosigner.core.validation import find_duplicate_pkhs, is_valid_pkh
from cosigner.ledger.interface import LedgerEngine, ledger_call
from cosigner.state.pending_store import PendingTransactionStore
from cosigner.wallet.interface import ConnectionInfo, WalletNote, WalletService
from cosigner.wallet.test_mode import TestModeWallet

logger = structlog.get_logger(__name__)

MIN_MULTISIG_SIGNERS = 2


class WalletStatus(str, Enum):
    """Connection state of the session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class MultisigAccount:
    """
    A saved M-of-N account.

    Attributes:
        name: Display name
        threshold: Signatures required to spend
        signer_pkhs: Public-key hashes of the co-signers
        lock_hash: Digest of the threshold lock; the account's address
        created_at: Creation time in epoch milliseconds
    """
    name: str
    threshold: int
    signer_pkhs: List[str]
    lock_hash: str
    created_at: int = field(default_factory=now_ms)

    @property
    def id(self) -> str:
        return self.lock_hash

    @property
    def label(self) -> str:
        return f"{self.name} ({self.threshold}-of-{len(self.signer_pkhs)})"


class WalletSession:
    """
    Connected wallet state for one user.

    Disconnecting discards the draft and every pending transaction along
    with the notes, since they all belong to the departing user.
    """

    def __init__(
        self,
        wallet: WalletService,
        ledger: LedgerEngine,
        editor: DraftEditor,
        store: PendingTransactionStore,
    ):
        self.wallet = wallet
        self.ledger = ledger
        self.editor = editor
        self.store = store

        self.status = WalletStatus.DISCONNECTED
        self.connection: Optional[ConnectionInfo] = None
        self.notes: List[WalletNote] = []
        self.error: Optional[OperationError] = None

        self.saved_multisigs: Dict[str, MultisigAccount] = {}
        self.active_multisig: Optional[MultisigAccount] = None

    @property
    def is_connected(self) -> bool:
        return self.status == WalletStatus.CONNECTED

    @property
    def is_test_mode(self) -> bool:
        return self.wallet.is_test_mode

    @property
    def pkh(self) -> Optional[str]:
        return self.connection.pkh if self.connection else None

    def get_notes(self) -> List[WalletNote]:
        return list(self.notes)

    # Connection

    async def connect(self) -> Result:
        """
        Connect the wallet and load the personal account's notes.

        Returns:
            Result holding ConnectionInfo
        """
        if self.status == WalletStatus.CONNECTING:
            return Result.failure(ErrorCode.BUSY, "Connection already in progress")

        self.status = WalletStatus.CONNECTING
        self.error = None

        result = await self.wallet.connect()
        if not result.ok:
            self.status = WalletStatus.ERROR
            self.error = result.error
            logger.warning("wallet_connect_failed", code=result.error.code.value, error=result.error.message)
            return result

        self.status = WalletStatus.CONNECTED
        self.connection = result.value
        logger.info("session_connected", pkh=self.connection.pkh[:8] + "...", test_mode=self.is_test_mode)

        await self.fetch_notes(self.connection.pkh, switching_account=True)
        return result

    async def disconnect(self) -> None:
        """Disconnect and discard everything tied to the user."""
        await self.wallet.disconnect()

        self.status = WalletStatus.DISCONNECTED
        self.connection = None
        self.notes = []
        self.error = None
        self.active_multisig = None

        self.editor.reset()
        self.store.clear()
        logger.info("session_disconnected")

    async def use_test_mode(self, wallet: Optional[WalletService] = None) -> Result:
        """
        Switch the session to a test-mode wallet and connect it.

        Only allowed at the session boundary: a connected real wallet is
        disconnected first.
        """
        if self.is_connected:
            await self.disconnect()
        self.wallet = wallet or TestModeWallet()
        return await self.connect()

    def clear_error(self) -> None:
        self.error = None

    # Notes

    async def fetch_notes(self, lock_digest: str, switching_account: bool = False) -> Result:
        """
        Load the notes under a lock and sync the draft's inputs.

        Args:
            lock_digest: Lock to query
            switching_account: Drop all existing selections

        Returns:
            Result holding the list of WalletNote
        """
        result = await self.wallet.fetch_notes(lock_digest)
        if not result.ok:
            logger.warning("notes_fetch_failed", error=result.error.message)
            return result

        self._replace_notes(result.value, switching_account)
        return result

    async def refresh_notes(self) -> Result:
        """Re-fetch the active account's notes, keeping selections."""
        lock = self.active_lock_digest()
        if lock is None:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Wallet not connected")
        return await self.fetch_notes(lock)

    def _replace_notes(self, notes: List[WalletNote], switching_account: bool) -> None:
        self.notes = list(notes)
        if switching_account:
            self.editor.deselect_all_notes()
        self.editor.set_available_notes(self.notes)
        logger.debug("notes_replaced", count=len(self.notes), switched=switching_account)

    def active_lock_digest(self) -> Optional[str]:
        if self.active_multisig is not None:
            return self.active_multisig.lock_hash
        return self.pkh

    # Multisig accounts

    def compute_lock_hash(self, threshold: int, signer_pkhs: List[str]) -> Result:
        """Digest of the threshold lock for a signer set."""
        return ledger_call(
            "Failed to compute multisig lock hash",
            lambda: self.ledger.lock_digest(self.ledger.threshold_pkh_lock(threshold, signer_pkhs)),
            code=ErrorCode.INVALID_MULTISIG,
        )

    def create_multisig_account(self, name: str, threshold: int, signer_pkhs: List[str]) -> Result:
        """
        Validate and save a multisig account.

        Returns:
            Result holding the MultisigAccount
        """
        if not name.strip():
            return Result.failure(ErrorCode.INVALID_MULTISIG, "Please enter a name for the multisig account")

        signers = [s.strip() for s in signer_pkhs if s.strip()]
        if len(signers) < MIN_MULTISIG_SIGNERS:
            return Result.failure(ErrorCode.INVALID_MULTISIG, "At least 2 signers are required")

        for signer in signers:
            if not is_valid_pkh(signer):
                return Result.failure(ErrorCode.INVALID_MULTISIG, f"Invalid PKH format: {signer[:20]}...")

        if find_duplicate_pkhs(signers):
            return Result.failure(ErrorCode.DUPLICATE_SIGNER, "Duplicate signer addresses are not allowed")

        if threshold < 1 or threshold > len(signers):
            return Result.failure(
                ErrorCode.INVALID_MULTISIG,
                f"Threshold must be between 1 and {len(signers)}",
            )

        lock = self.compute_lock_hash(threshold, signers)
        if not lock.ok:
            return lock

        account = MultisigAccount(
            name=name.strip(),
            threshold=threshold,
            signer_pkhs=signers,
            lock_hash=lock.value,
        )
        self.saved_multisigs[account.lock_hash] = account
        logger.info(
            "multisig_account_created",
            name=account.name,
            threshold=threshold,
            signers=len(signers),
            lock_hash=account.lock_hash[:8] + "...",
        )
        return Result.success(account)

    async def set_active_multisig(self, account: Optional[MultisigAccount]) -> Result:
        """
        Switch to a saved multisig account, or back to the personal one.

        The account's signers and threshold are copied into the draft and
        its notes replace the current ones.
        """
        if not self.is_connected:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Wallet not connected")

        self.active_multisig = account
        if account is not None:
            self.editor.set_multisig_from_account(account.threshold, account.signer_pkhs)

        logger.info("active_account_changed", multisig=account.name if account else None)
        return await self.fetch_notes(self.active_lock_digest(), switching_account=True)

    async def remove_multisig_account(self, lock_hash: str) -> bool:
        account = self.saved_multisigs.pop(lock_hash, None)
        if account is None:
            return False
        if self.active_multisig is not None and self.active_multisig.lock_hash == lock_hash:
            await self.set_active_multisig(None)
        logger.info("multisig_account_removed", name=account.name)
        return True
