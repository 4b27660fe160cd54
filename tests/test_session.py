"""
Test suite for the wallet session and saved multisig accounts.
"""

import pytest

from cosigner.core.result import ErrorCode, Result
from cosigner.state.pending_store import PendingTransactionStore
from cosigner.wallet.session import MultisigAccount, WalletSession, WalletStatus
from cosigner.wallet.test_mode import TEST_PKH, TestModeWallet


@pytest.fixture
def store() -> PendingTransactionStore:
    return PendingTransactionStore()


@pytest.fixture
def session(mock_wallet, ledger, editor, store) -> WalletSession:
    return WalletSession(mock_wallet, ledger, editor, store)


@pytest.fixture
def funded_wallet(mock_wallet, make_wallet_note, pkhs):
    mock_wallet.notes = [
        make_wallet_note(1000, owner=pkhs[0], name_last="one"),
        make_wallet_note(2000, owner=pkhs[0], name_last="two"),
    ]
    return mock_wallet


# ============================================================================
# Test Connection
# ============================================================================

class TestConnection:
    """Tests for connecting and disconnecting."""

    @pytest.mark.asyncio
    async def test_connect_loads_notes(self, session, funded_wallet, editor, pkhs):
        result = await session.connect()

        assert result.ok
        assert session.is_connected
        assert session.pkh == pkhs[0]
        assert len(session.notes) == 2
        assert len(editor.draft.inputs) == 2
        assert funded_wallet.fetch_calls == [pkhs[0]]

    @pytest.mark.asyncio
    async def test_connect_failure(self, session, mock_wallet):
        mock_wallet.connect_result = Result.failure(ErrorCode.USER_REJECTED, "User rejected the connection request")

        result = await session.connect()

        assert result.error.code == ErrorCode.USER_REJECTED
        assert session.status == WalletStatus.ERROR
        assert session.error.code == ErrorCode.USER_REJECTED
        assert session.pkh is None

        session.clear_error()
        assert session.error is None

    @pytest.mark.asyncio
    async def test_connect_while_connecting(self, session):
        session.status = WalletStatus.CONNECTING
        assert (await session.connect()).error.code == ErrorCode.BUSY

    @pytest.mark.asyncio
    async def test_disconnect_discards_user_state(self, session, funded_wallet, editor, store, make_pending, recipient):
        await session.connect()
        editor.add_output(recipient, 10)
        store.add(make_pending())

        await session.disconnect()

        assert session.status == WalletStatus.DISCONNECTED
        assert session.notes == []
        assert editor.draft.outputs == []
        assert editor.draft.inputs == []
        assert len(store) == 0
        assert not funded_wallet.connected

    @pytest.mark.asyncio
    async def test_use_test_mode(self, session, ledger):
        await session.connect()

        result = await session.use_test_mode(TestModeWallet(ledger))

        assert result.ok
        assert session.is_test_mode
        assert session.pkh == TEST_PKH
        assert [int(n.assets) for n in session.notes] == [65536000, 32768000, 16384000]

    def test_not_test_mode_by_default(self, session):
        assert session.is_test_mode is False


# ============================================================================
# Test Notes
# ============================================================================

class TestNotes:
    """Tests for keeping the draft's inputs in step with the wallet."""

    @pytest.mark.asyncio
    async def test_refresh_keeps_selection(self, session, funded_wallet, editor):
        await session.connect()
        editor.toggle_note_selection(1)

        await session.refresh_notes()

        assert [i.selected for i in editor.draft.inputs] == [False, True]

    @pytest.mark.asyncio
    async def test_refresh_requires_connection(self, session):
        assert (await session.refresh_notes()).error.code == ErrorCode.CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_account_switch_clears_selection(self, session, funded_wallet, editor, pkhs):
        await session.connect()
        editor.select_all_notes()

        await session.fetch_notes(pkhs[0], switching_account=True)

        assert editor.draft.selected_inputs == []

    @pytest.mark.asyncio
    async def test_get_notes_is_a_copy(self, session, funded_wallet):
        await session.connect()
        session.get_notes().clear()
        assert len(session.notes) == 2


# ============================================================================
# Test Multisig Accounts
# ============================================================================

class TestMultisigAccounts:
    """Tests for saving and activating M-of-N accounts."""

    def test_create_account(self, session, ledger, pkhs):
        result = session.create_multisig_account("Treasury", 2, pkhs)

        assert result.ok
        account = result.value
        assert account.lock_hash == ledger.lock_digest(ledger.threshold_pkh_lock(2, pkhs))
        assert account.id == account.lock_hash
        assert account.label == "Treasury (2-of-3)"
        assert session.saved_multisigs[account.lock_hash] is account

    @pytest.mark.parametrize(
        "name, threshold, count, code, message",
        [
            (" ", 1, 2, ErrorCode.INVALID_MULTISIG, "Please enter a name for the multisig account"),
            ("Vault", 1, 1, ErrorCode.INVALID_MULTISIG, "At least 2 signers are required"),
            ("Vault", 0, 2, ErrorCode.INVALID_MULTISIG, "Threshold must be between 1 and 2"),
            ("Vault", 3, 2, ErrorCode.INVALID_MULTISIG, "Threshold must be between 1 and 2"),
        ],
    )
    def test_invalid_accounts(self, session, pkhs, name, threshold, count, code, message):
        result = session.create_multisig_account(name, threshold, pkhs[:count])

        assert result.error.code == code
        assert result.error.message == message
        assert session.saved_multisigs == {}

    def test_invalid_pkh(self, session, pkhs):
        result = session.create_multisig_account("Vault", 1, [pkhs[0], "nope"])
        assert result.error.message == "Invalid PKH format: nope..."

    def test_duplicate_signers(self, session, pkhs):
        result = session.create_multisig_account("Vault", 1, [pkhs[0], pkhs[1], pkhs[0]])
        assert result.error.code == ErrorCode.DUPLICATE_SIGNER

    def test_blank_entries_ignored(self, session, pkhs):
        result = session.create_multisig_account("Vault", 2, [pkhs[0], "  ", pkhs[1]])
        assert result.value.signer_pkhs == pkhs[:2]

    @pytest.mark.asyncio
    async def test_activate_account(self, session, funded_wallet, editor, pkhs):
        await session.connect()
        editor.select_all_notes()
        account = session.create_multisig_account("Treasury", 2, pkhs).value

        result = await session.set_active_multisig(account)

        assert result.ok
        assert session.active_multisig is account
        assert session.active_lock_digest() == account.lock_hash
        assert funded_wallet.fetch_calls[-1] == account.lock_hash
        assert editor.draft.inputs == []
        config = editor.draft.multisig_config
        assert config.threshold == 2
        assert [s.public_key_hash for s in config.signers] == pkhs

    @pytest.mark.asyncio
    async def test_activate_requires_connection(self, session, pkhs):
        account = MultisigAccount(name="x", threshold=1, signer_pkhs=pkhs[:2], lock_hash="lock")
        assert (await session.set_active_multisig(account)).error.code == ErrorCode.CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_remove_active_account_returns_to_personal(self, session, funded_wallet, pkhs):
        await session.connect()
        account = session.create_multisig_account("Treasury", 2, pkhs).value
        await session.set_active_multisig(account)

        assert await session.remove_multisig_account(account.lock_hash) is True

        assert session.active_multisig is None
        assert funded_wallet.fetch_calls[-1] == pkhs[0]
        assert len(session.notes) == 2
        assert await session.remove_multisig_account(account.lock_hash) is False
