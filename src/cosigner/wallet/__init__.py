"""
Wallet Integration Layer.

Signer provider and broadcast endpoint contracts, their HTTP and
test-mode implementations, and the per-user wallet session.
"""

from cosigner.wallet.interface import BroadcastEndpoint, SignerProvider, WalletNote, WalletService
from cosigner.wallet.http import HttpWalletService
from cosigner.wallet.test_mode import TestModeWallet
from cosigner.wallet.session import MultisigAccount, WalletSession

__all__ = [
    "BroadcastEndpoint",
    "SignerProvider",
    "WalletNote",
    "WalletService",
    "HttpWalletService",
    "TestModeWallet",
    "MultisigAccount",
    "WalletSession",
]
