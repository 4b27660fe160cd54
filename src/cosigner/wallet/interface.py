"""
Abstract interfaces for wallet connectivity.

Defines the signer provider (key custody and signing) and the broadcast
endpoint (note lookup and network submission) contracts. Both return
Results; implementations classify their failures into the signer /
connectivity part of the error taxonomy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List

from cosigner.core.amount import Amount
from cosigner.core.result import ErrorCode, Result
from cosigner.core.types import TransactionInput


@dataclass
class ConnectionInfo:
    """Result of a successful wallet connection. The account is identified by its pkh."""
    pkh: str
    endpoint: str


@dataclass
class WalletNote:
    """
    A note held by the connected account.

    Attributes:
        note_protobuf: Serialized note, as produced by the ledger engine
        spend_condition_protobuf: Serialized spend condition that locks it
        note_hash: Content digest of the note
        name_first: First half of the note name
        name_last: Second half of the note name
        assets: Value held by the note
        origin_page: Block page the note was created at
    """
    note_protobuf: bytes
    spend_condition_protobuf: bytes
    note_hash: str
    name_first: str
    name_last: str
    assets: Amount
    origin_page: int = 0

    def __post_init__(self):
        if not isinstance(self.assets, Amount):
            self.assets = Amount(self.assets)

    @property
    def key(self):
        return (self.name_first, self.name_last)

    def to_transaction_input(self, selected: bool = False) -> TransactionInput:
        return TransactionInput(
            name_first=self.name_first,
            name_last=self.name_last,
            assets=self.assets,
            origin_page=self.origin_page,
            selected=selected,
        )


@dataclass
class SigningMetadata:
    """Decoded source notes and spend conditions handed to the signer."""
    notes: List[Any] = field(default_factory=list)
    spend_conditions: List[Any] = field(default_factory=list)


def classify_connect_error(message: str) -> Result:
    """Map a connect failure message onto the taxonomy."""
    lowered = message.lower()
    if "not installed" in lowered:
        return Result.failure(ErrorCode.NOT_INSTALLED, "Wallet signer is not installed", message)
    if "rejected" in lowered or "denied" in lowered:
        return Result.failure(ErrorCode.USER_REJECTED, "User rejected the connection request", message)
    return Result.failure(ErrorCode.CONNECTION_FAILED, message or "Connection failed")


def classify_sign_error(message: str) -> Result:
    """Map a signing failure message onto the taxonomy."""
    lowered = message.lower()
    if "rejected" in lowered or "denied" in lowered:
        return Result.failure(ErrorCode.USER_REJECTED, "User rejected the signing request", message)
    return Result.failure(ErrorCode.SIGNING_FAILED, message or "Signing failed")


class SignerProvider(ABC):
    """
    Abstract signer provider.

    Holds the user's keys; the co-signer never sees private key material.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the provider is installed/reachable at all."""
        pass

    @abstractmethod
    async def connect(self) -> Result:
        """
        Connect to the wallet.

        Returns:
            Result holding ConnectionInfo
        """
        pass

    @abstractmethod
    async def sign_transaction(
        self,
        unsigned_tx: Any,
        metadata: SigningMetadata,
    ) -> Result:
        """
        Sign a transaction with the connected key.

        Returns:
            Result holding the signature bytes
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass


class BroadcastEndpoint(ABC):
    """Abstract note source and transaction submission endpoint."""

    @abstractmethod
    async def fetch_notes(self, lock_digest: str) -> Result:
        """
        Fetch the notes locked under a digest.

        Returns:
            Result holding a list of WalletNote
        """
        pass

    @abstractmethod
    async def broadcast_transaction(self, tx_bytes: bytes) -> Result:
        """
        Submit a signed transaction.

        Returns:
            Result holding the network transaction hash
        """
        pass


class WalletService(SignerProvider, BroadcastEndpoint):
    """A wallet that provides both signing and network access."""

    @property
    def is_test_mode(self) -> bool:
        return False
