"""
HTTP wallet adapter.

Talks to a local wallet bridge (key custody and signing) and a node API
(note lookup and transaction submission) over JSON/HTTP. Byte payloads
travel as standard base64 strings.

Bridge endpoints:
    GET  /health                -> 200 when the bridge is running
    POST /connect               -> {"pkh": str, "endpoint": str}
    POST /sign                  {"rawTx", "notes", "spendConditions"} -> {"signature"}

Node endpoints:
    GET  /notes/{lock_digest}   -> {"notes": [{"note", "spendCondition"}]}
    POST /transactions          {"tx"} -> {"txHash": str}
"""

import base64
from typing import Any, Optional

import httpx
import structlog

from cosigner.config import CosignerConfig, get_config
from cosigner.core.result import ErrorCode, Result
from cosigner.ledger.interface import LedgerEngine
from cosigner.wallet.interface import (
    ConnectionInfo,
    SigningMetadata,
    WalletNote,
    WalletService,
    classify_connect_error,
    classify_sign_error,
)

logger = structlog.get_logger(__name__)


class WalletBridgeError(Exception):
    """Raised when a bridge or node request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return response.text


class HttpWalletService(WalletService):
    """
    Wallet service backed by a wallet bridge and a node API.

    The ledger engine serializes the decoded objects handed over for
    signing and decodes the notes returned by the node.
    """

    def __init__(
        self,
        ledger: LedgerEngine,
        config: Optional[CosignerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the adapter.

        Args:
            ledger: Engine used to encode and decode ledger objects
            config: Configuration. Uses global config if not provided.
            transport: Custom HTTP transport for both clients
        """
        self.ledger = ledger
        self.config = config or get_config()
        self._transport = transport
        self._bridge: Optional[httpx.AsyncClient] = None
        self._node: Optional[httpx.AsyncClient] = None
        self._connection: Optional[ConnectionInfo] = None
        self._available = False

    def is_available(self) -> bool:
        """Whether the last health probe reached the bridge."""
        return self._available

    def _client(self, base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=self.config.http_timeout_seconds,
            transport=self._transport,
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        **kwargs,
    ) -> Any:
        """Make an API request and return the decoded JSON body."""
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error("wallet_request_error", path=path, error=str(e))
            raise WalletBridgeError(f"Request to {path} failed: network error: {e}")

        if response.status_code != 200:
            error_msg = _error_text(response)
            logger.error(
                "wallet_request_failed",
                path=path,
                status=response.status_code,
                error=error_msg,
            )
            raise WalletBridgeError(error_msg, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise WalletBridgeError(f"malformed response from {path}: {e}")

    async def probe(self) -> bool:
        """Check that the wallet bridge is reachable."""
        if self._bridge is None:
            self._bridge = self._client(self.config.wallet_bridge_url)
        try:
            response = await self._bridge.get("/health")
            self._available = response.status_code == 200
        except httpx.RequestError as e:
            logger.debug("wallet_bridge_unreachable", error=str(e))
            self._available = False
        return self._available

    async def connect(self) -> Result:
        if not await self.probe():
            return Result.failure(
                ErrorCode.NOT_INSTALLED,
                "Wallet bridge is not running",
                self.config.wallet_bridge_url,
            )

        try:
            data = await self._request(self._bridge, "POST", "/connect")
        except WalletBridgeError as e:
            return classify_connect_error(str(e))

        pkh = data.get("pkh") if isinstance(data, dict) else None
        if not pkh:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Wallet returned no public key hash")

        endpoint = data.get("endpoint") or self.config.node_url
        if self._node is None:
            self._node = self._client(endpoint)
        self._connection = ConnectionInfo(pkh=pkh, endpoint=endpoint)

        logger.info("wallet_connected", pkh=pkh[:8] + "...", endpoint=endpoint)
        return Result.success(self._connection)

    async def disconnect(self) -> None:
        """Close both HTTP clients."""
        for client in (self._bridge, self._node):
            if client is not None:
                await client.aclose()
        self._bridge = None
        self._node = None
        self._connection = None
        logger.info("wallet_disconnected")

    async def fetch_notes(self, lock_digest: str) -> Result:
        if self._node is None:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Not connected to wallet")

        try:
            data = await self._request(self._node, "GET", f"/notes/{lock_digest}")
        except WalletBridgeError as e:
            return Result.failure(ErrorCode.UNKNOWN, "Failed to fetch notes", str(e))

        entries = data.get("notes") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return Result.success([])

        notes = [n for n in (self._parse_note_entry(e, lock_digest) for e in entries) if n]
        logger.debug("notes_fetched", lock=lock_digest[:8] + "...", count=len(notes))
        return Result.success(notes)

    def _parse_note_entry(self, entry: Any, lock_digest: str) -> Optional[WalletNote]:
        """Decode one node entry; malformed entries are skipped."""
        try:
            note_bytes = _unb64(entry["note"])
            note = self.ledger.parse_note(note_bytes)
            if entry.get("spendCondition"):
                sc_bytes = _unb64(entry["spendCondition"])
            else:
                sc_bytes = self.ledger.serialize_spend_condition(self.ledger.single_pkh_lock(lock_digest))
            return WalletNote(
                note_protobuf=note_bytes,
                spend_condition_protobuf=sc_bytes,
                note_hash=self.ledger.note_hash(note),
                name_first=note.name_first,
                name_last=note.name_last,
                assets=note.assets,
                origin_page=note.origin_page,
            )
        except Exception as e:
            logger.warning("note_parse_error", error=str(e))
            return None

    async def sign_transaction(self, unsigned_tx: Any, metadata: SigningMetadata) -> Result:
        if self._bridge is None or self._connection is None:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Not connected to wallet")

        try:
            payload = {
                "rawTx": _b64(self.ledger.serialize_transaction(unsigned_tx)),
                "notes": [_b64(self.ledger.serialize_note(n)) for n in metadata.notes],
                "spendConditions": [
                    _b64(self.ledger.serialize_spend_condition(sc)) for sc in metadata.spend_conditions
                ],
            }
        except Exception as e:
            return Result.failure(ErrorCode.SIGNING_FAILED, "Could not encode transaction for signing", str(e))

        try:
            data = await self._request(self._bridge, "POST", "/sign", json=payload)
            signature = _unb64(data["signature"])
        except WalletBridgeError as e:
            return classify_sign_error(str(e))
        except (KeyError, TypeError, ValueError) as e:
            return Result.failure(ErrorCode.SIGNING_FAILED, "Wallet returned an invalid signature", str(e))

        logger.info("transaction_signed_by_wallet", size=len(signature))
        return Result.success(signature)

    async def broadcast_transaction(self, tx_bytes: bytes) -> Result:
        if self._node is None:
            return Result.failure(ErrorCode.CONNECTION_FAILED, "Not connected to wallet")

        try:
            data = await self._request(self._node, "POST", "/transactions", json={"tx": _b64(tx_bytes)})
        except WalletBridgeError as e:
            return Result.failure(ErrorCode.UNKNOWN, str(e))

        tx_hash = data.get("txHash") if isinstance(data, dict) else data
        if not tx_hash:
            return Result.failure(ErrorCode.UNKNOWN, "Node returned no transaction hash")

        logger.info("tx_submitted", tx_hash=str(tx_hash))
        return Result.success(str(tx_hash))
