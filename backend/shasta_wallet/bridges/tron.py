"""
Shasta Wallet - TRON Bridge (TronGrid HTTP API, Shasta testnet)

Contract:
    - fetch_balance never raises: any failure returns FETCH_FAILED
    - execute builds, signs (via the injected signer) and broadcasts a
      TRX transfer; ledger rejections come back as failure_reason
    - generate raises ExecutorError when the node cannot supply a key pair
    - Wallet does NOT own ledger truth; balances only come from here
"""

import logging
from decimal import Decimal
from typing import Optional, Protocol

import base58
import httpx

from shasta_wallet.core.config import settings
from shasta_wallet.core.errors import ExecutorError
from shasta_wallet.core.types import Sun
from shasta_wallet.models.schemas import KeyPair, TransferResult, WalletAddress
from shasta_wallet.services.reconciliation import FETCH_FAILED

logger = logging.getLogger(__name__)

ADDRESS_PREFIX = 0x41
ADDRESS_LENGTH = 34


# =============================================================================
# ADDRESS ENCODING
# =============================================================================

def base58_to_hex(address: str) -> str:
    """Base58Check address -> 21-byte hex (41...)."""
    return base58.b58decode_check(address).hex()


def hex_to_base58(address_hex: str) -> str:
    """21-byte hex (41...) -> Base58Check address."""
    return base58.b58encode_check(bytes.fromhex(address_hex)).decode("ascii")


def is_valid_address(address: Optional[str]) -> bool:
    """True for a well-formed mainnet/testnet TRON address (T...)."""
    if not address or len(address) != ADDRESS_LENGTH:
        return False
    try:
        payload = base58.b58decode_check(address)
    except ValueError:
        return False
    return len(payload) == 21 and payload[0] == ADDRESS_PREFIX


def _decode_message(message: str) -> str:
    """Broadcast errors arrive hex-encoded."""
    try:
        return bytes.fromhex(message).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return message


# =============================================================================
# BRIDGE
# =============================================================================

class TransactionSigner(Protocol):
    """Signs a TronGrid transaction object with a private key."""

    async def sign(self, transaction: dict, private_key: str) -> dict:
        ...


class TronGridBridge:
    """
    Bridge to a TronGrid full node.

    Balance source and transfer executor for the reconciliation engine and
    transfer gate.
    """

    def __init__(
        self,
        base_url: str = settings.TRON_FULL_NODE,
        signer: Optional[TransactionSigner] = None,
        timeout: float = settings.TRON_REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.signer = signer
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self.client.aclose()

    async def _post(self, path: str, payload: dict) -> dict:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()

    async def fetch_balance(self, address: str) -> Decimal:
        """Balance in TRX, or FETCH_FAILED. Unactivated accounts hold 0."""
        try:
            data = await self._post(
                "/wallet/getaccount", {"address": address, "visible": True}
            )
            return Sun.to_trx(int(data.get("balance", 0)))
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[TRON] Balance fetch failed for {address}: {e}")
            return FETCH_FAILED

    async def generate(self) -> KeyPair:
        """New account from the node's address generator."""
        try:
            data = await self._post("/wallet/generateaddress", {})
            address = data["address"]
            return KeyPair(
                address=WalletAddress(
                    base58=address,
                    hex=data.get("hexAddress") or base58_to_hex(address),
                ),
                private_key=data["privateKey"],
                public_key=data.get("publicKey", ""),
            )
        except (httpx.HTTPError, KeyError, ValueError, TypeError) as e:
            logger.error(f"[TRON] Address generation failed: {e}")
            raise ExecutorError(f"Ledger unavailable: {e}", step="generate") from e

    async def execute(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal,
        credential: str,
    ) -> TransferResult:
        """Build, sign and broadcast a TRX transfer."""
        if self.signer is None:
            return TransferResult(success=False, failure_reason="No transaction signer configured.")

        try:
            transaction = await self._post(
                "/wallet/createtransaction",
                {
                    "owner_address": from_address,
                    "to_address": to_address,
                    "amount": Sun.from_trx(amount),
                    "visible": True,
                },
            )
            if "Error" in transaction:
                return TransferResult(success=False, failure_reason=str(transaction["Error"]))

            signed = await self.signer.sign(transaction, credential)
            receipt = await self._post("/wallet/broadcasttransaction", signed)
        except httpx.HTTPError as e:
            logger.error(f"[TRON] Transfer request failed: {e}")
            return TransferResult(success=False, failure_reason=f"Ledger unavailable: {e}")
        except ValueError as e:
            logger.error(f"[TRON] Signing failed: {e}")
            return TransferResult(success=False, failure_reason=f"Signing failed: {e}")

        if receipt.get("result"):
            txid = receipt.get("txid") or transaction.get("txID")
            logger.info(f"[TRON] Broadcast {txid}")
            return TransferResult(success=True, reference=txid)

        message = receipt.get("message")
        reason = _decode_message(message) if message else "Transaction failed."
        logger.warning(f"[TRON] Broadcast rejected: {reason}")
        return TransferResult(success=False, failure_reason=reason)
