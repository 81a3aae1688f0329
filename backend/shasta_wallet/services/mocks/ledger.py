"""
Shasta Wallet - Ledger Mock Interface
Balance source, transfer executor and key generator in one

This is a MOCK implementation.
In production, these calls go to TronGrid (see bridges.tron).

Contract:
    - Wallet queries the ledger for balances
    - Wallet does NOT own ledger truth
    - Failures can be injected per address, for the next transfer or
      for the next key generation
"""

import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from shasta_wallet.bridges.tron import hex_to_base58
from shasta_wallet.core.errors import ExecutorError
from shasta_wallet.models.schemas import KeyPair, TransferResult, WalletAddress
from shasta_wallet.services.reconciliation import FETCH_FAILED


class LedgerMock:
    """
    Mock TRON Ledger

    Simulates balances and transfers. Configurable for testing scenarios.
    """

    def __init__(self, fee: Decimal = Decimal("0")) -> None:
        self._balances: dict[str, Decimal] = {}
        self._failing: set[str] = set()
        self._raising: set[str] = set()
        self._next_failure: Optional[str] = None
        self._next_generate_failure: Optional[str] = None
        self.fee = fee
        self._transfer_log: list[dict] = []
        self.fetch_count = 0

    def balance(self, address: str) -> Decimal:
        """Current mock balance."""
        return self._balances.get(address, Decimal("0"))

    def set_balance(self, address: str, amount: Decimal) -> None:
        """Set mock balance for testing scenarios."""
        self._balances[address] = amount

    def adjust_balance(self, address: str, delta: Decimal) -> Decimal:
        """Adjust balance by delta amount. Returns new balance."""
        self._balances[address] = self.balance(address) + delta
        return self._balances[address]

    def fail_fetch(self, address: str, raise_error: bool = False) -> None:
        """Make balance fetches for `address` fail (sentinel or exception)."""
        (self._raising if raise_error else self._failing).add(address)

    def restore_fetch(self, address: str) -> None:
        self._failing.discard(address)
        self._raising.discard(address)

    def fail_next_transfer(self, reason: str) -> None:
        self._next_failure = reason

    def fail_next_generate(self, reason: str) -> None:
        self._next_generate_failure = reason

    async def fetch_balance(self, address: str) -> Decimal:
        self.fetch_count += 1
        if address in self._raising:
            raise ConnectionError(f"ledger unreachable for {address}")
        if address in self._failing:
            return FETCH_FAILED
        return self.balance(address)

    async def execute(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal,
        credential: str,
    ) -> TransferResult:
        """Move funds between mock accounts."""
        if self._next_failure is not None:
            reason, self._next_failure = self._next_failure, None
            return TransferResult(success=False, failure_reason=reason)

        total = amount + self.fee
        if self.balance(from_address) < total:
            return TransferResult(success=False, failure_reason="balance is not sufficient")

        self.adjust_balance(from_address, -total)
        self.adjust_balance(to_address, amount)
        txid = secrets.token_hex(32)
        self._transfer_log.append({
            "txid": txid,
            "from": from_address,
            "to": to_address,
            "amount": str(amount),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        return TransferResult(success=True, reference=txid)

    async def generate(self) -> KeyPair:
        """Random key material with a valid T-address."""
        if self._next_generate_failure is not None:
            reason, self._next_generate_failure = self._next_generate_failure, None
            raise ExecutorError(reason, step="generate")
        address_hex = "41" + secrets.token_hex(20)
        return KeyPair(
            address=WalletAddress(base58=hex_to_base58(address_hex), hex=address_hex),
            private_key=secrets.token_hex(32),
            public_key="04" + secrets.token_hex(64),
        )

    def get_transfer_log(self) -> list[dict]:
        """Return transfer audit log."""
        return self._transfer_log.copy()

    def reset(self) -> None:
        """Reset mock state."""
        self._balances = {}
        self._failing = set()
        self._raising = set()
        self._next_failure = None
        self._next_generate_failure = None
        self._transfer_log = []
        self.fetch_count = 0
