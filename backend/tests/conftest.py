"""Shared fixtures for Shasta Wallet tests."""

import asyncio
from decimal import Decimal

import pytest

from shasta_wallet.bridges.tron import hex_to_base58
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.db.store import MemoryRecordStore
from shasta_wallet.models.schemas import WalletAddress, WalletRecord
from shasta_wallet.services.mocks import LedgerMock
from shasta_wallet.services.session import SessionContext
from shasta_wallet.services.totp import TotpEngine

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_address(seed: int) -> WalletAddress:
    address_hex = "41" + f"{seed:040x}"
    return WalletAddress(base58=hex_to_base58(address_hex), hex=address_hex)


def make_wallet(seed: int, balance: str = "0", name: str = None) -> WalletRecord:
    return WalletRecord(
        address=make_address(seed),
        private_key=f"{seed:064x}",
        public_key="04" + f"{seed:0128x}",
        balance=Decimal(balance),
        name=name or f"Tron Wallet {seed}",
    )


class YieldingRecordStore(MemoryRecordStore):
    """Memory store that gives up the event loop on every read and write."""

    def __init__(self, delay: float = 0.01) -> None:
        super().__init__()
        self.delay = delay

    async def get(self, owner, kind):
        await asyncio.sleep(self.delay)
        return await super().get(owner, kind)

    async def put(self, owner, kind, value):
        await asyncio.sleep(self.delay)
        await super().put(owner, kind, value)


class FixedClock:
    """Settable clock for the TOTP engine."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def repository(store):
    return WalletRepository(store, notification_limit=50)


@pytest.fixture
def ledger():
    return LedgerMock()


@pytest.fixture
def session():
    return SessionContext("alice")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def totp(clock):
    return TotpEngine(issuer="TronShastaWallet", clock=clock)
