# Mock External System Interfaces
from shasta_wallet.services.mocks.ledger import LedgerMock

__all__ = [
    "LedgerMock",
]
