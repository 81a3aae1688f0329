from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.db.store import MemoryRecordStore, RecordStore, SqlRecordStore

__all__ = [
    "MemoryRecordStore",
    "RecordStore",
    "SqlRecordStore",
    "WalletRepository",
]
