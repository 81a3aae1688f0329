"""
Shasta Wallet - Record Store

Opaque key/record storage, one JSON-serializable document per
(owner, kind). The only guarantee is whole-document last-write-wins.

Implementations:
- MemoryRecordStore: process-local, used for tests and demos
- SqlRecordStore: SQLAlchemy async engine (SQLite or PostgreSQL)
"""

import copy
import json
import logging
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from shasta_wallet.db.models import Base, Record
from shasta_wallet.db.session import build_engine, build_session_maker

logger = logging.getLogger(__name__)

KIND_WALLETS = "wallets"
KIND_NOTIFICATIONS = "notifications"
KIND_PROFILE = "profile"
KIND_ACCOUNTS = "accounts"

# Owner key for records that belong to no single user
GLOBAL_OWNER = "__global__"


class RecordStore(Protocol):
    """Atomic get/put of whole documents keyed by owner and kind."""

    async def get(self, owner: str, kind: str) -> Optional[Any]:
        ...

    async def put(self, owner: str, kind: str, value: Any) -> None:
        ...


class MemoryRecordStore:
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], Any] = {}

    async def get(self, owner: str, kind: str) -> Optional[Any]:
        value = self._data.get((owner, kind))
        return copy.deepcopy(value)

    async def put(self, owner: str, kind: str, value: Any) -> None:
        self._data[(owner, kind)] = copy.deepcopy(value)

    def raw(self, owner: str, kind: str) -> Optional[Any]:
        """Direct access for seeding corrupt data in tests."""
        return self._data.get((owner, kind))


class SqlRecordStore:
    """
    SQLAlchemy-backed store.

    One row per (owner, kind); the JSON payload is replaced wholesale.
    """

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        session_maker: Optional[async_sessionmaker] = None,
    ) -> None:
        self.engine = engine or build_engine()
        self.session_maker = session_maker or build_session_maker(self.engine)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def get(self, owner: str, kind: str) -> Optional[Any]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Record.payload)
                .where(Record.owner == owner)
                .where(Record.kind == kind)
            )
            payload = result.scalar_one_or_none()

        if payload is None:
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(f"[STORE] Unreadable {kind} record for {owner}: {e}")
            return None

    async def put(self, owner: str, kind: str, value: Any) -> None:
        payload = json.dumps(value, sort_keys=True, separators=(",", ":"))

        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    select(Record)
                    .where(Record.owner == owner)
                    .where(Record.kind == kind)
                )
                record = result.scalar_one_or_none()
                if record is None:
                    session.add(Record(owner=owner, kind=kind, payload=payload))
                else:
                    record.payload = payload
