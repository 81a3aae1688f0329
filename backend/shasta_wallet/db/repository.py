"""
Shasta Wallet - Typed Repository over the Record Store

Every document is validated with its pydantic schema on read. A document
that fails validation is treated as the empty/default value rather than
crashing the caller; the failure is logged.

Every read-modify-write holds the owner's asyncio lock, so a
reconciliation tick and a concurrent wallet or inbox edit in this process
never overwrite each other's changes.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from shasta_wallet.core.config import settings
from shasta_wallet.db.store import (
    GLOBAL_OWNER,
    KIND_ACCOUNTS,
    KIND_NOTIFICATIONS,
    KIND_PROFILE,
    KIND_WALLETS,
    RecordStore,
)
from shasta_wallet.models.schemas import (
    NotificationRecord,
    SecurityProfile,
    UserAccount,
    WalletRecord,
)

logger = logging.getLogger(__name__)

_wallet_list = TypeAdapter(list[WalletRecord])
_notification_list = TypeAdapter(list[NotificationRecord])
_account_map = TypeAdapter(dict[str, UserAccount])


class WalletRepository:
    """Typed access to wallets, notifications, profiles and accounts."""

    def __init__(
        self,
        store: RecordStore,
        notification_limit: int = settings.NOTIFICATION_LIMIT,
    ) -> None:
        self.store = store
        self.notification_limit = notification_limit
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, owner: str) -> asyncio.Lock:
        lock = self._locks.get(owner)
        if lock is None:
            lock = self._locks[owner] = asyncio.Lock()
        return lock

    async def _load(self, owner: str, kind: str, adapter: TypeAdapter, default):
        raw = await self.store.get(owner, kind)
        if raw is None:
            return default
        try:
            return adapter.validate_python(raw)
        except ValidationError as e:
            logger.warning(
                f"[STORE] Invalid {kind} record for {owner}, using default "
                f"({e.error_count()} errors)"
            )
            return default

    # =========================================================================
    # WALLETS
    # =========================================================================

    async def get_wallets(self, owner: str) -> list[WalletRecord]:
        return await self._load(owner, KIND_WALLETS, _wallet_list, [])

    async def get_wallet(self, owner: str, wallet_id: str) -> Optional[WalletRecord]:
        for wallet in await self.get_wallets(owner):
            if wallet.id == wallet_id:
                return wallet
        return None

    async def save_wallets(self, owner: str, wallets: list[WalletRecord]) -> None:
        async with self._lock(owner):
            await self._write_wallets(owner, wallets)

    async def _write_wallets(self, owner: str, wallets: list[WalletRecord]) -> None:
        await self.store.put(
            owner, KIND_WALLETS, _wallet_list.dump_python(wallets, mode="json")
        )

    async def add_wallet(self, owner: str, wallet: WalletRecord) -> None:
        async with self._lock(owner):
            wallets = await self.get_wallets(owner)
            wallets.append(wallet)
            await self._write_wallets(owner, wallets)

    async def delete_wallet(self, owner: str, wallet_id: str) -> bool:
        async with self._lock(owner):
            wallets = await self.get_wallets(owner)
            remaining = [w for w in wallets if w.id != wallet_id]
            if len(remaining) == len(wallets):
                return False
            await self._write_wallets(owner, remaining)
            return True

    async def set_wallet_balance(
        self, owner: str, wallet_id: str, balance: Decimal
    ) -> bool:
        """
        Overwrite one wallet's balance.

        Re-reads the list so a wallet deleted meanwhile is not resurrected.
        Returns False when the wallet no longer exists.
        """
        async with self._lock(owner):
            wallets = await self.get_wallets(owner)
            for wallet in wallets:
                if wallet.id == wallet_id:
                    wallet.balance = balance
                    await self._write_wallets(owner, wallets)
                    return True
            return False

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    async def get_notifications(self, owner: str) -> list[NotificationRecord]:
        return await self._load(owner, KIND_NOTIFICATIONS, _notification_list, [])

    async def add_notification(self, owner: str, notification: NotificationRecord) -> None:
        """Prepend, evicting the oldest beyond the limit."""
        async with self._lock(owner):
            notifications = await self.get_notifications(owner)
            notifications.insert(0, notification)
            del notifications[self.notification_limit:]
            await self._write_notifications(owner, notifications)

    async def mark_all_read(self, owner: str) -> int:
        async with self._lock(owner):
            notifications = await self.get_notifications(owner)
            changed = 0
            for notification in notifications:
                if not notification.read:
                    notification.read = True
                    changed += 1
            if changed:
                await self._write_notifications(owner, notifications)
            return changed

    async def _write_notifications(
        self, owner: str, notifications: list[NotificationRecord]
    ) -> None:
        await self.store.put(
            owner,
            KIND_NOTIFICATIONS,
            _notification_list.dump_python(notifications, mode="json"),
        )

    # =========================================================================
    # SECURITY PROFILE
    # =========================================================================

    async def get_profile(self, owner: str) -> SecurityProfile:
        raw = await self.store.get(owner, KIND_PROFILE)
        if raw is None:
            return SecurityProfile()
        try:
            return SecurityProfile.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                f"[STORE] Invalid profile record for {owner}, using default "
                f"({e.error_count()} errors)"
            )
            return SecurityProfile()

    async def save_profile(self, owner: str, profile: SecurityProfile) -> None:
        async with self._lock(owner):
            await self.store.put(owner, KIND_PROFILE, profile.model_dump(mode="json"))

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def get_accounts(self) -> dict[str, UserAccount]:
        return await self._load(GLOBAL_OWNER, KIND_ACCOUNTS, _account_map, {})

    async def add_account(self, account: UserAccount) -> bool:
        """Store a new account. Returns False if the username is taken."""
        async with self._lock(GLOBAL_OWNER):
            accounts = await self.get_accounts()
            if account.username in accounts:
                return False
            accounts[account.username] = account
            await self.store.put(
                GLOBAL_OWNER,
                KIND_ACCOUNTS,
                _account_map.dump_python(accounts, mode="json"),
            )
            return True
