"""
Shasta Wallet - Wallet and Notification Service

Wallet lifecycle (create, list, remove) and the notification inbox.
Balances are not written here: a new wallet starts at 0 and only the
reconciliation engine moves it afterwards.
"""

import logging
from decimal import Decimal
from typing import Optional, Protocol

from shasta_wallet.core.errors import ValidationError
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.models.schemas import KeyPair, NotificationRecord, WalletRecord
from shasta_wallet.services.reconciliation import ReconciliationEngine
from shasta_wallet.services.session import SessionContext

logger = logging.getLogger(__name__)


class KeyPairGenerator(Protocol):
    """External account generation."""

    async def generate(self) -> KeyPair:
        ...


class WalletService:
    """Wallets and notifications for the session's user."""

    def __init__(self, repository: WalletRepository, key_generator: KeyPairGenerator) -> None:
        self.repository = repository
        self.key_generator = key_generator

    async def create_wallet(
        self,
        session: SessionContext,
        name: Optional[str] = None,
    ) -> WalletRecord:
        session.require_active()
        existing = await self.repository.get_wallets(session.user)
        keys = await self.key_generator.generate()
        wallet = WalletRecord(
            address=keys.address,
            private_key=keys.private_key,
            public_key=keys.public_key,
            balance=Decimal("0"),
            name=(name or "").strip() or f"Tron Wallet {len(existing) + 1}",
        )
        await self.repository.add_wallet(session.user, wallet)
        logger.info(f"Created wallet: {wallet.name} ({wallet.address.base58})")
        return wallet

    async def list_wallets(self, session: SessionContext) -> list[WalletRecord]:
        session.require_active()
        return await self.repository.get_wallets(session.user)

    async def delete_wallet(
        self,
        session: SessionContext,
        wallet_id: str,
        reconciliation: Optional[ReconciliationEngine] = None,
    ) -> None:
        """
        Remove a wallet from the list.

        The key material is gone from this device afterwards; the on-ledger
        account is untouched.
        """
        session.require_active()
        if not await self.repository.delete_wallet(session.user, wallet_id):
            raise ValidationError("Wallet not found.", field="wallet_id")
        if reconciliation is not None:
            reconciliation.forget(wallet_id)
        logger.info(f"Deleted wallet {wallet_id} for {session.user}")

    async def list_notifications(self, session: SessionContext) -> list[NotificationRecord]:
        session.require_active()
        return await self.repository.get_notifications(session.user)

    async def has_unread(self, session: SessionContext) -> bool:
        notifications = await self.list_notifications(session)
        return any(not n.read for n in notifications)

    async def mark_all_read(
        self,
        session: SessionContext,
        reconciliation: Optional[ReconciliationEngine] = None,
    ) -> int:
        session.require_active()
        changed = await self.repository.mark_all_read(session.user)
        if reconciliation is not None:
            reconciliation.clear_unread()
        return changed
