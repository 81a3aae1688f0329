"""
Shasta Wallet - Balance Reconciliation Engine

Polls the ledger for every wallet of the session's user and surfaces each
genuine balance change exactly once:
- one NotificationRecord
- one persisted balance overwrite
- the unread indicator raised

Fetch failures are absorbed: the wallet keeps its last known good state
and is retried on the next tick. The engine is the only writer of
WalletRecord.balance.

Scheduling:
    start()  → one tick immediately, then every `interval` seconds
    stop()   → periodic and delayed ticks cancelled
    refresh_now() → out-of-band tick, coalesced with one in flight
    schedule_post_transfer_tick() → one delayed tick, never rescheduled
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from shasta_wallet.core.config import settings
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.models.schemas import (
    BalanceChange,
    BalanceDirection,
    NotificationKind,
    NotificationRecord,
    TickReport,
    WalletRecord,
)
from shasta_wallet.services.session import SessionContext

logger = logging.getLogger(__name__)

# Balances are never negative, so -1 can only mean "could not fetch"
FETCH_FAILED = Decimal(-1)


class BalanceSource(Protocol):
    """External ledger balance lookup. Returns FETCH_FAILED on failure."""

    async def fetch_balance(self, address: str) -> Decimal:
        ...


def format_amount(value: Decimal) -> str:
    return f"{value.normalize():f}"


def is_fetch_failure(value: Any) -> bool:
    return value is None or not value.is_finite() or value < 0


class ReconciliationEngine:
    """
    Per-session reconciliation engine.

    The baseline (last observed balance per wallet) is private state. It is
    seeded from the persisted balance the first time a wallet is polled and
    updated after every successful fetch, changed or not.
    """

    def __init__(
        self,
        session: SessionContext,
        repository: WalletRepository,
        balance_source: BalanceSource,
        interval: float = settings.POLL_INTERVAL_SECONDS,
        post_transfer_delay: float = settings.POST_TRANSFER_TICK_DELAY_SECONDS,
        epsilon: Decimal = settings.BALANCE_EPSILON,
    ) -> None:
        self.session = session
        self.repository = repository
        self.balance_source = balance_source
        self.interval = interval
        self.post_transfer_delay = post_transfer_delay
        self.epsilon = epsilon

        self._baseline: dict[str, Decimal] = {}
        self._monitoring = False
        self._in_flight = False
        self._rerun_requested = False
        self._periodic_task: Optional[asyncio.Task] = None
        self._delayed_tasks: set[asyncio.Task] = set()
        self._has_unread = False
        self.last_report: Optional[TickReport] = None

    # =========================================================================
    # STATE ACCESS
    # =========================================================================

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def has_unread(self) -> bool:
        return self._has_unread

    def clear_unread(self) -> None:
        self._has_unread = False

    def baseline(self, wallet_id: str) -> Optional[Decimal]:
        return self._baseline.get(wallet_id)

    def forget(self, wallet_id: str) -> None:
        """Drop the baseline of a removed wallet."""
        self._baseline.pop(wallet_id, None)

    # =========================================================================
    # TICK
    # =========================================================================

    async def tick(self) -> TickReport:
        """
        Reconcile every tracked wallet once.

        Ticks never overlap: a call made while one is running is coalesced
        into a single rerun performed by the running tick, and returns a
        report flagged `coalesced`.
        """
        if self._in_flight:
            self._rerun_requested = True
            logger.debug(f"[RECON] Tick coalesced for {self.session.user}")
            return TickReport(coalesced=True)

        self._in_flight = True
        try:
            report = await self._run_tick()
            while self._rerun_requested:
                self._rerun_requested = False
                report = await self._run_tick()
        finally:
            self._in_flight = False
            self._rerun_requested = False

        self.last_report = report
        return report

    async def _run_tick(self) -> TickReport:
        report = TickReport()
        if not self.session.active:
            return report

        wallets = await self.repository.get_wallets(self.session.user)
        for wallet in wallets:
            report.wallets_checked += 1
            fetched = await self._fetch(wallet)
            if fetched is None:
                report.fetch_failures.append(wallet.id)
                continue

            previous = self._baseline.get(wallet.id, wallet.balance)
            delta = fetched - previous
            if abs(delta) > self.epsilon:
                change = BalanceChange(
                    wallet_id=wallet.id,
                    wallet_name=wallet.name,
                    direction=BalanceDirection.INCOMING if delta > 0 else BalanceDirection.OUTGOING,
                    previous=previous,
                    current=fetched,
                    delta=abs(delta),
                )
                # notification and balance land together even if cancelled
                await asyncio.shield(self._apply_change(change))
                report.changes.append(change)

            self._baseline[wallet.id] = fetched

        if report.changes or report.fetch_failures:
            logger.info(
                f"[RECON] Tick for {self.session.user}: {report.wallets_checked} wallets, "
                f"{len(report.changes)} changed, {len(report.fetch_failures)} unavailable"
            )
        return report

    async def _fetch(self, wallet: WalletRecord) -> Optional[Decimal]:
        """Fetch a balance; any failure becomes None."""
        address = wallet.address.base58
        try:
            value = await self.balance_source.fetch_balance(address)
        except Exception as e:
            logger.warning(f"[RECON] Balance fetch raised for {address}: {e}")
            return None

        if value is not None and not isinstance(value, Decimal):
            try:
                value = Decimal(str(value))
            except InvalidOperation:
                value = None
        if is_fetch_failure(value):
            logger.warning(f"[RECON] Balance unavailable for {address}, keeping last known")
            return None
        return value

    async def _apply_change(self, change: BalanceChange) -> None:
        incoming = change.direction == BalanceDirection.INCOMING
        notification = NotificationRecord(
            title="TRX Received" if incoming else "TRX Sent",
            message=(
                f"Wallet {change.wallet_name} "
                f"{'received' if incoming else 'sent'} {format_amount(change.delta)} TRX. "
                f"New balance: {format_amount(change.current)} TRX."
            ),
            kind=NotificationKind.SUCCESS if incoming else NotificationKind.WARNING,
        )
        await self.repository.add_notification(self.session.user, notification)
        await self.repository.set_wallet_balance(
            self.session.user, change.wallet_id, change.current
        )
        self._has_unread = True
        logger.info(
            f"[RECON] {change.wallet_name}: {change.direction.value} "
            f"{format_amount(change.delta)} TRX, balance {format_amount(change.current)}"
        )

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    async def start(self) -> TickReport:
        """Enter the monitored state: tick now, then on the fixed cadence."""
        if self._monitoring:
            return self.last_report or TickReport()

        self._monitoring = True
        try:
            report = await self.tick()
        except Exception as e:
            logger.error(f"[RECON] Initial tick failed for {self.session.user}: {e}")
            report = TickReport()
        self._periodic_task = asyncio.create_task(self._periodic_loop())
        logger.info(f"[RECON] Monitoring started for {self.session.user}")
        return report

    async def stop(self) -> None:
        """Leave the monitored state and cancel every pending tick."""
        self._monitoring = False

        tasks = list(self._delayed_tasks)
        if self._periodic_task is not None:
            tasks.append(self._periodic_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._periodic_task = None
        self._delayed_tasks.clear()
        logger.info(f"[RECON] Monitoring stopped for {self.session.user}")

    async def refresh_now(self) -> TickReport:
        """Manual refresh; does not touch the periodic timer."""
        return await self.tick()

    def schedule_post_transfer_tick(self) -> asyncio.Task:
        """One extra tick after `post_transfer_delay` to catch a transfer sooner."""
        task = asyncio.create_task(self._delayed_tick())
        self._delayed_tasks.add(task)
        task.add_done_callback(self._delayed_tasks.discard)
        return task

    async def _delayed_tick(self) -> Optional[TickReport]:
        await asyncio.sleep(self.post_transfer_delay)
        if not self._monitoring or not self.session.active:
            logger.debug("[RECON] Post-transfer tick dropped: monitoring ended")
            return None
        return await self.tick()

    async def _periodic_loop(self) -> None:
        while self._monitoring:
            await asyncio.sleep(self.interval)
            if not self._monitoring:
                break
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"[RECON] Reconciliation loop error: {e}")
