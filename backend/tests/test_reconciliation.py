"""
Shasta Wallet - Balance Reconciliation Tests

Every genuine change is surfaced exactly once; fetch failures and
sub-epsilon noise never are.
"""

import asyncio
from decimal import Decimal

import pytest

from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.db.store import KIND_WALLETS
from shasta_wallet.models.schemas import BalanceDirection, NotificationKind, NotificationRecord
from shasta_wallet.services.reconciliation import (
    FETCH_FAILED,
    ReconciliationEngine,
    format_amount,
    is_fetch_failure,
)

from shasta_wallet.services.wallets import WalletService

from conftest import YieldingRecordStore, make_wallet, run


class GatedSource:
    """Balance source that blocks until released."""

    def __init__(self, ledger):
        self.ledger = ledger
        self.release = None
        self.calls = 0

    async def fetch_balance(self, address):
        self.calls += 1
        await self.release.wait()
        return await self.ledger.fetch_balance(address)


class ValueSource:
    """Returns whatever raw value it was given."""

    def __init__(self, value):
        self.value = value

    async def fetch_balance(self, address):
        return self.value


def make_engine(session, repository, source, **kwargs):
    kwargs.setdefault("interval", 3600)
    kwargs.setdefault("post_transfer_delay", 0.01)
    return ReconciliationEngine(session, repository, source, **kwargs)


@pytest.fixture
def wallet(repository, ledger):
    record = make_wallet(1, balance="100", name="Main")
    run(repository.add_wallet("alice", record))
    ledger.set_balance(record.address.base58, Decimal("100"))
    return record


class TestHelpers:

    def test_sentinel_is_failure(self):
        """Sentinel, None and NaN all mean the fetch failed."""
        assert is_fetch_failure(FETCH_FAILED)
        assert is_fetch_failure(None)
        assert is_fetch_failure(Decimal("NaN"))
        assert not is_fetch_failure(Decimal("0"))

    def test_format_amount_strips_trailing_zeros(self):
        """Amounts render without trailing zeros or exponents."""
        assert format_amount(Decimal("5.000000")) == "5"
        assert format_amount(Decimal("0.500")) == "0.5"
        assert format_amount(Decimal("100")) == "100"


class TestTick:
    """Single-tick reconciliation behavior."""

    def test_unchanged_balance_is_silent(self, session, repository, ledger, wallet):
        """Baseline seeds from the persisted balance; no change, no notification."""
        engine = make_engine(session, repository, ledger)
        report = run(engine.tick())

        assert report.wallets_checked == 1
        assert report.changes == []
        assert run(repository.get_notifications("alice")) == []
        assert engine.baseline(wallet.id) == Decimal("100")

    def test_sub_epsilon_change_is_noise(self, session, repository, ledger, wallet):
        """A delta within epsilon is not a material change."""
        ledger.set_balance(wallet.address.base58, Decimal("100.0000001"))
        engine = make_engine(session, repository, ledger)

        report = run(engine.tick())

        assert report.changes == []
        assert run(repository.get_notifications("alice")) == []
        assert run(repository.get_wallet("alice", wallet.id)).balance == Decimal("100")

    def test_incoming_change(self, session, repository, ledger, wallet):
        """A material increase notifies once and persists the new balance."""
        ledger.set_balance(wallet.address.base58, Decimal("105"))
        engine = make_engine(session, repository, ledger)

        report = run(engine.tick())

        assert len(report.changes) == 1
        change = report.changes[0]
        assert change.direction == BalanceDirection.INCOMING
        assert change.previous == Decimal("100")
        assert change.delta == Decimal("5")

        notifications = run(repository.get_notifications("alice"))
        assert len(notifications) == 1
        assert notifications[0].title == "TRX Received"
        assert notifications[0].kind == NotificationKind.SUCCESS
        assert notifications[0].message == "Wallet Main received 5 TRX. New balance: 105 TRX."
        assert notifications[0].read is False
        assert run(repository.get_wallet("alice", wallet.id)).balance == Decimal("105")
        assert engine.has_unread

    def test_outgoing_change(self, session, repository, ledger, wallet):
        """A decrease is reported as a warning."""
        ledger.set_balance(wallet.address.base58, Decimal("97.5"))
        engine = make_engine(session, repository, ledger)

        run(engine.tick())

        notification = run(repository.get_notifications("alice"))[0]
        assert notification.title == "TRX Sent"
        assert notification.kind == NotificationKind.WARNING
        assert "sent 2.5 TRX" in notification.message

    def test_change_reported_once(self, session, repository, ledger, wallet):
        """Two ticks with the same value produce one notification."""
        ledger.set_balance(wallet.address.base58, Decimal("105"))
        engine = make_engine(session, repository, ledger)

        run(engine.tick())
        second = run(engine.tick())

        assert second.changes == []
        assert len(run(repository.get_notifications("alice"))) == 1

    def test_sentinel_leaves_state_alone(self, session, repository, ledger, wallet):
        """A failed fetch touches neither baseline nor persisted state."""
        engine = make_engine(session, repository, ledger)
        run(engine.tick())
        ledger.fail_fetch(wallet.address.base58)

        report = run(engine.tick())

        assert report.fetch_failures == [wallet.id]
        assert engine.baseline(wallet.id) == Decimal("100")
        assert run(repository.get_wallet("alice", wallet.id)).balance == Decimal("100")
        assert run(repository.get_notifications("alice")) == []

    def test_failure_then_recovery_reports_change(self, session, repository, ledger, wallet):
        """The delta is measured from the last good value."""
        engine = make_engine(session, repository, ledger)
        ledger.fail_fetch(wallet.address.base58)
        run(engine.tick())

        ledger.restore_fetch(wallet.address.base58)
        ledger.set_balance(wallet.address.base58, Decimal("110"))
        report = run(engine.tick())

        assert report.changes[0].delta == Decimal("10")

    def test_raising_source_is_absorbed(self, session, repository, ledger, wallet):
        """An exception from one wallet does not stop the others."""
        second = make_wallet(2, balance="0")
        run(repository.add_wallet("alice", second))
        ledger.set_balance(second.address.base58, Decimal("1"))
        ledger.fail_fetch(wallet.address.base58, raise_error=True)
        engine = make_engine(session, repository, ledger)

        report = run(engine.tick())

        assert report.fetch_failures == [wallet.id]
        assert [c.wallet_id for c in report.changes] == [second.id]

    @pytest.mark.parametrize("value", [None, "garbage", -5, Decimal("-0.5")])
    def test_bad_values_are_failures(self, session, repository, wallet, value):
        """Non-numeric or negative fetch results count as failures."""
        engine = make_engine(session, repository, ValueSource(value))
        report = run(engine.tick())
        assert report.fetch_failures == [wallet.id]

    def test_closed_session_does_nothing(self, session, repository, ledger, wallet):
        """No fetches once the session has ended."""
        session.close()
        engine = make_engine(session, repository, ledger)

        report = run(engine.tick())

        assert report.wallets_checked == 0
        assert ledger.fetch_count == 0

    def test_other_wallets_not_overwritten(self, session, repository, ledger, wallet):
        """Only the changed wallet's balance is written."""
        other = make_wallet(2, balance="7")
        run(repository.add_wallet("alice", other))
        ledger.set_balance(other.address.base58, Decimal("7"))
        ledger.set_balance(wallet.address.base58, Decimal("1"))
        engine = make_engine(session, repository, ledger)

        run(engine.tick())

        assert run(repository.get_wallet("alice", other.id)).balance == Decimal("7")

    def test_forget_reseeds_from_persisted(self, session, repository, ledger, wallet):
        """Forgotten wallets drop their baseline."""
        engine = make_engine(session, repository, ledger)
        run(engine.tick())
        engine.forget(wallet.id)
        assert engine.baseline(wallet.id) is None


class TestPersistence:

    def test_notifications_capped(self, session, repository, ledger, wallet):
        """Only the newest 50 notifications are kept."""
        engine = make_engine(session, repository, ledger)
        for i in range(1, 56):
            ledger.set_balance(wallet.address.base58, Decimal(100 + i))
            run(engine.tick())

        notifications = run(repository.get_notifications("alice"))
        assert len(notifications) == 50
        assert "New balance: 155 TRX." in notifications[0].message

    def test_wallet_deleted_meanwhile_not_resurrected(self, session, repository, store, wallet):
        """A balance write for a removed wallet is a no-op."""
        assert run(repository.set_wallet_balance("alice", "missing", Decimal("1"))) is False
        assert len(store.raw("alice", KIND_WALLETS)) == 1


class TestScheduling:
    """Coalescing, periodic and post-transfer ticks."""

    def test_concurrent_ticks_coalesce(self, session, repository, ledger, wallet):
        """Ticks requested while one runs collapse into a single rerun."""
        source = GatedSource(ledger)
        engine = make_engine(session, repository, source)

        async def scenario():
            source.release = asyncio.Event()
            first = asyncio.create_task(engine.tick())
            await asyncio.sleep(0)
            assert engine.in_flight

            second = await engine.tick()
            third = await engine.tick()
            source.release.set()
            await first
            return second, third

        second, third = run(scenario())

        assert second.coalesced and third.coalesced
        # the original pass plus exactly one rerun
        assert source.calls == 2
        assert not engine.in_flight

    def test_start_ticks_immediately(self, session, repository, ledger, wallet):
        """Entering the monitored state ticks without waiting for the timer."""
        ledger.set_balance(wallet.address.base58, Decimal("120"))
        engine = make_engine(session, repository, ledger)

        async def scenario():
            report = await engine.start()
            assert engine.monitoring
            await engine.stop()
            return report

        report = run(scenario())
        assert len(report.changes) == 1
        assert not engine.monitoring

    def test_start_is_idempotent(self, session, repository, ledger, wallet):
        """A second start neither ticks again nor adds a timer."""
        engine = make_engine(session, repository, ledger)

        async def scenario():
            await engine.start()
            await engine.start()
            await engine.stop()

        run(scenario())
        assert ledger.fetch_count == 1

    def test_periodic_ticks(self, session, repository, ledger, wallet):
        """The timer keeps ticking until stopped, then stays quiet."""
        engine = make_engine(session, repository, ledger, interval=0.01)

        async def scenario():
            await engine.start()
            await asyncio.sleep(0.1)
            await engine.stop()
            count = ledger.fetch_count
            await asyncio.sleep(0.05)
            return count

        count = run(scenario())
        assert count >= 2
        assert ledger.fetch_count == count

    def test_post_transfer_tick(self, session, repository, ledger, wallet):
        """The delayed tick picks up the transfer's balance change."""
        engine = make_engine(session, repository, ledger)

        async def scenario():
            await engine.start()
            ledger.set_balance(wallet.address.base58, Decimal("90"))
            report = await engine.schedule_post_transfer_tick()
            await engine.stop()
            return report

        report = run(scenario())
        assert report.changes[0].direction == BalanceDirection.OUTGOING

    def test_stop_cancels_post_transfer_tick(self, session, repository, ledger, wallet):
        """Leaving the monitored state cancels pending delayed ticks."""
        engine = make_engine(session, repository, ledger, post_transfer_delay=0.05)

        async def scenario():
            await engine.start()
            task = engine.schedule_post_transfer_tick()
            await engine.stop()
            await asyncio.sleep(0.1)
            return task

        task = run(scenario())
        assert task.cancelled()
        assert ledger.fetch_count == 1

    def test_post_transfer_tick_after_logout_is_dropped(self, session, repository, ledger, wallet):
        """A delayed tick after logout applies nothing."""
        engine = make_engine(session, repository, ledger)

        async def scenario():
            await engine.start()
            task = engine.schedule_post_transfer_tick()
            session.close()
            result = await task
            await engine.stop()
            return result

        assert run(scenario()) is None
        assert ledger.fetch_count == 1

    def test_refresh_now(self, session, repository, ledger, wallet):
        """Manual refresh is an ordinary tick."""
        engine = make_engine(session, repository, ledger)
        ledger.set_balance(wallet.address.base58, Decimal("101"))

        report = run(engine.refresh_now())

        assert len(report.changes) == 1
        assert engine.last_report is report

    def test_clear_unread(self, session, repository, ledger, wallet):
        ledger.set_balance(wallet.address.base58, Decimal("101"))
        engine = make_engine(session, repository, ledger)
        run(engine.tick())

        engine.clear_unread()
        assert not engine.has_unread

    def test_failed_tick_drops_pending_rerun(self, session, repository, ledger, wallet, monkeypatch):
        """A tick that raises leaves no rerun queued for the next tick."""
        source = GatedSource(ledger)
        engine = make_engine(session, repository, source)
        ledger.set_balance(wallet.address.base58, Decimal("105"))

        async def store_offline(owner, notification):
            raise RuntimeError("store offline")

        async def scenario():
            source.release = asyncio.Event()
            monkeypatch.setattr(repository, "add_notification", store_offline)
            first = asyncio.create_task(engine.tick())
            await asyncio.sleep(0)
            assert (await engine.tick()).coalesced

            source.release.set()
            with pytest.raises(RuntimeError):
                await first
            monkeypatch.undo()

            calls_before = source.calls
            report = await engine.tick()
            return report, source.calls - calls_before

        report, calls = run(scenario())

        assert calls == 1
        assert len(report.changes) == 1
        assert not engine.in_flight


class TestConcurrentWriters:
    """A tick interleaved with user actions on the same owner's records."""

    @pytest.fixture
    def slow_repository(self):
        return WalletRepository(YieldingRecordStore(delay=0.01), notification_limit=50)

    @pytest.fixture
    def main_wallet(self, slow_repository, ledger):
        record = make_wallet(1, balance="100", name="Main")
        run(slow_repository.add_wallet("alice", record))
        ledger.set_balance(record.address.base58, Decimal("105"))
        return record

    def test_mark_all_read_keeps_new_notification(self, session, slow_repository, ledger, main_wallet):
        """Marking read while a tick records a change keeps that change's notification."""
        earlier = NotificationRecord(title="TRX Sent", message="Earlier transfer.")
        run(slow_repository.add_notification("alice", earlier))
        engine = make_engine(session, slow_repository, ledger)

        async def mark_read_later():
            await asyncio.sleep(0.015)
            return await slow_repository.mark_all_read("alice")

        async def scenario():
            report, _ = await asyncio.gather(engine.tick(), mark_read_later())
            notifications = await slow_repository.get_notifications("alice")
            wallet = await slow_repository.get_wallet("alice", main_wallet.id)
            return report, notifications, wallet

        report, notifications, wallet = run(scenario())

        assert len(report.changes) == 1
        assert [n.title for n in notifications] == ["TRX Received", "TRX Sent"]
        assert notifications[1].read
        assert wallet.balance == Decimal("105")

    def test_create_wallet_during_tick(self, session, slow_repository, ledger, main_wallet):
        """A wallet added while a tick writes a balance is kept, and so is the balance."""
        engine = make_engine(session, slow_repository, ledger)
        service = WalletService(slow_repository, ledger)

        async def create_later():
            await asyncio.sleep(0.025)
            return await service.create_wallet(session, "Second")

        async def scenario():
            _, created = await asyncio.gather(engine.tick(), create_later())
            return created, await slow_repository.get_wallets("alice")

        created, wallets = run(scenario())

        by_id = {w.id: w for w in wallets}
        assert [w.name for w in wallets] == ["Main", "Second"]
        assert by_id[main_wallet.id].balance == Decimal("105")
        assert created.id in by_id

    def test_delete_wallet_during_tick(self, session, slow_repository, ledger, main_wallet):
        """A wallet deleted while its change is being applied stays deleted."""
        other = make_wallet(2, balance="7", name="Other")
        run(slow_repository.add_wallet("alice", other))
        ledger.set_balance(other.address.base58, Decimal("7"))
        engine = make_engine(session, slow_repository, ledger)
        service = WalletService(slow_repository, ledger)

        async def delete_later():
            await asyncio.sleep(0.025)
            await service.delete_wallet(session, main_wallet.id, engine)

        async def scenario():
            await asyncio.gather(engine.tick(), delete_later())
            return await slow_repository.get_wallets("alice")

        wallets = run(scenario())

        assert [w.id for w in wallets] == [other.id]
        assert wallets[0].balance == Decimal("7")
