"""
Shasta Wallet - Accounts, Wallets and Session Lifecycle Tests
"""

import asyncio
from decimal import Decimal

import pytest

from shasta_wallet.bridges.tron import is_valid_address
from shasta_wallet.core.config import Settings
from shasta_wallet.core.errors import AuthenticationError, SessionError, ValidationError
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.db.store import GLOBAL_OWNER, KIND_ACCOUNTS
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import AccountService, SessionRegistry
from shasta_wallet.services.wallets import WalletService

from conftest import YieldingRecordStore, run


@pytest.fixture
def config():
    return Settings(POLL_INTERVAL_SECONDS=3600, POST_TRANSFER_TICK_DELAY_SECONDS=0.01)


@pytest.fixture
def container(store, ledger, config, totp):
    return WalletContainer(
        store=store,
        balance_source=ledger,
        executor=ledger,
        key_generator=ledger,
        address_validator=is_valid_address,
        config=config,
        totp=totp,
    )


class TestAccounts:

    def test_register_and_login(self, repository):
        accounts = AccountService(repository)
        run(accounts.register("alice", "hunter2"))

        session = run(accounts.login("alice", "hunter2"))

        assert session.user == "alice"
        assert session.active
        stored = run(repository.get_accounts())["alice"]
        assert stored.password_hash.startswith("$argon2id$")
        assert "hunter2" not in stored.password_hash

    def test_new_account_has_two_factor_off(self, repository):
        run(AccountService(repository).register("alice", "pw"))
        assert run(repository.get_profile("alice")).two_factor_enabled is False

    def test_duplicate_username(self, repository):
        accounts = AccountService(repository)
        run(accounts.register("alice", "pw"))
        with pytest.raises(ValidationError) as exc:
            run(accounts.register("alice", "other"))
        assert exc.value.field == "username"

    def test_concurrent_registration_same_name(self):
        """Two registrations racing for one username: exactly one wins."""
        repository = WalletRepository(YieldingRecordStore())
        accounts = AccountService(repository)

        async def scenario():
            return await asyncio.gather(
                accounts.register("alice", "first"),
                accounts.register("alice", "second"),
                return_exceptions=True,
            )

        results = run(scenario())

        errors = [r for r in results if isinstance(r, ValidationError)]
        assert len(errors) == 1
        assert errors[0].field == "username"
        assert len(run(repository.get_accounts())) == 1

    def test_unreadable_hash_fails_login(self, repository, store):
        """A stored hash argon2 cannot parse is a failed login, not a crash."""
        accounts = AccountService(repository)
        run(accounts.register("alice", "pw"))
        raw = store.raw(GLOBAL_OWNER, KIND_ACCOUNTS)
        raw["alice"]["password_hash"] = "not-a-hash"

        with pytest.raises(AuthenticationError):
            run(accounts.login("alice", "pw"))

    @pytest.mark.parametrize("username,password,field", [("  ", "pw", "username"), ("bob", "", "password")])
    def test_required_fields(self, repository, username, password, field):
        with pytest.raises(ValidationError) as exc:
            run(AccountService(repository).register(username, password))
        assert exc.value.field == field

    def test_wrong_password(self, repository):
        accounts = AccountService(repository)
        run(accounts.register("alice", "pw"))
        with pytest.raises(AuthenticationError):
            run(accounts.login("alice", "wrong"))

    def test_unknown_user(self, repository):
        with pytest.raises(AuthenticationError):
            run(AccountService(repository).login("ghost", "pw"))

    def test_logout_closes_session(self, repository):
        accounts = AccountService(repository)
        run(accounts.register("alice", "pw"))
        session = run(accounts.login("alice", "pw"))

        run(accounts.logout(session))

        assert not session.active
        with pytest.raises(SessionError):
            session.require_active()


class TestSessionRegistry:

    def test_inactive_sessions_dropped(self, session):
        registry = SessionRegistry()
        registry.add(session)
        assert registry.get(session.token) is session

        session.close()
        assert registry.get(session.token) is None
        assert registry.all() == []


class TestWalletService:

    def test_create_wallet_defaults(self, repository, ledger, session):
        service = WalletService(repository, ledger)

        first = run(service.create_wallet(session))
        second = run(service.create_wallet(session, "  Savings "))

        assert first.name == "Tron Wallet 1"
        assert first.balance == Decimal("0")
        assert is_valid_address(first.address.base58)
        assert second.name == "Savings"
        assert len(run(service.list_wallets(session))) == 2

    def test_delete_unknown_wallet(self, repository, ledger, session):
        service = WalletService(repository, ledger)
        with pytest.raises(ValidationError) as exc:
            run(service.delete_wallet(session, "missing"))
        assert exc.value.field == "wallet_id"

    def test_closed_session_refused(self, repository, ledger, session):
        session.close()
        with pytest.raises(SessionError):
            run(WalletService(repository, ledger).list_wallets(session))


class TestContainer:
    """Login enters the monitored state; logout leaves it."""

    def test_login_starts_monitoring(self, container, ledger):
        async def scenario():
            await container.accounts.register("alice", "pw")
            session = await container.login("alice", "pw")
            wallet = await container.wallets.create_wallet(session)
            ledger.set_balance(wallet.address.base58, Decimal("50"))

            report = await container.engine_for(session).refresh_now()
            monitoring = container.engine_for(session).monitoring
            await container.logout(session)
            return session, report, monitoring

        session, report, monitoring = run(scenario())

        assert monitoring
        assert len(report.changes) == 1
        assert not session.active
        assert container.sessions.all() == []

    def test_transfer_then_post_transfer_tick(self, container, ledger):
        recipient = None

        async def scenario():
            nonlocal recipient
            await container.accounts.register("alice", "pw")
            session = await container.login("alice", "pw")
            wallet = await container.wallets.create_wallet(session)
            recipient = (await ledger.generate()).address.base58
            ledger.set_balance(wallet.address.base58, Decimal("20"))
            engine = container.engine_for(session)
            await engine.refresh_now()

            response = await container.gate_for(session).submit(wallet.id, recipient, "5")
            await asyncio.sleep(0.1)
            notifications = await container.wallets.list_notifications(session)
            balance = (await container.repository.get_wallet("alice", wallet.id)).balance
            await container.shutdown()
            return response, notifications, balance

        response, notifications, balance = run(scenario())

        assert response.state.value == "COMPLETED"
        assert balance == Decimal("15")
        assert notifications[0].title == "TRX Sent"
        assert ledger.balance(recipient) == Decimal("5")

    def test_delete_wallet_forgets_baseline(self, container, ledger):
        async def scenario():
            await container.accounts.register("alice", "pw")
            session = await container.login("alice", "pw")
            wallet = await container.wallets.create_wallet(session)
            engine = container.engine_for(session)
            await engine.refresh_now()
            had_baseline = engine.baseline(wallet.id) is not None

            await container.wallets.delete_wallet(session, wallet.id, engine)
            forgotten = engine.baseline(wallet.id) is None
            await container.shutdown()
            return had_baseline, forgotten

        assert run(scenario()) == (True, True)

    def test_mark_all_read_clears_indicator(self, container, ledger):
        async def scenario():
            await container.accounts.register("alice", "pw")
            session = await container.login("alice", "pw")
            wallet = await container.wallets.create_wallet(session)
            ledger.set_balance(wallet.address.base58, Decimal("3"))
            engine = container.engine_for(session)
            await engine.refresh_now()
            before = await container.wallets.has_unread(session)

            marked = await container.wallets.mark_all_read(session, engine)
            after = await container.wallets.has_unread(session)
            await container.shutdown()
            return before, marked, after, engine.has_unread

        assert run(scenario()) == (True, 1, False, False)

    def test_components_unavailable_after_logout(self, container):
        async def scenario():
            await container.accounts.register("alice", "pw")
            session = await container.login("alice", "pw")
            await container.logout(session)
            return session

        session = run(scenario())
        with pytest.raises(SessionError):
            container.gate_for(session)
