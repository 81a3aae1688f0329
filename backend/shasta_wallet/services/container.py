"""
Shasta Wallet - Service Container

Wires the core services to one record store and one ledger, and owns the
per-session components: a session entering the dashboard gets its own
reconciliation engine (started) and transfer gate; logging out stops the
engine before the session closes.
"""

import logging
from typing import Callable, Optional

from shasta_wallet.core.config import Settings, settings as default_settings
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.db.store import RecordStore
from shasta_wallet.services.gate import TransferExecutor, TransferGate
from shasta_wallet.services.reconciliation import BalanceSource, ReconciliationEngine
from shasta_wallet.services.security import SecurityProfileManager
from shasta_wallet.services.session import AccountService, SessionContext, SessionRegistry
from shasta_wallet.services.totp import TotpEngine
from shasta_wallet.services.wallets import KeyPairGenerator, WalletService

logger = logging.getLogger(__name__)

ENGINE_KEY = "reconciliation"
GATE_KEY = "gate"


class WalletContainer:
    """Application-wide service wiring."""

    def __init__(
        self,
        store: RecordStore,
        balance_source: BalanceSource,
        executor: TransferExecutor,
        key_generator: KeyPairGenerator,
        address_validator: Callable[[str], bool],
        config: Optional[Settings] = None,
        totp: Optional[TotpEngine] = None,
    ) -> None:
        self.config = config or default_settings
        self.repository = WalletRepository(store, self.config.NOTIFICATION_LIMIT)
        self.totp = totp or TotpEngine(
            issuer=self.config.TOTP_ISSUER,
            digits=self.config.TOTP_DIGITS,
            period=self.config.TOTP_PERIOD_SECONDS,
            tolerance_steps=self.config.TOTP_TOLERANCE_STEPS,
            secret_bytes=self.config.TOTP_SECRET_BYTES,
        )
        self.balance_source = balance_source
        self.executor = executor
        self.address_validator = address_validator

        self.accounts = AccountService(self.repository)
        self.security = SecurityProfileManager(self.repository, self.totp)
        self.wallets = WalletService(self.repository, key_generator)
        self.sessions = SessionRegistry()

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    async def login(self, username: str, password: str) -> SessionContext:
        """Authenticate, then enter the monitored state."""
        session = await self.accounts.login(username, password)
        await self.open_session(session)
        return session

    async def open_session(self, session: SessionContext) -> None:
        engine = ReconciliationEngine(
            session,
            self.repository,
            self.balance_source,
            interval=self.config.POLL_INTERVAL_SECONDS,
            post_transfer_delay=self.config.POST_TRANSFER_TICK_DELAY_SECONDS,
            epsilon=self.config.BALANCE_EPSILON,
        )
        gate = TransferGate(
            session,
            self.repository,
            self.executor,
            self.address_validator,
            reconciliation=engine,
            engine=self.totp,
            max_code_attempts=self.config.MAX_CODE_ATTEMPTS,
        )
        session.components[ENGINE_KEY] = engine
        session.components[GATE_KEY] = gate
        self.sessions.add(session)
        await engine.start()

    async def logout(self, session: SessionContext) -> None:
        """Leave the monitored state and destroy the session."""
        engine = session.components.get(ENGINE_KEY)
        if engine is not None:
            await engine.stop()
        self.sessions.remove(session)
        await self.accounts.logout(session)

    async def shutdown(self) -> None:
        for session in self.sessions.all():
            await self.logout(session)

    # =========================================================================
    # PER-SESSION COMPONENTS
    # =========================================================================

    def engine_for(self, session: SessionContext) -> ReconciliationEngine:
        session.require_active()
        return session.components[ENGINE_KEY]

    def gate_for(self, session: SessionContext) -> TransferGate:
        session.require_active()
        return session.components[GATE_KEY]
