"""
Shasta Wallet - Transfer Gate Finite State Machine

Decides whether an outbound transfer may run now or must first collect a
valid one-time code.

    IDLE ──submit──▶ VALIDATING ──(2FA off)──────────────▶ EXECUTING
                        │  │                                 │     │
                        │  └─(2FA on)─▶ AWAITING_CODE ─code─┘     │
                        ▼                    │ wrong code: stays   ▼
                     REJECTED ◀──────────────┘ (attempt limit)  COMPLETED
                                              ◀── executor failure ──┘

Rules:
    - The gate only reads the persisted balance; it never writes it
    - Validation failures name the field that failed
    - Executor failure reasons are surfaced verbatim
    - Completion schedules one post-transfer reconciliation tick
"""

import logging
from decimal import Decimal
from typing import Callable, Optional, Protocol

from shasta_wallet.core.config import settings
from shasta_wallet.core.errors import InvalidTransitionError
from shasta_wallet.core.types import parse_amount
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.models.schemas import (
    GateResponse,
    GateState,
    GateTransition,
    TransferResult,
    WalletRecord,
)
from shasta_wallet.services.reconciliation import ReconciliationEngine, format_amount
from shasta_wallet.services.session import SessionContext
from shasta_wallet.services.totp import TotpEngine, totp_engine

logger = logging.getLogger(__name__)


class TransferExecutor(Protocol):
    """External ledger transfer: build, sign, broadcast."""

    async def execute(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal,
        credential: str,
    ) -> TransferResult:
        ...


class PendingTransfer:
    """The transfer currently moving through the gate."""

    def __init__(self, wallet: WalletRecord, recipient: str, amount: Decimal) -> None:
        self.wallet = wallet
        self.recipient = recipient
        self.amount = amount


class TransferGate:
    """
    Transfer Gate FSM

    One gate per session. Every operation returns a GateResponse; calling
    an operation the current state does not allow raises
    InvalidTransitionError.
    """

    STATE_OUTPUTS: dict[GateState, str] = {
        GateState.IDLE: "Ready.",
        GateState.VALIDATING: "Validating transfer.",
        GateState.AWAITING_CODE: "Enter the 6-digit code from your authenticator app.",
        GateState.EXECUTING: "Sending transfer.",
        GateState.COMPLETED: "Transfer sent.",
        GateState.REJECTED: "Transfer rejected.",
    }

    VALID_TRANSITIONS: dict[GateState, set[GateState]] = {
        GateState.IDLE: {GateState.VALIDATING},
        GateState.VALIDATING: {GateState.AWAITING_CODE, GateState.EXECUTING, GateState.REJECTED},
        GateState.AWAITING_CODE: {GateState.EXECUTING, GateState.REJECTED, GateState.IDLE},
        GateState.EXECUTING: {GateState.COMPLETED, GateState.REJECTED},
        GateState.COMPLETED: {GateState.VALIDATING, GateState.IDLE},
        GateState.REJECTED: {GateState.VALIDATING, GateState.IDLE},
    }

    def __init__(
        self,
        session: SessionContext,
        repository: WalletRepository,
        executor: TransferExecutor,
        address_validator: Callable[[str], bool],
        reconciliation: Optional[ReconciliationEngine] = None,
        engine: TotpEngine = totp_engine,
        max_code_attempts: int = settings.MAX_CODE_ATTEMPTS,
    ) -> None:
        self.session = session
        self.repository = repository
        self.executor = executor
        self.address_validator = address_validator
        self.reconciliation = reconciliation
        self.engine = engine
        self.max_code_attempts = max_code_attempts

        self._state: GateState = GateState.IDLE
        self._pending: Optional[PendingTransfer] = None
        self._code_attempts = 0
        self._transition_log: list[GateTransition] = []

    @property
    def state(self) -> GateState:
        """Current FSM state."""
        return self._state

    @property
    def pending(self) -> Optional[PendingTransfer]:
        return self._pending

    @property
    def history(self) -> list[GateTransition]:
        return list(self._transition_log)

    def _transition(self, target: GateState, trigger: str, reason: Optional[str] = None) -> None:
        if target not in self.VALID_TRANSITIONS.get(self._state, set()):
            raise InvalidTransitionError(
                f"Cannot move from {self._state.value} to {target.value}.",
                step=trigger.lower(),
            )
        previous = self._state
        self._state = target
        self._transition_log.append(
            GateTransition(
                previous_state=previous,
                current_state=target,
                trigger_event=trigger,
                reason=reason,
            )
        )
        logger.debug(f"[GATE] {self.session.user}: {previous.value} -> {target.value} ({trigger})")

    def _respond(
        self,
        reason: Optional[str] = None,
        field: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> GateResponse:
        return GateResponse(
            state=self._state,
            message=self.STATE_OUTPUTS[self._state],
            reason=reason,
            field=field,
            reference=reference,
        )

    def _reject(self, trigger: str, reason: str, field: Optional[str] = None) -> GateResponse:
        self._transition(GateState.REJECTED, trigger, reason)
        self._pending = None
        logger.info(f"[GATE] Transfer rejected for {self.session.user}: {reason}")
        return self._respond(reason=reason, field=field)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def submit(self, wallet_id: str, recipient: str, amount: str) -> GateResponse:
        """
        Start a transfer from `wallet_id`.

        Rejects on a non-positive amount, a malformed recipient, or an amount
        above the wallet's persisted balance. Otherwise either executes at
        once (2FA off) or waits for a code (2FA on).
        """
        self.session.require_active()
        self._transition(GateState.VALIDATING, "TRANSFER_SUBMITTED")
        self._pending = None
        self._code_attempts = 0

        try:
            value = parse_amount(amount)
        except ValueError:
            return self._reject("VALIDATION_FAILED", "Amount is not a valid number.", "amount")
        if value <= 0:
            return self._reject("VALIDATION_FAILED", "Amount must be greater than zero.", "amount")
        if value.normalize().as_tuple().exponent < -6:
            return self._reject(
                "VALIDATION_FAILED", "Amount has more than 6 decimal places.", "amount"
            )

        recipient = (recipient or "").strip()
        if not self.address_validator(recipient):
            return self._reject("VALIDATION_FAILED", "Recipient address is invalid.", "recipient")

        wallet = await self.repository.get_wallet(self.session.user, wallet_id)
        if wallet is None:
            return self._reject("VALIDATION_FAILED", "Wallet not found.", "wallet_id")
        if value > wallet.balance:
            return self._reject("VALIDATION_FAILED", "Insufficient balance.", "amount")

        self._pending = PendingTransfer(wallet, recipient, value)

        profile = await self.repository.get_profile(self.session.user)
        if profile.two_factor_enabled:
            self._transition(GateState.AWAITING_CODE, "CODE_REQUIRED")
            return self._respond()

        return await self._execute("VALIDATED")

    async def verify_code(self, code: str) -> GateResponse:
        """
        Check the one-time code for the pending transfer.

        A wrong code keeps the gate in AWAITING_CODE with a reason. With an
        attempt limit configured, exhausting it rejects the transfer; the
        user recovers by submitting again.
        """
        self.session.require_active()
        if self._state != GateState.AWAITING_CODE:
            raise InvalidTransitionError(
                f"No code expected in state {self._state.value}.", step="verify_code"
            )

        profile = await self.repository.get_profile(self.session.user)
        if self.engine.validate((code or "").strip(), profile.secret):
            return await self._execute("CODE_VERIFIED")

        self._code_attempts += 1
        if self.max_code_attempts and self._code_attempts >= self.max_code_attempts:
            return self._reject(
                "CODE_ATTEMPTS_EXHAUSTED",
                "Too many incorrect codes. Submit the transfer again.",
                "code",
            )
        logger.info(f"[GATE] Incorrect code for {self.session.user} (attempt {self._code_attempts})")
        return self._respond(reason="Verification code is incorrect.", field="code")

    def cancel(self) -> GateResponse:
        """Abandon the pending transfer."""
        if self._state != GateState.IDLE:
            self._transition(GateState.IDLE, "CANCELLED")
        self._pending = None
        self._code_attempts = 0
        return self._respond()

    async def _execute(self, trigger: str) -> GateResponse:
        pending = self._pending
        self._transition(GateState.EXECUTING, trigger)

        try:
            result = await self.executor.execute(
                pending.wallet.address.base58,
                pending.recipient,
                pending.amount,
                pending.wallet.private_key,
            )
        except Exception as e:
            logger.error(f"[GATE] Executor error for {self.session.user}: {e}")
            return self._reject("EXECUTOR_FAILED", str(e) or "Transfer failed.")

        if not result.success:
            return self._reject("EXECUTOR_FAILED", result.failure_reason or "Transfer failed.")

        self._transition(GateState.COMPLETED, "EXECUTOR_SUCCEEDED")
        self._pending = None
        logger.info(
            f"[GATE] Sent {format_amount(pending.amount)} TRX from {pending.wallet.name} "
            f"(ref {result.reference})"
        )
        if self.reconciliation is not None:
            self.reconciliation.schedule_post_transfer_tick()
        return self._respond(reference=result.reference)
