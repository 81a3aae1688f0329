"""
Shasta Wallet - Pydantic Schemas
Explicit schemas for every persisted record and every response body

RULE: No floats allowed for balances or amounts. Amounts use Amount
      (Decimal, serialized as string).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shasta_wallet.core.types import Amount


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# SECURITY PROFILE / TOTP SCHEMAS
# =============================================================================

class SecurityProfile(BaseModel):
    """
    Per-user second factor settings.

    The secret is present if and only if two-factor is enabled; the
    flag and the secret always change together.
    """
    two_factor_enabled: bool = False
    secret: Optional[str] = None

    @model_validator(mode="after")
    def _secret_iff_enabled(self) -> "SecurityProfile":
        if self.two_factor_enabled and not self.secret:
            raise ValueError("two_factor_enabled requires a secret")
        if not self.two_factor_enabled and self.secret:
            raise ValueError("secret present while two_factor_enabled is false")
        return self


class EnrollmentState(str, Enum):
    """Two-factor enrollment states."""
    NOT_ENROLLED = "NOT_ENROLLED"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    ENROLLED = "ENROLLED"


class TotpCredential(BaseModel):
    """Enrollment-only credential; lives between begin and confirm."""
    secret: str
    provisioning_uri: str
    qr_url: Optional[str] = None


class SecurityStatus(BaseModel):
    """Security profile response (never carries the secret)."""
    two_factor_enabled: bool
    enrollment_state: EnrollmentState


# =============================================================================
# ACCOUNT SCHEMAS
# =============================================================================

class UserAccount(BaseModel):
    """Registered local account."""
    username: str = Field(..., min_length=1, max_length=64)
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# WALLET SCHEMAS
# =============================================================================

class WalletAddress(BaseModel):
    """Ledger address in both encodings."""
    base58: str
    hex: str


class WalletRecord(BaseModel):
    """
    Persisted wallet.

    balance is the last value observed and accepted by reconciliation,
    never an optimistic one.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    address: WalletAddress
    private_key: str
    public_key: str
    balance: Amount = Decimal("0")
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class WalletView(BaseModel):
    """Wallet response model. Key material is never returned."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    address: WalletAddress
    balance: Amount
    name: str
    created_at: datetime


class KeyPair(BaseModel):
    """Freshly generated account material from the key generator."""
    address: WalletAddress
    private_key: str
    public_key: str


# =============================================================================
# NOTIFICATION SCHEMAS
# =============================================================================

class NotificationKind(str, Enum):
    """Notification severity."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationRecord(BaseModel):
    """Balance change notification, newest first in storage."""
    id: str = Field(default_factory=new_id)
    title: str
    message: str
    kind: NotificationKind = NotificationKind.INFO
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False


# =============================================================================
# RECONCILIATION SCHEMAS
# =============================================================================

class BalanceDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class BalanceChange(BaseModel):
    """A material balance change accepted during a tick."""
    wallet_id: str
    wallet_name: str
    direction: BalanceDirection
    previous: Amount
    current: Amount
    delta: Amount


class TickReport(BaseModel):
    """Outcome of one reconciliation tick."""
    started_at: datetime = Field(default_factory=utcnow)
    wallets_checked: int = 0
    fetch_failures: list[str] = Field(default_factory=list)
    changes: list[BalanceChange] = Field(default_factory=list)
    coalesced: bool = False


# =============================================================================
# TRANSFER GATE SCHEMAS
# =============================================================================

class GateState(str, Enum):
    """Transfer gate FSM states."""
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    AWAITING_CODE = "AWAITING_CODE"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class GateTransition(BaseModel):
    """State transition record."""
    previous_state: Optional[GateState] = None
    current_state: GateState
    trigger_event: str
    reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class GateResponse(BaseModel):
    """Standard gate output after every operation."""
    state: GateState
    message: str
    reason: Optional[str] = None
    field: Optional[str] = None
    reference: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class TransferRequest(BaseModel):
    """Raw transfer request, validated by the gate."""
    wallet_id: str
    recipient: str
    amount: str


class TransferResult(BaseModel):
    """Executor outcome."""
    success: bool
    reference: Optional[str] = None
    failure_reason: Optional[str] = None
