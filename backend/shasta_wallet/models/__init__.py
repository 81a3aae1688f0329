from shasta_wallet.models.schemas import (
    BalanceChange,
    BalanceDirection,
    EnrollmentState,
    GateResponse,
    GateState,
    GateTransition,
    KeyPair,
    NotificationKind,
    NotificationRecord,
    SecurityProfile,
    SecurityStatus,
    TickReport,
    TotpCredential,
    TransferRequest,
    TransferResult,
    UserAccount,
    WalletAddress,
    WalletRecord,
    WalletView,
)

__all__ = [
    "BalanceChange",
    "BalanceDirection",
    "EnrollmentState",
    "GateResponse",
    "GateState",
    "GateTransition",
    "KeyPair",
    "NotificationKind",
    "NotificationRecord",
    "SecurityProfile",
    "SecurityStatus",
    "TickReport",
    "TotpCredential",
    "TransferRequest",
    "TransferResult",
    "UserAccount",
    "WalletAddress",
    "WalletRecord",
    "WalletView",
]
