"""
Shasta Wallet - Error Taxonomy

Every user-visible failure names the field or step that failed so the
caller can retry correctly. Transient balance fetch failures are not
errors: the reconciliation engine absorbs them.
"""

from typing import Optional


class WalletError(Exception):
    """Base class for all wallet errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.step = step

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "field": self.field,
            "step": self.step,
        }


class ValidationError(WalletError):
    """Bad amount, bad address, insufficient funds, malformed code."""
    pass


class AuthenticationError(WalletError):
    """Wrong one-time code or wrong credentials. Always retryable."""
    pass


class EnrollmentError(WalletError):
    """Two-factor enrollment requested in the wrong state."""
    pass


class ExecutorError(WalletError):
    """Ledger rejected the request or could not be reached. Reason is kept verbatim."""
    pass


class SessionError(WalletError):
    """Operation against a closed or unknown session."""
    pass


class InvalidTransitionError(WalletError):
    """Transfer gate operation not allowed in the current state."""
    pass
