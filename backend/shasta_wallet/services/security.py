"""
Shasta Wallet - Security Profile Management
Two-factor enrollment state machine

    NOT_ENROLLED ──begin──▶ PENDING_CONFIRMATION ──confirm──▶ ENROLLED
         ▲                        │                              │
         └────────cancel──────────┘                              │
         └──────────────────────disable──────────────────────────┘

Rules:
    - The profile is only ever written whole: flag and secret together
    - A failed confirmation keeps the pending credential for retries
    - Disable discards the secret; re-enabling mints a new one
"""

import logging
from typing import Optional

from shasta_wallet.bridges.qr import build_qr_url
from shasta_wallet.core.errors import AuthenticationError, EnrollmentError
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.models.schemas import (
    EnrollmentState,
    SecurityProfile,
    SecurityStatus,
    TotpCredential,
)
from shasta_wallet.services.session import SessionContext
from shasta_wallet.services.totp import TotpEngine, totp_engine

logger = logging.getLogger(__name__)


class SecurityProfileManager:
    """Enable and disable the second factor for a session's user."""

    def __init__(
        self,
        repository: WalletRepository,
        engine: TotpEngine = totp_engine,
    ) -> None:
        self.repository = repository
        self.engine = engine

    async def state(self, session: SessionContext) -> EnrollmentState:
        profile = await self.repository.get_profile(session.user)
        if profile.two_factor_enabled:
            return EnrollmentState.ENROLLED
        if session.pending_credential is not None:
            return EnrollmentState.PENDING_CONFIRMATION
        return EnrollmentState.NOT_ENROLLED

    async def status(self, session: SessionContext) -> SecurityStatus:
        profile = await self.repository.get_profile(session.user)
        return SecurityStatus(
            two_factor_enabled=profile.two_factor_enabled,
            enrollment_state=await self.state(session),
        )

    async def begin_enrollment(
        self,
        session: SessionContext,
        account_label: Optional[str] = None,
    ) -> TotpCredential:
        """
        Mint a fresh secret and its provisioning URI.

        Raises:
            EnrollmentError: two-factor is already enabled
        """
        session.require_active()
        profile = await self.repository.get_profile(session.user)
        if profile.two_factor_enabled:
            raise EnrollmentError(
                "Two-factor is already enabled. Disable it first.",
                step="begin_enrollment",
            )

        secret = self.engine.generate_secret()
        uri = self.engine.build_provisioning_uri(account_label or session.user, secret)
        credential = TotpCredential(
            secret=secret,
            provisioning_uri=uri,
            qr_url=build_qr_url(uri),
        )
        session.pending_credential = credential
        logger.info(f"[SECURITY] Enrollment started for {session.user}")
        return credential

    async def confirm_enrollment(
        self,
        session: SessionContext,
        code: str,
        credential: Optional[TotpCredential] = None,
    ) -> SecurityProfile:
        """
        Promote the pending secret once the user proves possession.

        Raises:
            EnrollmentError: no pending credential
            AuthenticationError: wrong code (pending credential kept)
        """
        session.require_active()
        credential = credential or session.pending_credential
        if credential is None:
            raise EnrollmentError(
                "No enrollment in progress.", step="confirm_enrollment"
            )

        if not self.engine.validate(code, credential.secret):
            logger.info(f"[SECURITY] Enrollment code rejected for {session.user}")
            raise AuthenticationError(
                "Verification code is incorrect. Try again.",
                field="code",
                step="confirm_enrollment",
            )

        profile = SecurityProfile(two_factor_enabled=True, secret=credential.secret)
        await self.repository.save_profile(session.user, profile)
        session.pending_credential = None
        logger.info(f"[SECURITY] Two-factor enabled for {session.user}")
        return profile

    def cancel_enrollment(self, session: SessionContext) -> None:
        session.pending_credential = None

    async def disable(self, session: SessionContext) -> SecurityProfile:
        session.require_active()
        profile = SecurityProfile()
        await self.repository.save_profile(session.user, profile)
        session.pending_credential = None
        logger.info(f"[SECURITY] Two-factor disabled for {session.user}")
        return profile
