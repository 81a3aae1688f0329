"""
Shasta Wallet - Sessions and Accounts

A SessionContext is the explicit "current user": created on login,
closed on logout, and passed into every core operation. Nothing in the
core reads a process-wide current user.
"""

import logging
import secrets
from datetime import datetime
from typing import Any, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from shasta_wallet.core.errors import AuthenticationError, SessionError, ValidationError
from shasta_wallet.db.repository import WalletRepository
from shasta_wallet.models.schemas import SecurityProfile, TotpCredential, UserAccount, utcnow

logger = logging.getLogger(__name__)

# Argon2id with the library defaults; the encoded hash carries its own salt
password_hasher = PasswordHasher()


class SessionContext:
    """Represents one logged-in user."""

    def __init__(self, user: str, token: Optional[str] = None) -> None:
        self.user = user
        self.token = token or secrets.token_urlsafe(32)
        self.created_at: datetime = utcnow()
        self.pending_credential: Optional[TotpCredential] = None
        # Per-session components (reconciliation engine, transfer gate)
        self.components: dict[str, Any] = {}
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def require_active(self) -> None:
        if not self._active:
            raise SessionError("Session has ended. Log in again.", step="session")

    def close(self) -> None:
        self._active = False
        self.pending_credential = None

    def __repr__(self) -> str:
        return f"SessionContext(user={self.user!r}, active={self._active})"


class SessionRegistry:
    """Bearer token -> SessionContext for the HTTP layer."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionContext] = {}

    def add(self, session: SessionContext) -> None:
        self._sessions[session.token] = session

    def get(self, token: str) -> Optional[SessionContext]:
        session = self._sessions.get(token)
        if session is not None and not session.active:
            self._sessions.pop(token, None)
            return None
        return session

    def remove(self, session: SessionContext) -> None:
        self._sessions.pop(session.token, None)

    def all(self) -> list[SessionContext]:
        return list(self._sessions.values())


class AccountService:
    """Local account registration and login."""

    def __init__(
        self,
        repository: WalletRepository,
        hasher: PasswordHasher = password_hasher,
    ) -> None:
        self.repository = repository
        self.hasher = hasher

    async def register(self, username: str, password: str) -> UserAccount:
        username = username.strip()
        if not username:
            raise ValidationError("Username is required.", field="username")
        if not password:
            raise ValidationError("Password is required.", field="password")

        accounts = await self.repository.get_accounts()
        if username in accounts:
            raise ValidationError("Username already exists.", field="username")

        account = UserAccount(
            username=username,
            password_hash=self.hasher.hash(password),
        )
        if not await self.repository.add_account(account):
            raise ValidationError("Username already exists.", field="username")
        await self.repository.save_profile(username, SecurityProfile())
        logger.info(f"Registered account: {username}")
        return account

    async def login(self, username: str, password: str) -> SessionContext:
        accounts = await self.repository.get_accounts()
        account = accounts.get(username.strip())
        if account is None or not self._verify(account, password):
            raise AuthenticationError("Wrong username or password.", step="login")

        logger.info(f"Login: {account.username}")
        return SessionContext(account.username)

    def _verify(self, account: UserAccount, password: str) -> bool:
        try:
            return self.hasher.verify(account.password_hash, password)
        except VerificationError:
            return False
        except InvalidHashError:
            logger.warning(f"[SECURITY] Unreadable password hash for {account.username}")
            return False

    async def logout(self, session: SessionContext) -> None:
        session.close()
        logger.info(f"Logout: {session.user}")
