"""Dependency injection helpers for FastAPI."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shasta_wallet.core.errors import (
    AuthenticationError,
    EnrollmentError,
    ExecutorError,
    InvalidTransitionError,
    SessionError,
    ValidationError,
    WalletError,
)
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import SessionContext

# Security scheme
security = HTTPBearer(auto_error=False)

ERROR_STATUS: dict[type, int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    SessionError: status.HTTP_401_UNAUTHORIZED,
    EnrollmentError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ExecutorError: status.HTTP_502_BAD_GATEWAY,
}


def http_error(error: WalletError) -> HTTPException:
    """Translate a core error into an HTTPException carrying field and step."""
    code = ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=code, detail=error.to_dict())


def get_container(request: Request) -> WalletContainer:
    return request.app.state.container


async def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    container: WalletContainer = Depends(get_container),
) -> SessionContext:
    """
    Resolve the bearer token to a live session.

    Raises 401 if the token is missing, unknown or logged out.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    session = container.sessions.get(credentials.credentials)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Log in again.",
        )
    return session
