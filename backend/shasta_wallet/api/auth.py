"""Authentication router for Shasta Wallet.

Local accounts. A successful login opens a session, starts balance
monitoring for it and returns the bearer token for later calls.
"""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from shasta_wallet.core.errors import WalletError
from shasta_wallet.dependencies import get_container, get_session, http_error
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import SessionContext

router = APIRouter(prefix="/auth", tags=["auth"])


# ============================================================================
# SCHEMAS
# ============================================================================

class Credentials(BaseModel):
    """Username and password."""
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    """Bearer token for the new session."""
    token: str
    username: str


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: Credentials,
    container: WalletContainer = Depends(get_container),
):
    """Create a local account with two-factor disabled."""
    try:
        account = await container.accounts.register(request.username, request.password)
    except WalletError as e:
        raise http_error(e)
    return {"username": account.username}


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Credentials,
    container: WalletContainer = Depends(get_container),
):
    try:
        session = await container.login(request.username, request.password)
    except WalletError as e:
        raise http_error(e)
    return LoginResponse(token=session.token, username=session.user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    """End the session and stop its balance monitoring."""
    await container.logout(session)
