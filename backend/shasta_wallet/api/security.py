"""
Shasta Wallet - Two-Factor API

begin → scan the QR → confirm with a code → enabled.
The secret is only ever returned by begin, never afterwards.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from shasta_wallet.core.errors import WalletError
from shasta_wallet.dependencies import get_container, get_session, http_error
from shasta_wallet.models.schemas import SecurityStatus, TotpCredential
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import SessionContext

router = APIRouter(prefix="/security/2fa", tags=["security"])


class CodeRequest(BaseModel):
    """A 6-digit one-time code."""
    code: str = Field(..., min_length=1, max_length=16)


@router.get("", response_model=SecurityStatus)
async def get_status(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    return await container.security.status(session)


@router.post("/begin", response_model=TotpCredential)
async def begin_enrollment(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    try:
        return await container.security.begin_enrollment(session)
    except WalletError as e:
        raise http_error(e)


@router.post("/confirm", response_model=SecurityStatus)
async def confirm_enrollment(
    request: CodeRequest,
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    """Enable two-factor. A wrong code leaves the enrollment open for retry."""
    try:
        await container.security.confirm_enrollment(session, request.code)
    except WalletError as e:
        raise http_error(e)
    return await container.security.status(session)


@router.post("/cancel", response_model=SecurityStatus)
async def cancel_enrollment(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    container.security.cancel_enrollment(session)
    return await container.security.status(session)


@router.post("/disable", response_model=SecurityStatus)
async def disable(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    await container.security.disable(session)
    return await container.security.status(session)
