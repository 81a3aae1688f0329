"""
Shasta Wallet - Wallets API

Balances shown here are the last values accepted by reconciliation.
Key material never leaves through this router.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from shasta_wallet.core.errors import WalletError
from shasta_wallet.dependencies import get_container, get_session, http_error
from shasta_wallet.models.schemas import TickReport, WalletView
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import SessionContext

router = APIRouter(prefix="/wallets", tags=["wallets"])


class CreateWalletRequest(BaseModel):
    """Optional display name; defaults to "Tron Wallet N"."""
    name: Optional[str] = Field(None, max_length=64)


@router.get("", response_model=list[WalletView])
async def list_wallets(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    wallets = await container.wallets.list_wallets(session)
    return [WalletView.model_validate(w, from_attributes=True) for w in wallets]


@router.post("", response_model=WalletView, status_code=status.HTTP_201_CREATED)
async def create_wallet(
    request: CreateWalletRequest,
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    try:
        wallet = await container.wallets.create_wallet(session, request.name)
    except WalletError as e:
        raise http_error(e)
    return WalletView.model_validate(wallet, from_attributes=True)


@router.delete("/{wallet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_wallet(
    wallet_id: str,
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    """Remove a wallet from this device. Save the private key elsewhere first."""
    try:
        await container.wallets.delete_wallet(
            session, wallet_id, container.engine_for(session)
        )
    except WalletError as e:
        raise http_error(e)


@router.post("/refresh", response_model=TickReport)
async def refresh_balances(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    """
    Reconcile now.

    Coalesced with a tick already in flight; the periodic timer is untouched.
    """
    return await container.engine_for(session).refresh_now()
