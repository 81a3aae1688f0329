"""
Shasta Wallet - Transfers API

Thin HTTP surface over the session's transfer gate. Every call answers
with the gate's state; rejections carry the reason and the failing field.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from shasta_wallet.core.errors import WalletError
from shasta_wallet.dependencies import get_container, get_session, http_error
from shasta_wallet.models.schemas import GateResponse, TransferRequest
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import SessionContext

router = APIRouter(prefix="/transfers", tags=["transfers"])


class VerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)


@router.post("", response_model=GateResponse)
async def submit_transfer(
    request: TransferRequest,
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    gate = container.gate_for(session)
    try:
        return await gate.submit(request.wallet_id, request.recipient, request.amount)
    except WalletError as e:
        raise http_error(e)


@router.post("/verify", response_model=GateResponse)
async def verify_code(
    request: VerifyRequest,
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    gate = container.gate_for(session)
    try:
        return await gate.verify_code(request.code)
    except WalletError as e:
        raise http_error(e)


@router.post("/cancel", response_model=GateResponse)
async def cancel_transfer(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    return container.gate_for(session).cancel()


@router.get("/state", response_model=GateResponse)
async def get_state(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    gate = container.gate_for(session)
    return GateResponse(state=gate.state, message=gate.STATE_OUTPUTS[gate.state])
