"""
Shasta Wallet - Notifications API

Newest first, at most NOTIFICATION_LIMIT entries.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from shasta_wallet.dependencies import get_container, get_session
from shasta_wallet.models.schemas import NotificationRecord
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.session import SessionContext

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationList(BaseModel):
    has_unread: bool
    items: list[NotificationRecord]


@router.get("", response_model=NotificationList)
async def list_notifications(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    items = await container.wallets.list_notifications(session)
    return NotificationList(has_unread=any(not n.read for n in items), items=items)


@router.post("/read-all")
async def mark_all_read(
    session: SessionContext = Depends(get_session),
    container: WalletContainer = Depends(get_container),
):
    marked = await container.wallets.mark_all_read(session, container.engine_for(session))
    return {"marked": marked}
