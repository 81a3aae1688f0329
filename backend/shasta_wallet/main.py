"""Shasta Wallet - FastAPI Application.

TOTP-gated TRX wallet on the TRON Shasta testnet.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shasta_wallet import __version__
from shasta_wallet.api import auth, notifications, security, transfers, wallets
from shasta_wallet.bridges.signer import EcdsaTransactionSigner
from shasta_wallet.bridges.tron import TronGridBridge, is_valid_address
from shasta_wallet.core.config import settings
from shasta_wallet.db.store import SqlRecordStore
from shasta_wallet.services.container import WalletContainer
from shasta_wallet.services.mocks import LedgerMock

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


async def build_container() -> tuple[WalletContainer, SqlRecordStore, Optional[TronGridBridge]]:
    """Container backed by the configured database and ledger."""
    store = SqlRecordStore()
    await store.create_all()

    bridge = None
    if settings.LEDGER_BACKEND == "mock":
        ledger = LedgerMock()
        logger.warning("[TRON] Using in-memory ledger mock")
    else:
        ledger = bridge = TronGridBridge(signer=EcdsaTransactionSigner())

    container = WalletContainer(
        store=store,
        balance_source=ledger,
        executor=ledger,
        key_generator=ledger,
        address_validator=is_valid_address,
    )
    return container, store, bridge


def create_app(container: Optional[WalletContainer] = None) -> FastAPI:
    """
    Build the application.

    Passing a container skips database and ledger setup (used by tests).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = bridge = None
        if container is None:
            app.state.container, store, bridge = await build_container()
        else:
            app.state.container = container
        logger.info(f"{settings.APP_NAME} {__version__} started")
        try:
            yield
        finally:
            await app.state.container.shutdown()
            if bridge is not None:
                await bridge.close()
            if store is not None:
                await store.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Shasta Wallet - TOTP-gated TRX wallet (TRON Shasta testnet)",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(wallets.router)
    app.include_router(security.router)
    app.include_router(transfers.router)
    app.include_router(notifications.router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "service": settings.APP_NAME,
            "version": __version__,
            "network": "shasta",
            "status": "operational",
        }

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "ledger": settings.LEDGER_BACKEND,
            "sessions": len(app.state.container.sessions.all()),
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn (the `shasta-wallet` console script)."""
    uvicorn.run("shasta_wallet.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
