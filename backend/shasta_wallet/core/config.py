from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""
    
    # App
    APP_NAME: str = "Shasta Wallet"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    
    # Record store
    DATABASE_URL: str = "sqlite+aiosqlite:///./shasta_wallet.db"
    
    # TRON Shasta testnet
    TRON_FULL_NODE: str = "https://api.shasta.trongrid.io"
    TRON_REQUEST_TIMEOUT: float = 10.0
    LEDGER_BACKEND: str = "tron"  # "tron" or "mock"

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    
    # Two-factor (RFC 6238). Widening the tolerance trades security for drift.
    TOTP_ISSUER: str = "TronShastaWallet"
    TOTP_DIGITS: int = 6
    TOTP_PERIOD_SECONDS: int = 30
    TOTP_TOLERANCE_STEPS: int = 1
    TOTP_SECRET_BYTES: int = 20
    
    # Balance reconciliation
    POLL_INTERVAL_SECONDS: float = 10.0
    POST_TRANSFER_TICK_DELAY_SECONDS: float = 4.0
    BALANCE_EPSILON: Decimal = Decimal("0.000001")
    NOTIFICATION_LIMIT: int = 50
    
    # Transfer gate, 0 = unlimited code attempts
    MAX_CODE_ATTEMPTS: int = 0
    
    # QR image service
    QR_RENDER_URL: str = "https://api.qrserver.com/v1/create-qr-code/"
    QR_SIZE: str = "200x200"
    
    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
