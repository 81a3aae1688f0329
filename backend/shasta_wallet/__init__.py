"""Shasta Wallet - client-side TRX asset management with TOTP-gated transfers."""

__version__ = "1.0.0"
