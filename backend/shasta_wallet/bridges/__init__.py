"""
Shasta Wallet - External Bridges

- TRON full node (TronGrid): balances, transfer broadcast
- QR image service: provisioning URI rendering
"""

from .qr import build_qr_url
from .tron import TronGridBridge, base58_to_hex, hex_to_base58, is_valid_address

__all__ = [
    "TronGridBridge",
    "build_qr_url",
    "base58_to_hex",
    "hex_to_base58",
    "is_valid_address",
]
