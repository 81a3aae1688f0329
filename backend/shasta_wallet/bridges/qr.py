"""
Shasta Wallet - QR Rendering Bridge

The provisioning URI is handed to an external image service as an opaque
string. Nothing in the core depends on how it is displayed.
"""

from urllib.parse import urlencode

from shasta_wallet.core.config import settings


def build_qr_url(
    data: str,
    base_url: str = settings.QR_RENDER_URL,
    size: str = settings.QR_SIZE,
) -> str:
    """Image URL rendering `data` as a QR code."""
    return f"{base_url}?{urlencode({'size': size, 'data': data})}"
