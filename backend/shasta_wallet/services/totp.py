"""
Shasta Wallet - TOTP Engine
RFC 6238 time-based one-time passwords (HMAC-SHA1, 6 digits, 30 s)

Used twice:
- Enrollment: prove the authenticator app holds the new secret
- Transfer gate: authorize an outbound transfer

Codes are accepted for the current time step and +/- tolerance steps
to absorb clock drift between the phone and this host.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import re
import secrets
import struct
import time
from typing import Optional
from urllib.parse import quote, urlencode

from shasta_wallet.core.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "SHA1"


def decode_secret(secret: str) -> bytes:
    """
    Decode a Base32 secret.

    Case-insensitive, whitespace is ignored and missing padding restored.
    Raises ValueError for anything that is not valid Base32.
    """
    cleaned = "".join(secret.split()).upper().rstrip("=")
    if not cleaned:
        raise ValueError("Empty secret")
    padded = cleaned + "=" * (-len(cleaned) % 8)
    try:
        return base64.b32decode(padded)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid Base32 secret: {e}")


def time_step(unix_seconds: float, period: int = 30) -> int:
    """Time-step index: floor(unix_seconds / period)."""
    return int(unix_seconds // period)


def compute_code(secret: str, step: int, digits: int = 6) -> str:
    """
    Compute the one-time code for a time step.

    HMAC-SHA1 keyed by the decoded secret over the 8-byte big-endian
    counter, dynamic truncation, reduced modulo 10^digits and zero-padded.
    """
    key = decode_secret(secret)
    counter = struct.pack(">Q", step)
    digest = hmac.new(key, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    binary = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(binary % (10 ** digits)).zfill(digits)


class TotpEngine:
    """
    TOTP Engine

    Stateless apart from its parameters. Time is read from the injected
    clock so callers and tests can pin it.
    """

    def __init__(
        self,
        issuer: str = settings.TOTP_ISSUER,
        digits: int = settings.TOTP_DIGITS,
        period: int = settings.TOTP_PERIOD_SECONDS,
        tolerance_steps: int = settings.TOTP_TOLERANCE_STEPS,
        secret_bytes: int = settings.TOTP_SECRET_BYTES,
        clock=time.time,
    ) -> None:
        if secret_bytes < 20:
            raise ValueError("TOTP secrets must be at least 160 bits")
        self.issuer = issuer
        self.digits = digits
        self.period = period
        self.tolerance_steps = tolerance_steps
        self.secret_bytes = secret_bytes
        self._clock = clock
        self._pattern = re.compile(f"[0-9]{{{digits}}}")

    def generate_secret(self) -> str:
        """Fresh CSPRNG secret, Base32 without padding."""
        raw = secrets.token_bytes(self.secret_bytes)
        return base64.b32encode(raw).decode("ascii").rstrip("=")

    def build_provisioning_uri(self, account_label: str, secret: str) -> str:
        """
        Build the otpauth:// URI an authenticator app scans.

        Format:
            otpauth://totp/<issuer>:<label>?secret=..&issuer=..
                &algorithm=SHA1&digits=6&period=30
        """
        label = f"{quote(self.issuer, safe='')}:{quote(account_label, safe='')}"
        query = urlencode(
            {
                "secret": secret,
                "issuer": self.issuer,
                "algorithm": ALGORITHM,
                "digits": self.digits,
                "period": self.period,
            },
            quote_via=quote,
        )
        return f"otpauth://totp/{label}?{query}"

    def current_step(self, now: Optional[float] = None) -> int:
        return time_step(self._clock() if now is None else now, self.period)

    def compute_code(self, secret: str, step: int) -> str:
        return compute_code(secret, step, self.digits)

    def code_at(self, secret: str, now: Optional[float] = None) -> str:
        """Code for the time step containing `now` (defaults to the clock)."""
        return self.compute_code(secret, self.current_step(now))

    def validate(
        self,
        candidate: Optional[str],
        secret: Optional[str],
        tolerance_steps: Optional[int] = None,
        now: Optional[float] = None,
    ) -> bool:
        """
        Check a candidate code against the previous, current and next windows.

        Rejects empty input, anything that is not exactly `digits` ASCII
        digits, and undecodable secrets.
        """
        if not candidate or not secret:
            return False
        if not self._pattern.fullmatch(candidate):
            return False

        tolerance = self.tolerance_steps if tolerance_steps is None else tolerance_steps
        step = self.current_step(now)

        try:
            decode_secret(secret)
        except ValueError:
            logger.warning("[TOTP] Stored secret is not valid Base32")
            return False

        matched = False
        for offset in range(-tolerance, tolerance + 1):
            if step + offset < 0:
                continue
            expected = self.compute_code(secret, step + offset)
            # no early exit: every window is compared
            if hmac.compare_digest(expected, candidate):
                matched = True
        return matched


totp_engine = TotpEngine()
