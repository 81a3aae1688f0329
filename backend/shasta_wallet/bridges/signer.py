"""
Shasta Wallet - Transaction Signer (secp256k1)

Signs TronGrid transaction objects locally. The private key never leaves
the process: TronGrid only sees the signed transaction.

TRON signature layout: r (32 bytes) || s (32 bytes) || v (1 byte),
where v = 27 + recovery id and s is low-s normalised. The signed digest
is the transaction id, which is sha256(raw_data_hex).
"""

import hashlib
import logging

from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize

logger = logging.getLogger(__name__)

RECOVERY_OFFSET = 27


def transaction_digest(transaction: dict) -> bytes:
    """The 32-byte digest to sign. Refuses a txID that does not match raw_data_hex."""
    digest = bytes.fromhex(transaction["txID"])
    raw_data_hex = transaction.get("raw_data_hex")
    if raw_data_hex and hashlib.sha256(bytes.fromhex(raw_data_hex)).digest() != digest:
        raise ValueError("Transaction id does not match raw_data_hex")
    return digest


def recovery_id(signature: bytes, digest: bytes, public_key: VerifyingKey) -> int:
    """Index of public_key among the keys recoverable from the signature."""
    candidates = VerifyingKey.from_public_key_recovery_with_digest(
        signature,
        digest,
        curve=SECP256k1,
        hashfunc=hashlib.sha256,
        sigdecode=sigdecode_string,
    )
    expected = public_key.to_string()
    for index, candidate in enumerate(candidates):
        if candidate.to_string() == expected:
            return index
    raise ValueError("Signature does not recover to the signing key")


class EcdsaTransactionSigner:
    """TransactionSigner backed by the ecdsa library."""

    async def sign(self, transaction: dict, private_key: str) -> dict:
        digest = transaction_digest(transaction)
        signing_key = SigningKey.from_string(bytes.fromhex(private_key), curve=SECP256k1)

        signature = signing_key.sign_digest_deterministic(
            digest,
            hashfunc=hashlib.sha256,
            sigencode=sigencode_string_canonize,
        )
        recid = recovery_id(signature, digest, signing_key.get_verifying_key())

        signed = dict(transaction)
        signed["signature"] = list(transaction.get("signature", [])) + [
            (signature + bytes([RECOVERY_OFFSET + recid])).hex()
        ]
        logger.debug(f"[SIGNER] Signed {transaction['txID']}")
        return signed
