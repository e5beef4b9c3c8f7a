"""TOTPVault cryptographic modules."""

from totpvault.crypto.cipher import EnvelopeCipher
from totpvault.crypto.formats import KEY_SIZE, NONCE_SIZE, TAG_SIZE, Envelope

__all__ = [
    "EnvelopeCipher",
    "Envelope",
    "KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
]
