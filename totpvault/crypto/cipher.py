"""EnvelopeCipher: authenticated encryption of TOTP seed secrets."""

from __future__ import annotations

import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from totpvault.crypto.formats import (
    KEY_SIZE,
    MAX_PLAINTEXT_LENGTH,
    NONCE_SIZE,
    TAG_SIZE,
    Envelope,
)
from totpvault.errors import ConfigurationError, CryptoError, ValidationError

logger = logging.getLogger("totpvault.crypto")


class EnvelopeCipher:
    """ChaCha20-Poly1305 with a static process-wide key.

    The key never changes for the lifetime of the instance, so one cipher can
    be shared by every request. Changing the key invalidates every stored
    envelope; there is no rotation.
    """

    def __init__(self, key: bytes | None):
        if key is None:
            raise ConfigurationError("Encryption key is missing")
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
            raise ConfigurationError(
                f"Encryption key must be exactly {KEY_SIZE} bytes"
            )
        self._aead = ChaCha20Poly1305(bytes(key))

    @classmethod
    def from_config(cls, data_dir=None) -> EnvelopeCipher:
        from totpvault.config import Config

        return cls(Config.get_encryption_key(data_dir))

    # ------------------------------------------------------------------
    def encrypt(self, plaintext: str) -> str:
        clean = self.validate_plaintext(plaintext)
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, clean.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        envelope = Envelope(
            nonce=nonce, tag=sealed[-TAG_SIZE:], ciphertext=sealed[:-TAG_SIZE]
        )
        return envelope.to_string()

    def decrypt(self, envelope: str) -> str:
        env = Envelope.from_string(envelope)
        try:
            raw = self._aead.decrypt(env.nonce, env.ciphertext + env.tag, None)
        except InvalidTag as exc:
            logger.warning("Envelope authentication failed")
            raise CryptoError("Envelope authentication failed") from exc

        try:
            plaintext = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoError("Decrypted secret is not valid UTF-8") from exc
        if not plaintext:
            raise CryptoError("Decryption resulted in an empty secret")
        return plaintext

    # ------------------------------------------------------------------
    @staticmethod
    def validate_plaintext(plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise ValidationError("Secret must be a non-empty string")
        clean = plaintext.strip()
        if not clean:
            raise ValidationError("Secret cannot be empty")
        if len(clean) > MAX_PLAINTEXT_LENGTH:
            raise ValidationError(
                f"Secret is too long (max {MAX_PLAINTEXT_LENGTH} characters)"
            )
        return clean
