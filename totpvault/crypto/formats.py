"""Secret envelope wire format and protocol constants."""

from __future__ import annotations

import binascii
from dataclasses import dataclass

from totpvault.errors import CryptoError

# ============================================================================
#  Protocol constants
# ============================================================================
KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits (ChaCha20-Poly1305)
TAG_SIZE = 16  # 128 bits (Poly1305)

MAX_PLAINTEXT_LENGTH = 1000  # characters

# -- envelope layout --------------------------------------------------------
#  hex(nonce) ":" hex(tag) ":" hex(ciphertext)
#  Hex keeps every segment fixed-width per byte, ":" never occurs inside one.
SEGMENT_SEPARATOR = ":"
SEGMENT_COUNT = 3


# ============================================================================
#  Envelope
# ============================================================================
@dataclass(frozen=True)
class Envelope:
    nonce: bytes
    tag: bytes
    ciphertext: bytes

    def to_string(self) -> str:
        return SEGMENT_SEPARATOR.join(
            binascii.hexlify(part).decode("ascii")
            for part in (self.nonce, self.tag, self.ciphertext)
        )

    @classmethod
    def from_string(cls, data: str) -> Envelope:
        if not isinstance(data, str) or not data:
            raise CryptoError("Envelope must be a non-empty string")

        segments = data.split(SEGMENT_SEPARATOR)
        if len(segments) != SEGMENT_COUNT:
            raise CryptoError(
                f"Malformed envelope: expected {SEGMENT_COUNT} segments, got {len(segments)}"
            )

        try:
            nonce, tag, ciphertext = (binascii.unhexlify(seg) for seg in segments)
        except (binascii.Error, ValueError) as exc:
            raise CryptoError("Malformed envelope: segment is not hex") from exc

        if len(nonce) != NONCE_SIZE:
            raise CryptoError("Malformed envelope: bad nonce length")
        if len(tag) != TAG_SIZE:
            raise CryptoError("Malformed envelope: bad tag length")
        if not ciphertext:
            raise CryptoError("Malformed envelope: empty ciphertext")

        return cls(nonce=nonce, tag=tag, ciphertext=ciphertext)

