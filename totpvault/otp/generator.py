"""CodeGenerator: RFC 6238 time-based one-time passwords.

Every parameter is passed explicitly on each call. Nothing about a previous
call (algorithm, digits, period) survives into the next one, so concurrent
callers with different entry settings cannot interfere.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac as hmac_mod
import math
import time
from dataclasses import dataclass

import pyotp

from totpvault.errors import ValidationError

_HASHES = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}

MIN_DIGITS = 6
MAX_DIGITS = 8
MIN_PERIOD = 10
MAX_PERIOD = 120


@dataclass(frozen=True)
class GeneratedCode:
    code: str
    time_remaining: int
    period: int

    def to_dict(self) -> dict:
        return {
            "token": self.code,
            "timeRemaining": self.time_remaining,
            "period": self.period,
        }


# ============================================================================
#  CodeGenerator
# ============================================================================
class CodeGenerator:
    """Stateless TOTP derivation and verification."""

    @staticmethod
    def generate(
        secret: str,
        algorithm: str = "sha1",
        digits: int = 6,
        period: int = 30,
        at: float | None = None,
    ) -> GeneratedCode:
        at = _check_time(at)
        totp = _build_totp(secret, algorithm, digits, period)

        code = totp.generate_otp(int(at // period))
        return GeneratedCode(
            code=code,
            time_remaining=time_remaining(period, at),
            period=period,
        )

    @staticmethod
    def verify(
        code: str,
        secret: str,
        algorithm: str = "sha1",
        digits: int = 6,
        period: int = 30,
        at: float | None = None,
        window: int = 1,
    ) -> bool:
        at = _check_time(at)
        totp = _build_totp(secret, algorithm, digits, period)

        if not isinstance(code, str):
            return False
        code = code.strip()
        if len(code) != digits or not (code.isascii() and code.isdigit()):
            return False

        counter = int(at // period)
        matched = False
        for offset in range(-window, window + 1):
            if counter + offset < 0:
                continue
            candidate = totp.generate_otp(counter + offset)
            # no early exit, every window slot is compared
            if hmac_mod.compare_digest(candidate, code):
                matched = True
        return matched


def time_remaining(period: int, at: float | None = None) -> int:
    if at is None:
        at = time.time()
    return period - int(at % period)


def decode_secret(secret: str) -> bytes:
    """Base32-decode a seed, tolerating spaces, lower case and lost padding."""
    if not isinstance(secret, str):
        raise ValidationError("Secret must be a Base32 string")
    clean = "".join(secret.split()).upper().rstrip("=")
    if not clean:
        raise ValidationError("Secret cannot be empty")
    clean += "=" * (-len(clean) % 8)
    try:
        key = base64.b32decode(clean)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Secret is not valid Base32") from exc
    if not key:
        raise ValidationError("Secret decodes to zero bytes")
    return key


def encode_secret(raw: bytes) -> str:
    """Unpadded upper-case Base32, the form authenticator apps expect."""
    return base64.b32encode(bytes(raw)).decode("ascii").rstrip("=")


def _build_totp(secret: str, algorithm: str, digits: int, period: int) -> pyotp.TOTP:
    digest = _resolve_hash(algorithm)
    _check_params(digits, period)
    decode_secret(secret)
    clean = "".join(secret.split()).upper().rstrip("=")
    return pyotp.TOTP(clean, digits=digits, digest=digest, interval=period)


def _check_time(at: float | None) -> float:
    if at is None:
        return time.time()
    if isinstance(at, bool) or not isinstance(at, (int, float)):
        raise ValidationError(f"Invalid time: {at!r}")
    if not math.isfinite(at) or at < 0:
        raise ValidationError(f"Invalid time: {at!r}")
    return at


def _resolve_hash(algorithm: str):
    name = (algorithm or "").lower().replace("-", "")
    try:
        return _HASHES[name]
    except KeyError:
        raise ValidationError(f"Unsupported algorithm: {algorithm}") from None


def _check_params(digits: int, period: int) -> None:
    if not isinstance(digits, int) or not MIN_DIGITS <= digits <= MAX_DIGITS:
        raise ValidationError(f"Invalid digits: {digits}")
    if not isinstance(period, int) or not MIN_PERIOD <= period <= MAX_PERIOD:
        raise ValidationError(f"Invalid period: {period}")
