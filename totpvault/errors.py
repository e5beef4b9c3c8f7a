"""Error taxonomy shared by every vault component."""

from __future__ import annotations

from typing import Any, Optional


class VaultError(Exception):
    """Base error for totpvault."""

    def __init__(self, message: str, *, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


class ValidationError(VaultError):
    """An input value is malformed or out of range."""


class ParseError(VaultError):
    """A URI or bulk payload could not be understood."""

    def __init__(
        self,
        message: str,
        *,
        raw: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.raw = raw


class UnsupportedTypeError(ParseError):
    """An otpauth URI names an OTP type other than TOTP."""


class CryptoError(VaultError):
    """An envelope could not be decrypted (tampered, wrong key, malformed)."""


class NotFoundError(VaultError):
    """Entry or owner is absent, or belongs to someone else."""


class ConfigurationError(VaultError):
    """Startup-time key material or settings are missing or malformed."""


__all__ = [
    "VaultError",
    "ValidationError",
    "ParseError",
    "UnsupportedTypeError",
    "CryptoError",
    "NotFoundError",
    "ConfigurationError",
]
