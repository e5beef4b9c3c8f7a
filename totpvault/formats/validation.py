"""Record-level validation shared by every ingestion path."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from totpvault.config import Config
from totpvault.errors import ValidationError
from totpvault.otp.generator import decode_secret
from totpvault.vault.models import CanonicalEntry


def normalize_algorithm(value: Any) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return Config.DEFAULT_ALGORITHM
    if not isinstance(value, str):
        raise ValidationError(f"Invalid algorithm: {value}", context={"field": "algorithm"})
    algorithm = value.strip().lower().replace("sha-", "sha")
    if algorithm not in Config.ALGORITHMS:
        raise ValidationError(f"Invalid algorithm: {value}", context={"field": "algorithm"})
    return algorithm


def normalize_digits(value: Any) -> int:
    digits = _coerce_int(value, Config.DEFAULT_DIGITS, "digits")
    if digits not in Config.DIGITS:
        raise ValidationError(f"Invalid digits: {value}", context={"field": "digits"})
    return digits


def normalize_period(value: Any) -> int:
    period = _coerce_int(value, Config.DEFAULT_PERIOD, "period")
    if not Config.MIN_PERIOD <= period <= Config.MAX_PERIOD:
        raise ValidationError(f"Invalid period: {value}", context={"field": "period"})
    return period


def normalize_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Missing name field", context={"field": "name"})
    return value.strip()


def normalize_secret(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Missing or invalid secret field", context={"field": "secret"})
    secret = "".join(value.split())
    if len(secret) > Config.MAX_SECRET_LENGTH:
        raise ValidationError(
            f"Secret is too long (max {Config.MAX_SECRET_LENGTH} characters)",
            context={"field": "secret"},
        )
    try:
        decode_secret(secret)
    except ValidationError as exc:
        raise ValidationError(f"Invalid secret field: {exc}", context={"field": "secret"}) from exc
    return secret


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_record(record: Mapping[str, Any]) -> CanonicalEntry:
    """Turn one loosely typed mapping into a CanonicalEntry or raise ValidationError."""
    if not isinstance(record, Mapping):
        raise ValidationError("Entry must be an object")
    return CanonicalEntry(
        name=normalize_name(record.get("name")),
        secret=normalize_secret(record.get("secret")),
        issuer=optional_text(record.get("issuer")),
        algorithm=normalize_algorithm(record.get("algorithm")),
        digits=normalize_digits(record.get("digits")),
        period=normalize_period(record.get("period")),
        icon=optional_text(record.get("icon")),
        color=optional_text(record.get("color")),
    )


def record_identifier(record: Any) -> str:
    if isinstance(record, Mapping):
        for key in ("name", "label", "account"):
            value = record.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return "Unknown"


def _coerce_int(value: Any, default: int, field: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}: {value}", context={"field": field})
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value}", context={"field": field}) from None
    if isinstance(value, float) and number != value:
        raise ValidationError(f"Invalid {field}: {value}", context={"field": field})
    return number
