"""Bulk payload normalization: variant detection and per-record field mapping.

Supported shapes, checked in this order:

* ``{"tokens": [...]}``  FreeOTP+ backup (secret as a signed byte array)
* ``{"data": [...]}``    2FAuth export
* ``[...]`` or ``{"entries": [...]}``  the canonical entry shape
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from totpvault.errors import ParseError, ValidationError
from totpvault.formats.validation import record_identifier, validate_record
from totpvault.otp.generator import encode_secret
from totpvault.vault.models import ItemFailure, ParseAttempt

logger = logging.getLogger("totpvault.formats")


# ============================================================================
#  Variant field mappings
# ============================================================================
def _map_freeotp(item: Mapping[str, Any]) -> Dict[str, Any]:
    secret = item.get("secret")
    if isinstance(secret, list):
        secret = signed_bytes_to_base32(secret)
    algorithm = item.get("algo", item.get("algorithm"))
    return {
        "name": item.get("label", item.get("name")),
        "issuer": item.get("issuerExt", item.get("issuer")),
        "secret": secret,
        "algorithm": algorithm.lower() if isinstance(algorithm, str) else algorithm,
        "digits": item.get("digits"),
        "period": item.get("period"),
        "icon": item.get("icon"),
        "color": item.get("color"),
    }


def _map_twofauth(item: Mapping[str, Any]) -> Dict[str, Any]:
    algorithm = item.get("algorithm") or "sha1"
    return {
        "name": item.get("account") or item.get("service") or "Unknown",
        "issuer": item.get("service") or "",
        "secret": item.get("secret"),
        "algorithm": algorithm.lower() if isinstance(algorithm, str) else algorithm,
        "digits": item.get("digits") or 6,
        "period": item.get("period") or 30,
        "icon": item.get("icon"),
    }


def _map_canonical(item: Mapping[str, Any]) -> Dict[str, Any]:
    return dict(item)


@dataclass(frozen=True)
class BulkVariant:
    name: str
    key: Optional[str]
    mapper: Callable[[Mapping[str, Any]], Dict[str, Any]]


FREEOTP = BulkVariant("freeotp", "tokens", _map_freeotp)
TWOFAUTH = BulkVariant("2fauth", "data", _map_twofauth)
CANONICAL = BulkVariant("canonical", "entries", _map_canonical)

# Detection order matters: a payload carrying both "tokens" and "entries"
# is a FreeOTP+ backup.
VARIANTS = (FREEOTP, TWOFAUTH, CANONICAL)


# ============================================================================
#  Detection / parsing
# ============================================================================
def load_payload(raw_payload: Any) -> Any:
    """Decode JSON text/bytes; pass decoded objects through untouched."""
    if isinstance(raw_payload, (bytes, bytearray)):
        try:
            raw_payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError("Payload is not UTF-8 text", raw=None) from exc
    if isinstance(raw_payload, str):
        try:
            return json.loads(raw_payload)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Payload is not valid JSON: {exc.msg}", raw=None) from exc
    return raw_payload


def detect_variant(payload: Any) -> tuple[BulkVariant, List[Any]]:
    """Return the matching variant and its list of raw records."""
    if isinstance(payload, list):
        return CANONICAL, payload
    if isinstance(payload, Mapping):
        for variant in VARIANTS:
            records = payload.get(variant.key)
            if isinstance(records, list):
                return variant, records
    raise ParseError("No valid entries found", raw=None)


def parse_bulk(raw_payload: Any) -> List[ParseAttempt]:
    """Normalize every record of a bulk payload, isolating per-record failures.

    Raises ParseError only when the payload as a whole is unrecognized.
    """
    payload = load_payload(raw_payload)
    variant, records = detect_variant(payload)
    logger.info("Bulk payload detected as %s (%d records)", variant.name, len(records))

    attempts: List[ParseAttempt] = []
    for index, item in enumerate(records):
        attempts.append(_parse_record(index, item, variant))
    return attempts


def _parse_record(index: int, item: Any, variant: BulkVariant) -> ParseAttempt:
    if not isinstance(item, Mapping):
        return ParseAttempt(
            index=index, failure=ItemFailure("Unknown", "Entry must be an object")
        )
    try:
        mapped = variant.mapper(item)
    except (TypeError, ValueError) as exc:
        return ParseAttempt(
            index=index,
            failure=ItemFailure(
                record_identifier(item), f"{variant.name} conversion failed: {exc}"
            ),
        )
    try:
        return ParseAttempt(index=index, entry=validate_record(mapped))
    except ValidationError as exc:
        return ParseAttempt(
            index=index, failure=ItemFailure(record_identifier(mapped), str(exc))
        )


def signed_bytes_to_base32(values: List[Any]) -> str:
    """FreeOTP+ stores secrets as Java bytes (-128..127)."""
    raw = bytearray()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or not -128 <= value <= 255:
            raise ValueError(f"invalid secret byte {value!r}")
        raw.append(value + 256 if value < 0 else value)
    return encode_secret(bytes(raw))
