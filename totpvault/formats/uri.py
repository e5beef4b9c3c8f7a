"""otpauth:// URI parsing and building, the canonical single-entry wire format."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from totpvault.errors import ParseError, UnsupportedTypeError, ValidationError
from totpvault.formats.validation import validate_record
from totpvault.vault.models import CanonicalEntry

logger = logging.getLogger("totpvault.formats")

SCHEME = "otpauth"
TOTP_TYPE = "totp"


def parse_uri(uri: str) -> CanonicalEntry:
    """Parse ``otpauth://totp/[issuer:]name?secret=...`` into a CanonicalEntry.

    Raises:
        UnsupportedTypeError: the URI is well formed but not TOTP.
        ParseError: anything structurally wrong, or no secret. Carries ``raw``.
        ValidationError: parameters parse but are out of range.
    """
    if not isinstance(uri, str) or not uri.strip():
        raise ParseError("Failed to parse URI: empty input", raw=uri)

    try:
        parts = urlsplit(uri.strip())
    except ValueError as exc:
        raise ParseError(f"Failed to parse URI: {exc}", raw=uri) from exc

    if parts.scheme.lower() != SCHEME:
        raise ParseError("Failed to parse URI: invalid protocol", raw=uri)

    otp_type = (parts.netloc or "").lower()
    if otp_type != TOTP_TYPE:
        raise UnsupportedTypeError(
            f"Failed to parse URI: only TOTP is supported (got {otp_type or 'nothing'})",
            raw=uri,
        )

    label = unquote(parts.path.lstrip("/"))
    # keep_blank_values so "issuer=" is seen as explicitly empty
    params = {k: v[0] for k, v in parse_qs(parts.query, keep_blank_values=True).items()}

    secret = "".join(params.get("secret", "").split())
    if not secret:
        raise ParseError("Failed to parse URI: secret is required", raw=uri)

    issuer, name = _split_label(label, params.get("issuer"))

    record = {
        "name": name.strip(),
        "issuer": issuer,
        "secret": secret,
        "algorithm": params.get("algorithm") or "SHA1",
        "digits": params.get("digits") or "6",
        "period": params.get("period") or "30",
    }
    try:
        return validate_record(record)
    except ValidationError as exc:
        raise ValidationError(str(exc), context={**exc.context, "raw": uri}) from exc


def build_uri(entry: CanonicalEntry) -> str:
    """Render an entry as an otpauth URI that :func:`parse_uri` reads back unchanged."""
    if entry.issuer:
        label = f"{quote(entry.issuer, safe='')}:{quote(entry.name, safe='')}"
    else:
        label = quote(entry.name, safe="")

    # issuer is always sent; when empty the label is never split
    params = {"secret": entry.secret, "issuer": entry.issuer or ""}
    params["algorithm"] = entry.algorithm.upper()
    params["digits"] = str(entry.digits)
    params["period"] = str(entry.period)
    return f"{SCHEME}://{TOTP_TYPE}/{label}?{urlencode(params, quote_via=quote)}"


def _split_label(label: str, issuer_param: str | None) -> tuple[str, str]:
    """Return ``(issuer, name)`` from a decoded label and the issuer parameter.

    An issuer parameter that prefixes the label is stripped as a whole, so an
    issuer containing ":" survives. A blank ``issuer=`` leaves the label
    unsplit. Without a usable parameter the label splits at its first colon.
    """
    if issuer_param is not None:
        issuer = issuer_param.strip()
        if not issuer:
            return "", label
        if label.startswith(f"{issuer}:"):
            return issuer, label[len(issuer) + 1 :]
        if ":" in label:
            prefix, _, rest = label.partition(":")
            return issuer, rest or prefix
        return issuer, label
    if ":" in label:
        prefix, _, rest = label.partition(":")
        return prefix.strip(), rest or prefix
    return "", label
