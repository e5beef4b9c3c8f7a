"""TOTPVault interchange formats (otpauth URIs and bulk JSON exports)."""

from totpvault.formats.bulk import detect_variant, parse_bulk
from totpvault.formats.uri import build_uri, parse_uri
from totpvault.formats.validation import validate_record

__all__ = ["parse_uri", "build_uri", "parse_bulk", "detect_variant", "validate_record"]
