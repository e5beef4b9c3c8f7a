"""Secure logging setup: no seeds or envelopes in logs, rotation, OS-appropriate dir."""

from __future__ import annotations

import logging
import logging.handlers
import os
import platform
import re
from pathlib import Path

# otpauth URIs carry the seed in their query string
_URI_RE = re.compile(r"otpauth://\S*", re.IGNORECASE)
# hex(nonce):hex(tag):hex(ciphertext)
_ENVELOPE_RE = re.compile(r"\b[0-9a-f]{24}:[0-9a-f]{32}:[0-9a-f]+\b", re.IGNORECASE)
# Base32 seeds: 16+ alphabet characters standing alone, optional padding
_BASE32_RE = re.compile(r"(?<![A-Za-z0-9])[A-Za-z2-7]{16,}=*(?![A-Za-z0-9])")


class SecureFormatter(logging.Formatter):
    """Formatter that masks seeds, otpauth URIs and envelopes.

    Arguments are replaced before interpolation; the message template is
    scrubbed as well, so a value formatted into the string by the caller is
    caught too.
    """

    MAX_ARG_CHARS = 50

    def format(self, record):
        if isinstance(record.msg, str):
            record.msg = self.scrub(record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(self.mask(arg) for arg in record.args)
        return super().format(record)

    def mask(self, arg):
        if isinstance(arg, (bytes, bytearray)):
            return f"<{len(arg)} bytes>"
        if isinstance(arg, BaseException):
            arg = str(arg)
        if not isinstance(arg, str):
            return arg
        if _URI_RE.search(arg):
            return "<otpauth uri>"
        if _ENVELOPE_RE.search(arg):
            return "<envelope>"
        if len(arg) > self.MAX_ARG_CHARS:
            return f"<{len(arg)} chars>"
        return self.scrub(arg)

    @staticmethod
    def scrub(text: str) -> str:
        text = _URI_RE.sub("<otpauth uri>", text)
        text = _ENVELOPE_RE.sub("<envelope>", text)
        return _BASE32_RE.sub("<secret>", text)


def setup_secure_logging(log_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """Attach a rotating, owner-only log file to the ``totpvault`` logger.

    Repeated calls reuse the first handler. The logger does not propagate, so
    nothing reaches the root logger's handlers unmasked.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    if platform.system() != "Windows":
        try:
            os.chmod(log_dir, 0o700)
        except OSError:
            pass

    log_file = log_dir / "totpvault.log"

    vault_logger = logging.getLogger("totpvault")
    vault_logger.setLevel(level)
    vault_logger.propagate = False
    if vault_logger.handlers:
        return vault_logger

    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    handler.setFormatter(
        SecureFormatter("%(asctime)s %(levelname)-8s [%(name)s] %(message)s")
    )
    vault_logger.addHandler(handler)

    if platform.system() != "Windows":
        try:
            os.chmod(log_file, 0o600)
        except OSError:
            pass

    return vault_logger
