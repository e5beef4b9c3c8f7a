"""Centralised configuration, key material loading, and config.ini I/O."""

from __future__ import annotations

import binascii
import configparser
import logging
import os
import secrets
import tempfile
from pathlib import Path

from totpvault.crypto.formats import KEY_SIZE, MAX_PLAINTEXT_LENGTH
from totpvault.errors import ConfigurationError

logger = logging.getLogger("totpvault.config")

ENV_ENCRYPTION_KEY = "TOTPVAULT_ENCRYPTION_KEY"
ENV_DATABASE = "TOTPVAULT_DATABASE"
CONFIG_FILENAME = "config.ini"


# ============================================================================
#  Config class
# ============================================================================
class Config:
    """Centralised settings."""

    # Secrets
    MAX_SECRET_LENGTH = MAX_PLAINTEXT_LENGTH

    # TOTP parameters
    ALGORITHMS = ("sha1", "sha256", "sha512")
    DIGITS = (6, 7, 8)
    MIN_PERIOD = 10
    MAX_PERIOD = 120
    DEFAULT_ALGORITHM = "sha1"
    DEFAULT_DIGITS = 6
    DEFAULT_PERIOD = 30
    VERIFY_WINDOW = 1

    # Sync
    DEFAULT_DEVICE_ID = "unknown"

    # Export
    EXPORT_VERSION = "1.0"
    EXPORT_TYPE = "totp-sync-export"

    # Storage
    DEFAULT_DATABASE_NAME = "totpvault.db"

    # ------------------------------------------------------------------
    #  Key material
    # ------------------------------------------------------------------
    @staticmethod
    def get_encryption_key(data_dir: Path | None = None) -> bytes:
        """Resolve the process-wide cipher key.

        The environment wins over ``config.ini``. Any problem here is fatal:
        callers are expected to stop before building a cipher.
        """
        raw = os.environ.get(ENV_ENCRYPTION_KEY)
        source = ENV_ENCRYPTION_KEY
        if not raw:
            cfg = _read_config(data_dir)
            raw = cfg.get("cipher", "key", fallback=None)
            source = CONFIG_FILENAME
        if not raw:
            raise ConfigurationError(
                f"No encryption key configured (set {ENV_ENCRYPTION_KEY} "
                f"or [cipher] key in {CONFIG_FILENAME})"
            )
        key = decode_key(raw)
        logger.info("Encryption key loaded from %s", source)
        return key

    @staticmethod
    def get_database_path(data_dir: Path | None = None) -> Path:
        env = os.environ.get(ENV_DATABASE)
        if env:
            return Path(env)
        if data_dir is None:
            from totpvault.paths import get_data_dir

            data_dir = get_data_dir()
        cfg = _read_config(data_dir)
        configured = cfg.get("storage", "database", fallback=None)
        if configured:
            return Path(configured)
        return data_dir / Config.DEFAULT_DATABASE_NAME

    @staticmethod
    def config_exists(data_dir: Path) -> bool:
        return (data_dir / CONFIG_FILENAME).exists()


def decode_key(raw: str) -> bytes:
    """Accept either 32 characters of text or 64 hex digits."""
    raw = raw.strip()
    if len(raw) == KEY_SIZE * 2:
        try:
            return binascii.unhexlify(raw)
        except (binascii.Error, ValueError) as exc:
            raise ConfigurationError("Encryption key is not valid hex") from exc
    key = raw.encode("utf-8")
    if len(key) != KEY_SIZE:
        raise ConfigurationError(
            f"Encryption key must be exactly {KEY_SIZE} bytes "
            f"(got {len(key)}); use 32 characters or 64 hex digits"
        )
    return key


def generate_key_file(data_dir: Path, database: Path | None = None) -> Path:
    """Write a config.ini holding a fresh random key. Refuses to overwrite."""
    config_path = data_dir / CONFIG_FILENAME
    if config_path.exists():
        raise ConfigurationError(f"{config_path} already exists")
    values = {"cipher": {"key": secrets.token_hex(KEY_SIZE)}}
    if database is not None:
        values["storage"] = {"database": str(database)}
    _write_config(data_dir, values)
    logger.info("New configuration written to %s", config_path)
    return config_path


def _read_config(data_dir: Path | None) -> configparser.ConfigParser:
    if data_dir is None:
        from totpvault.paths import get_data_dir

        data_dir = get_data_dir()
    cfg = configparser.ConfigParser()
    config_path = data_dir / CONFIG_FILENAME
    if config_path.exists():
        try:
            cfg.read(config_path)
        except configparser.Error as exc:
            raise ConfigurationError(f"Unreadable {config_path}: {exc}") from exc
    return cfg


# ============================================================================
#  Atomic config writer
# ============================================================================
def _write_config(data_dir: Path, sections: dict) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    if os.name != "nt":
        try:
            os.chmod(data_dir, 0o700)
        except OSError:
            pass

    config_path = data_dir / CONFIG_FILENAME
    cfg = configparser.ConfigParser()
    for name, values in sections.items():
        cfg[name] = values

    fd = tempfile.NamedTemporaryFile(
        mode="w", dir=data_dir, prefix="cfg_tmp_", suffix=".ini", delete=False
    )
    try:
        cfg.write(fd)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        tmp = Path(fd.name)
        if os.name != "nt":
            os.chmod(tmp, 0o600)
        tmp.replace(config_path)
    except BaseException:
        fd.close()
        try:
            Path(fd.name).unlink(missing_ok=True)
        except OSError:
            pass
        raise
