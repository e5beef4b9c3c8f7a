"""Tests for key loading, config.ini handling, paths and log masking."""

from __future__ import annotations

import logging
import os
import platform

import pytest

from totpvault.config import (
    CONFIG_FILENAME,
    ENV_DATABASE,
    ENV_ENCRYPTION_KEY,
    Config,
    decode_key,
    generate_key_file,
)
from totpvault.crypto.cipher import EnvelopeCipher
from totpvault.errors import ConfigurationError
from totpvault.logging_setup import SecureFormatter
from totpvault.paths import ENV_DATA_DIR, get_data_dir, get_log_dir
from tests.conftest import HELLO_SECRET, TEST_KEY


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (ENV_ENCRYPTION_KEY, ENV_DATABASE, ENV_DATA_DIR):
        monkeypatch.delenv(name, raising=False)


class TestDecodeKey:
    def test_text_key(self):
        assert decode_key(TEST_KEY.decode()) == TEST_KEY

    def test_hex_key(self):
        assert decode_key("ab" * 32) == b"\xab" * 32

    def test_surrounding_whitespace_ignored(self):
        assert decode_key(f"  {TEST_KEY.decode()}\n") == TEST_KEY

    @pytest.mark.parametrize("raw", ["short", "x" * 33, "zz" * 32])
    def test_rejected(self, raw):
        with pytest.raises(ConfigurationError):
            decode_key(raw)


class TestEncryptionKey:
    def test_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv(ENV_ENCRYPTION_KEY, TEST_KEY.decode())
        assert Config.get_encryption_key(tmp_path) == TEST_KEY

    def test_environment_wins_over_file(self, monkeypatch, tmp_path):
        generate_key_file(tmp_path)
        monkeypatch.setenv(ENV_ENCRYPTION_KEY, TEST_KEY.decode())
        assert Config.get_encryption_key(tmp_path) == TEST_KEY

    def test_from_config_file(self, tmp_path):
        generate_key_file(tmp_path)
        key = Config.get_encryption_key(tmp_path)
        assert len(key) == 32
        assert Config.get_encryption_key(tmp_path) == key

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigurationError, match=ENV_ENCRYPTION_KEY):
            Config.get_encryption_key(tmp_path)

    def test_wrong_length(self, monkeypatch, tmp_path):
        monkeypatch.setenv(ENV_ENCRYPTION_KEY, "too-short")
        with pytest.raises(ConfigurationError):
            Config.get_encryption_key(tmp_path)

    def test_cipher_from_config(self, monkeypatch, tmp_path):
        monkeypatch.setenv(ENV_ENCRYPTION_KEY, TEST_KEY.decode())
        cipher = EnvelopeCipher.from_config(tmp_path)
        assert EnvelopeCipher(TEST_KEY).decrypt(cipher.encrypt(HELLO_SECRET)) == HELLO_SECRET


class TestKeyFile:
    def test_refuses_to_overwrite(self, tmp_path):
        generate_key_file(tmp_path)
        with pytest.raises(ConfigurationError, match="already exists"):
            generate_key_file(tmp_path)

    def test_no_temp_files_left(self, tmp_path):
        generate_key_file(tmp_path)
        assert [p.name for p in tmp_path.iterdir()] == [CONFIG_FILENAME]
        assert Config.config_exists(tmp_path)

    @pytest.mark.skipif(platform.system() == "Windows", reason="POSIX permissions")
    def test_owner_only_permissions(self, tmp_path):
        path = generate_key_file(tmp_path / "data")
        assert os.stat(path).st_mode & 0o777 == 0o600


class TestDatabasePath:
    def test_default(self, tmp_path):
        assert Config.get_database_path(tmp_path) == tmp_path / "totpvault.db"

    def test_from_config_file(self, tmp_path):
        target = tmp_path / "elsewhere.db"
        generate_key_file(tmp_path, database=target)
        assert Config.get_database_path(tmp_path) == target

    def test_environment_wins(self, monkeypatch, tmp_path):
        generate_key_file(tmp_path, database=tmp_path / "file.db")
        monkeypatch.setenv(ENV_DATABASE, str(tmp_path / "env.db"))
        assert Config.get_database_path(tmp_path) == tmp_path / "env.db"


class TestPaths:
    def test_data_dir_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
        assert get_data_dir() == tmp_path

    def test_log_dir_under_data_dir(self, tmp_path):
        assert get_log_dir(tmp_path) == tmp_path / "logs"


class TestSecureFormatter:
    def _format(self, *args, msg="value=%s"):
        record = logging.LogRecord(
            "totpvault.test", logging.INFO, __file__, 1, msg, args, None
        )
        return SecureFormatter("%(message)s").format(record)

    def test_short_values_pass_through(self):
        assert self._format("phone") == "value=phone"
        assert self._format(42) == "value=42"

    def test_long_strings_masked(self):
        long_text = "ab" * 40
        assert self._format(long_text) == "value=<80 chars>"

    def test_bytes_masked(self):
        assert self._format(TEST_KEY) == "value=<32 bytes>"

    @pytest.mark.parametrize(
        "secret",
        [
            HELLO_SECRET,
            HELLO_SECRET.lower(),
            f"{HELLO_SECRET}====",
            "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ",
        ],
    )
    def test_base32_seeds_masked(self, secret):
        assert secret not in self._format(secret)

    def test_seed_inside_short_text_masked(self):
        assert self._format(f"bad {HELLO_SECRET}") == "value=bad <secret>"

    def test_otpauth_uri_masked(self):
        uri = f"otpauth://totp/x?secret={HELLO_SECRET}"
        assert self._format(uri) == "value=<otpauth uri>"
        assert self._format("OTPAUTH://totp/a?secret=AB") == "value=<otpauth uri>"

    def test_envelope_masked(self, cipher):
        assert self._format(cipher.encrypt(HELLO_SECRET)) == "value=<envelope>"

    def test_value_formatted_into_message_masked(self):
        text = self._format(msg=f"importing otpauth://totp/a?secret={HELLO_SECRET} now")
        assert text == "importing <otpauth uri> now"
        assert self._format(msg=f"seed {HELLO_SECRET}") == "seed <secret>"

    @pytest.mark.parametrize(
        "value", ["GitHub", "device-7", "totp-sync-export", "alice@example.com"]
    )
    def test_ordinary_values_untouched(self, value):
        assert self._format(value) == f"value={value}"

    def test_exception_arguments_masked(self):
        exc = ValueError(f"rejected {HELLO_SECRET}")
        assert self._format(exc) == "value=rejected <secret>"
