"""Tests for CodeGenerator: RFC 6238 vectors, skew window, purity."""

from __future__ import annotations

import base64
import hashlib
import hmac
import struct
from concurrent.futures import ThreadPoolExecutor

import pytest

from totpvault.errors import ValidationError
from totpvault.otp.generator import (
    CodeGenerator,
    decode_secret,
    encode_secret,
    time_remaining,
)
from tests.conftest import HELLO_SECRET

# RFC 6238 Appendix B seeds
SEED_SHA1 = base64.b32encode(b"12345678901234567890").decode()
SEED_SHA256 = base64.b32encode(b"12345678901234567890" + b"123456789012").decode()
SEED_SHA512 = base64.b32encode(b"1234567890" * 6 + b"1234").decode()

RFC_VECTORS = [
    (59, "sha1", SEED_SHA1, "94287082"),
    (59, "sha256", SEED_SHA256, "46119246"),
    (59, "sha512", SEED_SHA512, "90693936"),
    (1111111109, "sha1", SEED_SHA1, "07081804"),
    (1111111109, "sha256", SEED_SHA256, "68084774"),
    (1111111109, "sha512", SEED_SHA512, "25091201"),
    (1234567890, "sha1", SEED_SHA1, "89005924"),
    (1234567890, "sha256", SEED_SHA256, "91819424"),
    (1234567890, "sha512", SEED_SHA512, "93441116"),
]


def _reference_code(secret_b32: str, at: int, period: int = 30, digits: int = 6) -> str:
    key = base64.b32decode(secret_b32)
    mac = hmac.new(key, struct.pack(">Q", at // period), hashlib.sha1).digest()
    offset = mac[-1] & 0x0F
    value = int.from_bytes(mac[offset : offset + 4], "big") & 0x7FFFFFFF
    return str(value % 10**digits).zfill(digits)


class TestReferenceVectors:
    @pytest.mark.parametrize("at,algorithm,seed,expected", RFC_VECTORS)
    def test_rfc6238_eight_digits(self, at, algorithm, seed, expected):
        result = CodeGenerator.generate(seed, algorithm, digits=8, period=30, at=at)
        assert result.code == expected

    def test_rfc6238_six_digits(self):
        assert CodeGenerator.generate(SEED_SHA1, "sha1", 6, 30, at=59).code == "287082"

    def test_hello_secret_at_59(self):
        result = CodeGenerator.generate(HELLO_SECRET, "sha1", 6, 30, at=59)
        assert result.code == _reference_code(HELLO_SECRET, 59)
        assert len(result.code) == 6
        assert result.time_remaining == 1
        assert result.period == 30

    def test_algorithm_case_insensitive(self):
        upper = CodeGenerator.generate(SEED_SHA256, "SHA-256", 8, 30, at=59)
        assert upper.code == "46119246"


class TestTimeRemaining:
    @pytest.mark.parametrize(
        "period,at,expected", [(30, 0, 30), (30, 59, 1), (30, 60, 30), (60, 61, 59), (10, 9.5, 1)]
    )
    def test_values(self, period, at, expected):
        assert time_remaining(period, at) == expected


class TestVerify:
    def test_same_instant(self):
        code = CodeGenerator.generate(HELLO_SECRET, at=1_700_000_000).code
        assert CodeGenerator.verify(code, HELLO_SECRET, at=1_700_000_000)

    def test_one_period_skew_accepted(self):
        at = 1_700_000_000
        code = CodeGenerator.generate(HELLO_SECRET, at=at).code
        assert CodeGenerator.verify(code, HELLO_SECRET, at=at + 30)
        assert CodeGenerator.verify(code, HELLO_SECRET, at=at - 30)

    def test_two_period_skew_rejected(self):
        at = 1_700_000_000
        code = CodeGenerator.generate(HELLO_SECRET, at=at).code
        assert not CodeGenerator.verify(code, HELLO_SECRET, at=at + 60)

    def test_next_period_changes_code(self):
        at = 1_700_000_000
        assert (
            CodeGenerator.generate(HELLO_SECRET, at=at).code
            != CodeGenerator.generate(HELLO_SECRET, at=at + 30).code
        )

    @pytest.mark.parametrize(
        "code",
        [
            "",
            "12345",
            "1234567",
            "abcdef",
            None,
            123456,
            "\u0661" * 6,
            "\u00b2" * 6,
            "\uff11" * 6,
        ],
    )
    def test_malformed_code_is_false(self, code):
        assert CodeGenerator.verify(code, HELLO_SECRET, at=59) is False

    def test_zero_window(self):
        code = CodeGenerator.generate(HELLO_SECRET, at=59).code
        assert not CodeGenerator.verify(code, HELLO_SECRET, at=89, window=0)


class TestParameters:
    @pytest.mark.parametrize("algorithm", ["md5", "sha3", ""])
    def test_bad_algorithm(self, algorithm):
        with pytest.raises(ValidationError, match="algorithm"):
            CodeGenerator.generate(HELLO_SECRET, algorithm, at=0)

    @pytest.mark.parametrize("digits", [5, 9, 0])
    def test_bad_digits(self, digits):
        with pytest.raises(ValidationError, match="digits"):
            CodeGenerator.generate(HELLO_SECRET, digits=digits, at=0)

    @pytest.mark.parametrize("period", [9, 121, 0])
    def test_bad_period(self, period):
        with pytest.raises(ValidationError, match="period"):
            CodeGenerator.generate(HELLO_SECRET, period=period, at=0)

    @pytest.mark.parametrize("at", [-1, -30.5, float("nan"), float("inf"), "59", True])
    def test_bad_time(self, at):
        with pytest.raises(ValidationError, match="time"):
            CodeGenerator.generate(HELLO_SECRET, at=at)

    @pytest.mark.parametrize("digits", [6, 7, 8])
    def test_zero_padded_length(self, digits):
        for at in range(0, 3000, 30):
            assert len(CodeGenerator.generate(HELLO_SECRET, digits=digits, at=at).code) == digits

    def test_concurrent_calls_with_different_parameters(self):
        def run(params):
            algorithm, digits, period = params
            return CodeGenerator.generate(SEED_SHA1, algorithm, digits, period, at=59).code

        params = [("sha1", 8, 30), ("sha1", 6, 60)] * 50
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, params))
        assert set(results[0::2]) == {"94287082"}
        assert len(set(results[1::2])) == 1
        assert all(len(code) == 6 for code in results[1::2])


class TestSecretCoding:
    def test_decode_tolerates_spaces_and_case(self):
        assert decode_secret("jbsw y3dp ehpk 3pxp") == b"Hello!\xde\xad\xbe\xef"

    def test_decode_restores_padding(self):
        assert decode_secret("GEZDGNBV") == b"12345"
        assert decode_secret("MFRGG") == b"abc"

    @pytest.mark.parametrize("secret", ["", "   ", "not-base32!", "A"])
    def test_decode_rejects(self, secret):
        with pytest.raises(ValidationError):
            decode_secret(secret)

    def test_encode_unpadded(self):
        assert encode_secret(b"Hello!\xde\xad\xbe\xef") == HELLO_SECRET
        assert encode_secret(b"abc") == "MFRGG"
