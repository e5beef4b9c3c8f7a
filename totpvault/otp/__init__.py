"""TOTPVault one-time password generation."""

from totpvault.otp.generator import CodeGenerator, GeneratedCode, decode_secret, encode_secret

__all__ = ["CodeGenerator", "GeneratedCode", "decode_secret", "encode_secret"]
