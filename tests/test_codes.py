"""Tests for secret and code generation."""

import pytest

from quickconnect.pairing.codes import CODE_ALPHABET, CodeGenerator


class TestCodeGenerator:
    def test_default_secret_is_256_bits_of_hex(self):
        secret = CodeGenerator().new_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_default_code_is_six_digits(self):
        code = CodeGenerator().new_code()
        assert len(code) == 6
        assert all(c in CODE_ALPHABET for c in code)

    def test_custom_lengths(self):
        gen = CodeGenerator(code_length=8, secret_bytes=16)
        assert len(gen.new_code()) == 8
        assert len(gen.new_secret()) == 32

    def test_consecutive_secrets_differ(self):
        gen = CodeGenerator()
        assert gen.new_secret() != gen.new_secret()

    def test_short_code_rejected(self):
        with pytest.raises(ValueError):
            CodeGenerator(code_length=3)

    def test_weak_secret_rejected(self):
        with pytest.raises(ValueError):
            CodeGenerator(secret_bytes=8)

    def test_degenerate_alphabet_rejected(self):
        with pytest.raises(ValueError):
            CodeGenerator(alphabet="0")
