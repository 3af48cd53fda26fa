"""
Storefront Backend — Password Service Unit Tests
==================================================
"""

from unittest.mock import patch

import bcrypt
import pytest

from storefront.config import settings
from storefront.exceptions import ValidationError
from storefront.services.password_service import PasswordService


class TestHashing:

    def setup_method(self):
        self.service = PasswordService()

    def test_hash_and_verify(self):
        hashed = self.service.hash("Str0ng!Pass")
        assert hashed.startswith("$2")
        assert hashed != "Str0ng!Pass"
        assert self.service.verify("Str0ng!Pass", hashed)
        assert not self.service.verify("str0ng!pass", hashed)

    def test_hash_is_salted(self):
        assert self.service.hash("Str0ng!Pass") != self.service.hash("Str0ng!Pass")

    def test_hash_uses_configured_cost(self):
        hashed = self.service.hash("Str0ng!Pass")
        assert hashed.split("$")[2] == f"{settings.bcrypt_rounds:02d}"

    @pytest.mark.parametrize("password,hashed", [("", "$2b$04$x"), ("pw", ""), (None, None)])
    def test_verify_false_on_missing_input(self, password, hashed):
        assert not self.service.verify(password, hashed)

    def test_verify_false_on_malformed_hash(self):
        assert not self.service.verify("Str0ng!Pass", "not-a-bcrypt-hash")

    def test_hash_refuses_password_over_72_bytes(self):
        with pytest.raises(ValidationError, match="at most 72 bytes"):
            self.service.hash("Aa1!" + "x" * 80)

    def test_verify_false_for_password_over_72_bytes(self):
        hashed = self.service.hash("Str0ng!Pass")
        assert not self.service.verify("Str0ng!Pass" + "x" * 80, hashed)


class TestNeedsRehash:

    def setup_method(self):
        self.service = PasswordService()

    def test_current_cost_needs_no_rehash(self):
        assert not self.service.needs_rehash(self.service.hash("Str0ng!Pass"))

    def test_different_cost_needs_rehash(self):
        old = bcrypt.hashpw(b"Str0ng!Pass", bcrypt.gensalt(rounds=5)).decode()
        assert self.service.needs_rehash(old)

    def test_cost_change_in_settings(self):
        hashed = self.service.hash("Str0ng!Pass")
        with patch.object(settings, "bcrypt_rounds", settings.bcrypt_rounds + 1):
            assert self.service.needs_rehash(hashed)

    def test_unrecognised_hash_needs_rehash(self):
        assert self.service.needs_rehash("md5$abc")
        assert self.service.needs_rehash("")


class TestStrength:

    def setup_method(self):
        self.service = PasswordService()

    def test_strong_password_passes(self):
        assert self.service.validate_strength("Str0ng!Pass") == []

    def test_every_broken_rule_reported(self):
        assert self.service.validate_strength("abc") == [
            "Password must be at least 8 characters long",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one number",
            "Password must contain at least one special character",
        ]

    def test_missing_lowercase(self):
        assert self.service.validate_strength("STR0NG!PASS") == [
            "Password must contain at least one lowercase letter"
        ]

    def test_password_over_72_bytes_rejected(self):
        assert self.service.validate_strength("Aa1!" + "x" * 80) == [
            "Password must be at most 72 bytes long"
        ]

    def test_byte_limit_counts_utf8_bytes(self):
        # "é" is two bytes in UTF-8: 34 chars = 64 bytes, 44 chars = 84 bytes
        assert "Password must be at most 72 bytes long" not in self.service.validate_strength(
            "Aa1!" + "é" * 30
        )
        assert "Password must be at most 72 bytes long" in self.service.validate_strength(
            "Aa1!" + "é" * 40
        )

    def test_none_treated_as_empty(self):
        assert len(self.service.validate_strength(None)) == 5


class TestResetToken:

    def test_reset_token_is_64_hex_and_unique(self):
        service = PasswordService()
        first, second = service.generate_reset_token(), service.generate_reset_token()
        assert len(first) == 64
        int(first, 16)
        assert first != second
