"""
Storefront Backend — Input Sanitizer Unit Tests
=================================================
"""

import pytest

from storefront.services.sanitizer import REDACTED, InputSanitizer, redact_sensitive


class TestSanitizeString:

    def setup_method(self):
        self.sanitizer = InputSanitizer()

    def test_html_is_escaped(self):
        assert self.sanitizer.sanitize_string('<b>"Hi"</b>') == "&lt;b&gt;&quot;Hi&quot;&lt;/b&gt;"

    def test_whitespace_and_nul_removed(self):
        assert self.sanitizer.sanitize_string("  Pri\x00ya  ") == "Priya"

    def test_script_schemes_removed(self):
        assert self.sanitizer.sanitize_string("javascript:alert(1)") == "alert(1)"
        assert "script" not in self.sanitizer.sanitize_string("VBScript : msgbox").lower()
        assert "data" not in self.sanitizer.sanitize_string("data:text/html,<svg>")

    def test_event_handlers_removed(self):
        cleaned = self.sanitizer.sanitize_string('<img src=x onerror=alert(1)>')
        assert "onerror" not in cleaned
        assert cleaned.startswith("&lt;img")

    def test_plain_text_unchanged(self):
        assert self.sanitizer.sanitize_string("Silk saree, red") == "Silk saree, red"


class TestSanitizeStructures:

    def setup_method(self):
        self.sanitizer = InputSanitizer()

    def test_dict_keys_and_values_cleaned(self):
        result = self.sanitizer.sanitize({"<k>": " <v> ", "n": 5})
        assert result == {"&lt;k&gt;": "&lt;v&gt;", "n": 5}

    def test_nested_lists_and_tuples(self):
        result = self.sanitizer.sanitize({"tags": ("<a>", ["b", None]), "ok": True})
        assert result == {"tags": ["&lt;a&gt;", ["b", None]], "ok": True}

    def test_scalars_pass_through(self):
        assert self.sanitizer.sanitize(3.5) == 3.5
        assert self.sanitizer.sanitize(None) is None


class TestValidators:

    def setup_method(self):
        self.sanitizer = InputSanitizer()

    @pytest.mark.parametrize("email", ["a@b.co", "first.last+tag@shop.example.in"])
    def test_valid_emails(self, email):
        assert self.sanitizer.validate_email(email)

    @pytest.mark.parametrize("email", ["", None, "plain", "a@b", "a b@c.com", "x" * 250 + "@a.com"])
    def test_invalid_emails(self, email):
        assert not self.sanitizer.validate_email(email)

    @pytest.mark.parametrize("phone", ["9876543210", "+91 98765 43210", "(022) 2345-6789"])
    def test_valid_phones(self, phone):
        assert self.sanitizer.validate_phone(phone)

    @pytest.mark.parametrize("phone", ["", None, "12345", "98765abc10", "+91 98765 43210 999"])
    def test_invalid_phones(self, phone):
        assert not self.sanitizer.validate_phone(phone)

    def test_validate_integer_ranges(self):
        assert self.sanitizer.validate_integer("5", 1, 10)
        assert not self.sanitizer.validate_integer(0, 1, 10)
        assert not self.sanitizer.validate_integer("11", 1, 10)
        assert not self.sanitizer.validate_integer("five")
        assert not self.sanitizer.validate_integer(True)

    def test_validate_float_ranges(self):
        assert self.sanitizer.validate_float("499.99", 0)
        assert not self.sanitizer.validate_float(-0.01, 0)
        assert not self.sanitizer.validate_float([1.0])

    @pytest.mark.parametrize("value", ["inf", "-inf", "nan", " NaN ", float("inf"), float("nan"), 10 ** 400])
    def test_non_finite_numbers_rejected(self, value):
        assert self.sanitizer.validate_integer(value) is False
        assert self.sanitizer.validate_float(value) is False
        assert self.sanitizer.validate_float(value, 0, 100) is False


class TestRedactSensitive:

    def test_sensitive_keys_redacted_recursively(self):
        data = {
            "email": "a@b.co",
            "password": "hunter2",
            "nested": {"refresh_token": "abc", "items": [{"api_key": "k", "qty": 2}]},
            "RAZORPAY_SECRET": "s",
        }
        assert redact_sensitive(data) == {
            "email": "a@b.co",
            "password": REDACTED,
            "nested": {"refresh_token": REDACTED, "items": [{"api_key": REDACTED, "qty": 2}]},
            "RAZORPAY_SECRET": REDACTED,
        }

    def test_non_dict_values_returned_as_is(self):
        assert redact_sensitive("password") == "password"
        assert redact_sensitive(None) is None
