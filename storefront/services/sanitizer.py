"""
Storefront Backend — Input Sanitizer
======================================

What:  Recursive cleaning of untrusted request data, small validators, and
       redaction of secrets before data reaches logs.
Why:   Query strings and profile fields are echoed back to the storefront
       frontend; anything stored must be inert when rendered as HTML.
How:   Strings lose NUL bytes, surrounding whitespace, executable URL schemes
       and inline event handlers, then are HTML-escaped. Dicts are cleaned
       key-and-value; lists element-wise; other scalars pass through.
Who:   The dispatch layer (query strings on /api/ paths) and AuthService
       (names and phone numbers).

Passwords are never run through sanitize(): escaping would silently change
the secret the user typed.
"""

import html
import math
import re
from typing import Any, Optional

# `javascript:`, `vbscript:` and `data:text/html` survive HTML escaping
# untouched and execute when placed in an href.
_DANGEROUS_SCHEMES = re.compile(r"(?i)\b(?:java|vb)script\s*:|data\s*:\s*text/html")

# onload=, onerror = ...
_EVENT_HANDLERS = re.compile(r"(?i)\bon[a-z]+\s*=")

_EMAIL = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+$")
_PHONE = re.compile(r"^[+]?[0-9\s\-()]{10,15}$")

_SENSITIVE_KEY = re.compile(r"(?i)password|secret|token|key")

REDACTED = "[REDACTED]"


class InputSanitizer:
    """Stateless sanitizer; use the module-level `input_sanitizer` instance."""

    def sanitize(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                (self.sanitize_string(k) if isinstance(k, str) else k): self.sanitize(v)
                for k, v in data.items()
            }
        if isinstance(data, (list, tuple)):
            return [self.sanitize(item) for item in data]
        if isinstance(data, str):
            return self.sanitize_string(data)
        return data

    def sanitize_string(self, value: str) -> str:
        value = value.replace("\x00", "").strip()
        value = _DANGEROUS_SCHEMES.sub("", value)
        value = _EVENT_HANDLERS.sub("", value)
        return html.escape(value, quote=True)

    # ── Validators ────────────────────────────────────────────────────────

    def validate_email(self, email: Optional[str]) -> bool:
        if not email or len(email) > 254:
            return False
        return bool(_EMAIL.match(email))

    def validate_phone(self, phone: Optional[str]) -> bool:
        return bool(phone) and bool(_PHONE.match(phone))

    def validate_integer(
        self, value: Any, min_value: Optional[int] = None, max_value: Optional[int] = None
    ) -> bool:
        """Numeric strings are accepted; the value is truncated toward zero before range checks."""
        number = self._to_number(value)
        if number is None:
            return False
        number = int(number)
        if min_value is not None and number < min_value:
            return False
        if max_value is not None and number > max_value:
            return False
        return True

    def validate_float(
        self, value: Any, min_value: Optional[float] = None, max_value: Optional[float] = None
    ) -> bool:
        number = self._to_number(value)
        if number is None:
            return False
        if min_value is not None and number < min_value:
            return False
        if max_value is not None and number > max_value:
            return False
        return True

    @staticmethod
    def _to_number(value: Any) -> Optional[float]:
        """Finite float for numeric input, else None ("inf", "nan", bools, huge ints)."""
        if isinstance(value, bool):
            return None
        try:
            if isinstance(value, (int, float)):
                number = float(value)
            elif isinstance(value, str):
                number = float(value.strip())
            else:
                return None
        except (ValueError, OverflowError):
            return None
        return number if math.isfinite(number) else None


def redact_sensitive(data: Any) -> Any:
    """
    Replace values under password/secret/token/key-like keys with '[REDACTED]'.

    Used on log context and error details so credentials never reach log
    aggregation or API responses.
    """
    if isinstance(data, dict):
        return {
            k: (REDACTED if isinstance(k, str) and _SENSITIVE_KEY.search(k) else redact_sensitive(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data


input_sanitizer = InputSanitizer()
