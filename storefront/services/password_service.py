"""
Storefront Backend — Password Hashing Service
===============================================

What:  bcrypt hashing and verification, cost upgrades, strength rules, and
       reset-token generation.
Why:   Stored credentials must be slow to brute-force; raising the cost
       factor later must not lock anyone out.
How:   `bcrypt.hashpw` with a salt of `settings.bcrypt_rounds`; stored hashes
       carry their own cost, so `needs_rehash` compares it to the current
       setting and AuthService re-hashes on the next successful login.
Who:   AuthService.
"""

import logging
import re
import secrets
from typing import List, Optional

import bcrypt

from storefront.config import settings
from storefront.exceptions import ValidationError

logger = logging.getLogger(__name__)

_BCRYPT_HASH = re.compile(r"^\$2[abxy]?\$(\d{2})\$[./A-Za-z0-9]{53}$")

MIN_PASSWORD_LENGTH = 8

# bcrypt only reads the first 72 bytes and current releases reject longer input
MAX_PASSWORD_BYTES = 72
TOO_LONG = f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"


class PasswordService:
    def hash(self, password: str) -> str:
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(TOO_LONG, field="password")
        salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: Optional[str], hashed: Optional[str]) -> bool:
        """False for missing input or a malformed stored hash; never raises."""
        if not password or not hashed:
            return False
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash is malformed")
            return False

    def needs_rehash(self, hashed: str) -> bool:
        match = _BCRYPT_HASH.match(hashed or "")
        if not match:
            return True
        return int(match.group(1)) != settings.bcrypt_rounds

    def validate_strength(self, password: Optional[str]) -> List[str]:
        """Return every rule the password breaks; an empty list means it is acceptable."""
        password = password or ""
        errors = []
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            errors.append(TOO_LONG)
        if not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if not re.search(r"\d", password):
            errors.append("Password must contain at least one number")
        if not re.search(r"[^A-Za-z0-9]", password):
            errors.append("Password must contain at least one special character")
        return errors

    def generate_reset_token(self) -> str:
        return secrets.token_hex(32)


password_service = PasswordService()
