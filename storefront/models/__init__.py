# Importing the models registers them on Base.metadata (Alembic autogenerate).
from storefront.models.payment import Payment
from storefront.models.user import PasswordReset, RefreshToken, User

__all__ = ["User", "RefreshToken", "PasswordReset", "Payment"]
