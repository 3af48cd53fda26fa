# Services package init
"""
Storefront Backend — Services Layer
=====================================

What:  Business logic between the routes (HTTP) and the database.
How:   Each service is a plain class with a module-level singleton; methods
       take an AsyncSession when they need one and raise StorefrontError
       subclasses, never HTTP errors.

Service Inventory:
    - InputSanitizer:   string cleaning, email/phone/number checks, log redaction
    - TokenService:     JWT issue/verify, token extraction from requests
    - PasswordService:  bcrypt hashing, strength rules, reset tokens
    - SignatureService: HMAC-SHA256 checks for Razorpay callbacks
    - AuthService:      registration, login, sessions, password flows
    - PaymentService:   signature-verified payment status changes
"""
