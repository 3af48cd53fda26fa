# Routes package init
"""
Storefront Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:      /api/auth/*              (register, login, tokens, profile, passwords)
    - admin.py:     /api/admin/*             (admin login, profile, token cleanup)
    - payments.py:  /api/payments/razorpay/verify, /api/payments/webhook/razorpay
    - health.py:    GET /api/health
    - meta.py:      GET /api/docs, POST /api/validate

Routes stay thin: pull data out of the request, call a service, wrap the
result with success_body(). Errors propagate to the handlers in main.py.
"""
