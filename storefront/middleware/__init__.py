"""
Storefront Backend — Middleware Package
========================================

Middleware Chain (outermost first):
    Request → [CORS] → [Rate Limit] → [Request ID] → [Access Log]
            → [Security] → [Dispatch] → FastAPI router → guards → handler

    CORS is outermost so preflights and every rejection carry CORS headers.
    Rate limiting runs before any parsing work. Security screening drops
    probes before the dispatch table looks at them.

Guards (auth.py) are FastAPI dependencies rather than middleware: they run
only on the routes that declare them.
"""
