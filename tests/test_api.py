"""
Storefront Backend — API Integration Tests
============================================

What we test:
    ✅ Middleware chain: dispatch 404/405 envelopes, security screening,
       request IDs, rate limiting
    ✅ Guards on real endpoints (401 / 403)
    ✅ Account lifecycle against the SQLite test database:
       register → login → profile → refresh → sessions → logout
    ✅ Payment callbacks with signed bodies
    ✅ /api/docs and /api/validate

How:
    HTTPX AsyncClient over ASGITransport; no server is started.
"""

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from jose import jwt

from storefront.config import settings
from storefront.middleware.rate_limit import RateLimitMiddleware
from storefront.services.auth_service import RESET_REQUESTED
from storefront.services.token_service import token_service

STRONG_PASSWORD = "Str0ng!Pass"

REGISTRATION = {
    "email": "asha@example.com",
    "password": STRONG_PASSWORD,
    "first_name": "Asha",
    "last_name": "Verma",
    "phone": "+91 91234 56789",
}


def _sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# ══════════════════════════════════════════════════════════════════════════
# Middleware Chain
# ══════════════════════════════════════════════════════════════════════════

class TestMiddleware:

    @pytest.mark.asyncio
    async def test_unknown_endpoint_lists_routes(self, test_client):
        response = await test_client.get("/api/nothing-here")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "not_found"
        assert body["message"] == "API endpoint not found"
        assert "/api/health" in body["details"]["available_routes"]
        assert body["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_wrong_method_gets_405_with_allow(self, test_client):
        response = await test_client.delete("/api/auth/login")
        assert response.status_code == 405
        assert response.headers["Allow"] == "POST"
        assert response.json()["error"] == "method_not_allowed"

    @pytest.mark.asyncio
    async def test_method_outside_allow_list(self, test_client):
        response = await test_client.patch("/api/auth/profile", json={})
        assert response.status_code == 405
        assert "GET" in response.headers["Allow"]

    @pytest.mark.asyncio
    async def test_security_headers_on_every_response(self, test_client):
        for path in ("/api/nothing-here", "/api/docs"):
            response = await test_client.get(path)
            assert response.headers["X-Content-Type-Options"] == "nosniff"
            assert response.headers["X-Frame-Options"] == "DENY"
            assert "checkout.razorpay.com" in response.headers["Content-Security-Policy"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/wp-admin/setup.php", "/.env", "/phpmyadmin/index.php"])
    async def test_exploit_probes_blocked(self, test_client, path):
        response = await test_client.get(path)
        assert response.status_code == 404
        assert response.json()["message"] == "Not found"

    @pytest.mark.asyncio
    async def test_oversized_body_rejected(self, test_client):
        with patch.object(settings, "max_request_size", 16):
            response = await test_client.post("/api/auth/login", content=b"x" * 64)
        assert response.status_code == 413
        assert response.json()["message"] == "Request too large"

    @pytest.mark.asyncio
    async def test_client_request_id_echoed(self, test_client):
        response = await test_client.get("/api/docs", headers={"X-Request-ID": "checkout-42"})
        assert response.headers["X-Request-ID"] == "checkout-42"

    @pytest.mark.asyncio
    async def test_unsafe_request_id_replaced(self, test_client):
        response = await test_client.get("/api/docs", headers={"X-Request-ID": "bad id!"})
        assert response.headers["X-Request-ID"] != "bad id!"
        assert len(response.headers["X-Request-ID"]) == 8


class TestRateLimit:

    def _app(self):
        app = FastAPI()

        @app.get("/api/ping")
        async def ping():
            return {"ok": True}

        @app.get("/api/health")
        async def health():
            return {"status": "healthy"}

        @app.get("/api/docs")
        async def docs():
            return {"endpoints": []}

        app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60)
        return app

    @pytest.mark.asyncio
    async def test_limit_enforced_with_headers(self):
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = await client.get("/api/ping")
            second = await client.get("/api/ping")
            third = await client.get("/api/ping")

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.headers["X-RateLimit-Remaining"] == "0"
        assert third.status_code == 429
        assert third.json()["error"] == "rate_limit_exceeded"
        assert third.json()["message"].startswith("Rate limit exceeded")
        assert third.json()["details"]["retry_after"] == int(third.headers["Retry-After"])
        assert int(third.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/health", "/api/docs"])
    async def test_health_and_docs_not_limited(self, path):
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            responses = [await client.get(path) for _ in range(4)]
        assert all(r.status_code == 200 for r in responses)
        assert "X-RateLimit-Limit" not in responses[0].headers

    @pytest.mark.asyncio
    async def test_clients_counted_separately(self):
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            for _ in range(2):
                await client.get("/api/ping", headers={"X-Forwarded-For": "203.0.113.5"})
            other = await client.get("/api/ping", headers={"X-Forwarded-For": "198.51.100.7"})
        assert other.status_code == 200


# ══════════════════════════════════════════════════════════════════════════
# Guards
# ══════════════════════════════════════════════════════════════════════════

class TestGuards:

    @pytest.mark.asyncio
    async def test_profile_requires_token(self, test_client):
        response = await test_client.get("/api/auth/profile")
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_error"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_garbage_token(self, test_client):
        response = await test_client.get(
            "/api/auth/verify", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    @pytest.mark.asyncio
    async def test_customer_denied_admin_route(self, test_client, auth_headers):
        response = await test_client.get("/api/admin/profile", headers=auth_headers(role="customer"))
        assert response.status_code == 403
        assert response.json()["message"] == "Insufficient permissions"

    @pytest.mark.asyncio
    async def test_verify_returns_claims(self, test_client, auth_headers):
        response = await test_client.get("/api/auth/verify", headers=auth_headers(user_id=9))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user_id"] == 9
        assert data["role"] == "customer"
        assert data["expires_at"] > 0

    @pytest.mark.asyncio
    async def test_error_body_carries_null_details(self, test_client):
        body = (await test_client.get("/api/auth/profile")).json()
        assert set(body) == {"success", "error", "message", "details", "request_id"}
        assert body["details"] is None

    @pytest.mark.asyncio
    async def test_empty_secret_rejects_token_signed_with_empty_key(self, test_client):
        now = int(time.time())
        forged = jwt.encode(
            {
                "user_id": 1,
                "email": "mallory@example.com",
                "role": "admin",
                "iat": now,
                "exp": now + 600,
                "iss": settings.jwt_issuer,
                "aud": settings.jwt_audience,
            },
            "",
            algorithm="HS256",
        )
        with patch.object(settings, "jwt_secret", ""):
            response = await test_client.get(
                "/api/auth/verify", headers={"Authorization": f"Bearer {forged}"}
            )
        assert response.status_code == 401
        assert response.json()["message"] == "Token verification is not configured"

    @pytest.mark.asyncio
    async def test_refresh_suggested_for_token_near_expiry(self, test_client):
        token = token_service.generate_access_token(
            {"user_id": 9, "email": "u@example.com", "role": "customer"},
            expires_in=settings.token_refresh_threshold - 60,
        )
        response = await test_client.get(
            "/api/auth/verify", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200
        assert response.headers["X-Token-Refresh-Suggested"] == "true"

    @pytest.mark.asyncio
    async def test_no_refresh_suggestion_for_fresh_token(self, test_client, auth_headers):
        response = await test_client.get("/api/auth/verify", headers=auth_headers())
        assert response.status_code == 200
        assert "X-Token-Refresh-Suggested" not in response.headers


# ══════════════════════════════════════════════════════════════════════════
# Account Lifecycle
# ══════════════════════════════════════════════════════════════════════════

class TestAccountFlow:

    @pytest.mark.asyncio
    async def test_health(self, test_client, db_tables):
        response = await test_client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    @pytest.mark.asyncio
    async def test_register_login_refresh_logout(self, test_client, db_tables):
        registered = await test_client.post("/api/auth/register", json=REGISTRATION)
        assert registered.status_code == 201
        assert registered.json()["data"]["user"]["email"] == "asha@example.com"
        assert "password_hash" not in registered.json()["data"]["user"]

        login = await test_client.post(
            "/api/auth/login", json={"email": "asha@example.com", "password": STRONG_PASSWORD}
        )
        assert login.status_code == 200
        tokens = login.json()["data"]["tokens"]
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        profile = await test_client.get("/api/auth/profile", headers=headers)
        assert profile.status_code == 200
        assert profile.json()["data"]["first_name"] == "Asha"
        assert profile.json()["data"]["last_login_at"] is not None

        refreshed = await test_client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert refreshed.status_code == 200
        new_tokens = refreshed.json()["data"]

        # The old refresh token was rotated out
        replay = await test_client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert replay.status_code == 401

        sessions = await test_client.get("/api/auth/sessions", headers=headers)
        assert sessions.json()["data"]["count"] == 2
        assert sessions.json()["data"]["sessions"][0]["token_preview"].endswith("...")

        logout = await test_client.post("/api/auth/logout", headers=headers)
        assert logout.status_code == 200
        assert logout.json()["data"]["revoked_sessions"] == 2

        after = await test_client.post(
            "/api/auth/refresh", json={"refresh_token": new_tokens["refresh_token"]}
        )
        assert after.status_code == 401

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, test_client, db_tables):
        await test_client.post("/api/auth/register", json=REGISTRATION)
        response = await test_client.post(
            "/api/auth/register", json={**REGISTRATION, "email": "ASHA@example.com"}
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_weak_password_rejected(self, test_client, db_tables):
        response = await test_client.post(
            "/api/auth/register", json={**REGISTRATION, "password": "short"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_password_over_bcrypt_limit_is_a_validation_error(self, test_client, db_tables):
        response = await test_client.post(
            "/api/auth/register", json={**REGISTRATION, "password": "Aa1!" + "x" * 80}
        )
        assert response.status_code == 400
        errors = response.json()["details"]["errors"]
        assert {"field": "password", "message": "Password must be at most 72 bytes long"} in errors

    @pytest.mark.asyncio
    async def test_missing_field_uses_envelope(self, test_client, db_tables):
        response = await test_client.post("/api/auth/login", json={"email": "asha@example.com"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["details"]["errors"][0]["field"] == "password"

    @pytest.mark.asyncio
    async def test_wrong_password(self, test_client, db_tables):
        await test_client.post("/api/auth/register", json=REGISTRATION)
        response = await test_client.post(
            "/api/auth/login", json={"email": "asha@example.com", "password": "Wr0ng!Pass"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_forgot_password_same_answer_for_unknown_email(self, test_client, db_tables):
        await test_client.post("/api/auth/register", json=REGISTRATION)
        known = await test_client.post(
            "/api/auth/forgot-password", json={"email": "asha@example.com"}
        )
        unknown = await test_client.post(
            "/api/auth/forgot-password", json={"email": "nobody@example.com"}
        )
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert known.json()["message"] == RESET_REQUESTED

    @pytest.mark.asyncio
    async def test_admin_profile(self, test_client, db_tables, auth_headers):
        await test_client.post("/api/auth/register", json=REGISTRATION)
        response = await test_client.get(
            "/api/admin/profile",
            headers=auth_headers(user_id=1, email="asha@example.com", role="admin"),
        )
        assert response.status_code == 200
        assert "orders.view" in response.json()["data"]["permissions"]


# ══════════════════════════════════════════════════════════════════════════
# Payment Callbacks
# ══════════════════════════════════════════════════════════════════════════

class TestPaymentRoutes:

    @pytest.mark.asyncio
    async def test_webhook_unknown_order_acknowledged(self, test_client, db_tables):
        body = json.dumps(
            {"event": "payment.captured", "payload": {"payment": {"entity": {"order_id": "order_X"}}}}
        ).encode()
        response = await test_client.post(
            "/api/payments/webhook/razorpay",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Razorpay-Signature": _sign(body, settings.razorpay_webhook_secret),
            },
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"event_type": "payment.captured", "handled": False}

    @pytest.mark.asyncio
    async def test_webhook_bad_signature(self, test_client):
        response = await test_client.post(
            "/api/payments/webhook/razorpay",
            content=b"{}",
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": "00"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_signature"

    @pytest.mark.asyncio
    async def test_verify_requires_auth(self, test_client):
        response = await test_client.post(
            "/api/payments/razorpay/verify",
            json={
                "razorpay_order_id": "order_1",
                "razorpay_payment_id": "pay_1",
                "razorpay_signature": "00",
            },
        )
        assert response.status_code == 401


# ══════════════════════════════════════════════════════════════════════════
# Meta Endpoints
# ══════════════════════════════════════════════════════════════════════════

class TestMetaRoutes:

    @pytest.mark.asyncio
    async def test_docs_lists_guarded_routes(self, test_client):
        response = await test_client.get("/api/docs")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_endpoints"] == len(data["endpoints"])
        by_key = {(e["method"], e["path"]): e for e in data["endpoints"]}
        assert by_key[("GET", "/api/admin/profile")]["guards"] == ["admin"]
        assert by_key[("POST", "/api/auth/login")]["guards"] == []

    @pytest.mark.asyncio
    async def test_validate_endpoint(self, test_client):
        response = await test_client.post(
            "/api/validate", json={"endpoint": "/wrong", "method": "GET"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["valid"] is False
        assert response.json()["message"] == "Request has errors"
