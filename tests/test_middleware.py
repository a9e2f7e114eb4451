"""
Tests for middleware - triplog/core/middleware.py

Covers:
- CorrelationIdMiddleware: correlation ID propagation
- RequestLoggingMiddleware: request logging with LINE user ids masked
- WebhookRateLimitMiddleware: webhook rate limiting
- Exception handlers: AppException and unexpected exceptions
"""
import time
from unittest.mock import AsyncMock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from triplog.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    WebhookRateLimitMiddleware,
    _mask_path_pii,
    app_exception_handler,
    generic_exception_handler,
)
from triplog.core.exceptions import AppException, ErrorCode, NotFoundException, ValidationException

from conftest import TEST_USER_ID


# ============================================================================
# Helpers
# ============================================================================


def _hello(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


def _webhook(request: Request) -> PlainTextResponse:
    return PlainTextResponse("webhook ok")


def _error(request: Request) -> PlainTextResponse:
    raise ValueError("test failure")


def _build_app(
    *,
    routes: list[Route] | None = None,
    middlewares: list[tuple] | None = None,
) -> Starlette:
    """Minimal Starlette app with the given middleware"""
    default_routes = [
        Route("/test", _hello),
        Route("/api/line/webhook", _webhook, methods=["GET", "POST"]),
        Route("/error", _error),
    ]
    app = Starlette(routes=routes or default_routes)
    if middlewares:
        for mw_class, kwargs in middlewares:
            app.add_middleware(mw_class, **kwargs)
    return app


class TestMaskPathPii:
    """LINE user ids in URL paths"""

    @pytest.mark.unit
    def test_masks_user_id_in_path(self) -> None:
        masked = _mask_path_pii(f"/api/admin/sessions/{TEST_USER_ID}")
        assert TEST_USER_ID not in masked
        assert masked.startswith("/api/admin/sessions/U012")
        assert "****" in masked

    @pytest.mark.unit
    def test_no_user_id_no_change(self) -> None:
        assert _mask_path_pii("/health/ready") == "/health/ready"

    @pytest.mark.unit
    def test_short_ids_not_masked(self) -> None:
        assert _mask_path_pii("/api/admin/sessions/U123") == "/api/admin/sessions/U123"


class TestCorrelationIdMiddleware:
    """Correlation ID propagation"""

    @pytest.mark.unit
    def test_generates_correlation_id_when_missing(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.status_code == 200
            assert response.headers["x-correlation-id"]

    @pytest.mark.unit
    def test_preserves_existing_correlation_id(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test", headers={"X-Correlation-ID": "my-custom-id"})
            assert response.headers["x-correlation-id"] == "my-custom-id"

    @pytest.mark.unit
    def test_correlation_id_unique_per_request(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            id1 = client.get("/test").headers["x-correlation-id"]
            id2 = client.get("/test").headers["x-correlation-id"]
            assert id1 != id2


class TestRequestLoggingMiddleware:
    """Request logging"""

    @pytest.mark.unit
    def test_successful_request_logged(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app) as client:
            assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_exception_in_handler_reraised(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app, raise_server_exceptions=False) as client:
            assert client.get("/error").status_code == 500


class TestWebhookRateLimitMiddleware:
    """Webhook rate limiting"""

    @pytest.mark.unit
    def test_allows_requests_under_limit(self) -> None:
        app = _build_app(middlewares=[(WebhookRateLimitMiddleware, {"max_requests": 5, "window_seconds": 60})])
        with TestClient(app) as client:
            for _ in range(5):
                assert client.post("/api/line/webhook").status_code == 200

    @pytest.mark.unit
    def test_blocks_requests_over_limit(self) -> None:
        app = _build_app(middlewares=[(WebhookRateLimitMiddleware, {"max_requests": 3, "window_seconds": 60})])
        with TestClient(app) as client:
            for _ in range(3):
                assert client.post("/api/line/webhook").status_code == 200

            response = client.post("/api/line/webhook")
            assert response.status_code == 429
            assert response.headers["Retry-After"] == "60"
            assert response.json()["error"]["code"] == ErrorCode.RATE_LIMITED.value

    @pytest.mark.unit
    def test_non_webhook_paths_not_limited(self) -> None:
        app = _build_app(middlewares=[(WebhookRateLimitMiddleware, {"max_requests": 1, "window_seconds": 60})])
        with TestClient(app) as client:
            assert client.post("/api/line/webhook").status_code == 200
            assert client.post("/api/line/webhook").status_code == 429

            assert client.get("/test").status_code == 200
            assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_cleanup_removes_old_entries(self) -> None:
        mw = WebhookRateLimitMiddleware(_build_app(), max_requests=100, window_seconds=60)

        now = time.time()
        mw._requests["1.2.3.4"] = [now - 120, now - 90, now - 30, now]
        mw._cleanup_window("1.2.3.4", now)

        assert len(mw._requests["1.2.3.4"]) == 2

    @pytest.mark.unit
    def test_cleanup_deletes_empty_ip(self) -> None:
        mw = WebhookRateLimitMiddleware(_build_app(), max_requests=100, window_seconds=60)

        now = time.time()
        mw._requests["1.2.3.4"] = [now - 120]
        mw._cleanup_window("1.2.3.4", now)

        assert "1.2.3.4" not in mw._requests

    @pytest.mark.unit
    def test_429_response_includes_correlation_id(self) -> None:
        app = _build_app(
            middlewares=[
                (WebhookRateLimitMiddleware, {"max_requests": 1, "window_seconds": 60}),
                (CorrelationIdMiddleware, {}),
            ]
        )
        with TestClient(app) as client:
            client.post("/api/line/webhook")
            response = client.post("/api/line/webhook")

            assert response.status_code == 429
            assert "x-correlation-id" in response.headers


class TestAppExceptionHandler:
    """app_exception_handler"""

    @pytest.mark.unit
    async def test_handles_app_exception(self) -> None:
        exc = NotFoundException("session", TEST_USER_ID)

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = f"/api/admin/sessions/{TEST_USER_ID}"

        response = await app_exception_handler(mock_request, exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 404
        assert "x-correlation-id" in response.headers
        assert b"ERR_1002" in response.body

    @pytest.mark.unit
    async def test_handles_validation_exception(self) -> None:
        exc = ValidationException("end_hour must differ from start_hour", field="end_hour")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/admin/report-window"

        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 400

    @pytest.mark.unit
    async def test_conflict_status_is_kept(self) -> None:
        exc = AppException("store already exists", ErrorCode.ALREADY_EXISTS, status_code=409)

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/admin/stores"

        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 409


class TestGenericExceptionHandler:
    """generic_exception_handler"""

    @pytest.mark.unit
    async def test_handles_unexpected_exception(self) -> None:
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/something"

        response = await generic_exception_handler(mock_request, RuntimeError("boom"))

        assert isinstance(response, JSONResponse)
        assert response.status_code == 500
        assert "x-correlation-id" in response.headers

    @pytest.mark.unit
    async def test_does_not_leak_internal_details(self) -> None:
        exc = RuntimeError("database connection failed on host 10.0.0.1")

        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/test"

        body = (await generic_exception_handler(mock_request, exc)).body.decode()

        assert "10.0.0.1" not in body
        assert "database connection" not in body
        assert "ERR_1000" in body


class TestSetupMiddleware:
    """Full application stack"""

    @pytest.mark.unit
    async def test_full_middleware_stack(self, test_client) -> None:
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert "x-correlation-id" in response.headers
