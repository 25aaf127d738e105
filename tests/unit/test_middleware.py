"""
Unit Tests - API Middleware
"""
import pytest
from fastapi import Request, Response

from storefront.serving.api.middleware import RateLimitMiddleware


def _request(host: str) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/v1/products",
        "headers": [],
        "client": (host, 40000),
    })


async def _ok(request: Request) -> Response:
    return Response("ok")


class TestRateLimitMiddleware:
    """Tests for the per-client request limiter"""

    @pytest.mark.asyncio
    async def test_blocks_client_over_limit(self):
        limiter = RateLimitMiddleware(app=None, max_requests=1, window_seconds=60)

        first = await limiter.dispatch(_request("10.0.0.1"), _ok)
        second = await limiter.dispatch(_request("10.0.0.1"), _ok)
        other = await limiter.dispatch(_request("10.0.0.2"), _ok)

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Remaining"] == "0"
        assert second.status_code == 429
        assert other.status_code == 200

    def test_idle_clients_are_forgotten(self):
        limiter = RateLimitMiddleware(app=None, max_requests=5, window_seconds=60)
        limiter._requests["10.0.0.1"] = [100.0]
        limiter._requests["10.0.0.2"] = [100.0, 150.0]

        limiter._prune(current_time=170.0)

        assert dict(limiter._requests) == {"10.0.0.2": [150.0]}

    @pytest.mark.asyncio
    async def test_expired_client_can_return(self):
        limiter = RateLimitMiddleware(app=None, max_requests=1, window_seconds=60)
        limiter._requests["10.0.0.1"] = [0.0]

        response = await limiter.dispatch(_request("10.0.0.1"), _ok)

        assert response.status_code == 200
        assert len(limiter._requests["10.0.0.1"]) == 1
