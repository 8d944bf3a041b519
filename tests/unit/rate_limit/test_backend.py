"""Tests for rate limiting backend."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from backoffice.core.rate_limit.backend import (
    RateLimitResult,
    SlidingWindowRateLimiter,
    request_identifier,
)


def _mock_redis(mock_redis: MagicMock, zcard: int) -> MagicMock:
    # Pipeline commands are queued synchronously; only execute() is awaited
    mock_pipeline = MagicMock()
    mock_pipeline.execute = AsyncMock(return_value=[0, True, zcard, True])
    mock_pipeline.__aenter__ = AsyncMock(return_value=mock_pipeline)
    mock_pipeline.__aexit__ = AsyncMock(return_value=None)

    mock_client = MagicMock()
    mock_client.pipeline = MagicMock(return_value=mock_pipeline)
    mock_redis.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_redis.return_value.__aexit__ = AsyncMock(return_value=None)
    return mock_pipeline


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter class."""

    def test_build_key_basic(self):
        """Test basic key building without endpoint."""
        limiter = SlidingWindowRateLimiter(prefix="ratelimit")
        assert limiter._build_key("user:123") == "ratelimit:user:123"

    def test_build_key_with_endpoint(self):
        """Test key building with endpoint."""
        limiter = SlidingWindowRateLimiter(prefix="ratelimit")
        key = limiter._build_key("user:123", "/api/v1/users")
        assert key == "ratelimit:user:123:api_v1_users"

    def test_build_key_custom_prefix(self):
        """Test key building with custom prefix."""
        limiter = SlidingWindowRateLimiter(prefix="custom")
        assert limiter._build_key("ip:192.168.1.1") == "custom:ip:192.168.1.1"

    @pytest.mark.asyncio
    async def test_is_allowed_under_limit(self):
        """Test that requests under limit are allowed."""
        limiter = SlidingWindowRateLimiter()

        with patch("backoffice.core.rate_limit.backend.redis_client") as mock_redis:
            pipeline = _mock_redis(mock_redis, zcard=1)

            result = await limiter.is_allowed(identifier="user:123", limit=100, window=60)

        assert result.allowed is True
        assert result.limit == 100
        assert result.remaining == 99
        assert result.retry_after is None
        pipeline.expire.assert_called_once_with("ratelimit:user:123", 60)

    @pytest.mark.asyncio
    async def test_is_allowed_over_limit(self):
        """Test that requests over limit are denied."""
        limiter = SlidingWindowRateLimiter()

        with patch("backoffice.core.rate_limit.backend.redis_client") as mock_redis:
            _mock_redis(mock_redis, zcard=101)

            result = await limiter.is_allowed(identifier="user:123", limit=100, window=60)

        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after == 60

    @pytest.mark.asyncio
    async def test_window_slides_against_real_store(self, redis):
        """Hits older than the window stop counting."""
        limiter = SlidingWindowRateLimiter()

        for _ in range(3):
            assert (await limiter.is_allowed("ip:1.2.3.4", limit=3, window=60)).allowed
        assert not (await limiter.is_allowed("ip:1.2.3.4", limit=3, window=60)).allowed
        assert await limiter.get_current_count("ip:1.2.3.4", window=60) == 4

        assert await limiter.reset("ip:1.2.3.4") is True
        assert (await limiter.is_allowed("ip:1.2.3.4", limit=3, window=60)).allowed


class TestRateLimitResult:
    """Tests for RateLimitResult dataclass."""

    def test_allowed_headers(self):
        """Allowed results carry no Retry-After header."""
        result = RateLimitResult(allowed=True, limit=100, remaining=95, reset_time=1234567890)

        assert result.headers() == {
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "95",
            "X-RateLimit-Reset": "1234567890",
        }

    def test_denied_headers(self):
        result = RateLimitResult(
            allowed=False, limit=100, remaining=0, reset_time=1234567890, retry_after=30
        )

        assert result.headers()["Retry-After"] == "30"


class TestRequestIdentifier:
    def test_prefers_authenticated_user(self):
        request = MagicMock()
        request.state.user_id = "abc"
        assert request_identifier(request) == "user:abc"

    def test_falls_back_to_client_ip(self):
        request = MagicMock()
        request.state.user_id = None
        with patch(
            "backoffice.core.rate_limit.backend.get_client_ip", return_value="10.1.2.3"
        ):
            assert request_identifier(request) == "ip:10.1.2.3"
