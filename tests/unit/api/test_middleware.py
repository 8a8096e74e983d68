"""Unit tests — api/middleware.py (RateLimitMiddleware bookkeeping)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from x402_sentinel.api.middleware import RateLimitMiddleware


@pytest.mark.unit
class TestRateLimitWindow:
    def test_limit_per_client(self) -> None:
        limiter = RateLimitMiddleware(MagicMock(), max_per_minute=2)
        with patch("x402_sentinel.api.middleware.time.time", return_value=1000.0):
            assert limiter._is_rate_limited("10.0.0.1") is False
            assert limiter._is_rate_limited("10.0.0.1") is False
            assert limiter._is_rate_limited("10.0.0.1") is True
            assert limiter._is_rate_limited("10.0.0.2") is False

    def test_window_slides(self) -> None:
        limiter = RateLimitMiddleware(MagicMock(), max_per_minute=1)
        with patch("x402_sentinel.api.middleware.time.time", return_value=1000.0):
            assert limiter._is_rate_limited("10.0.0.1") is False
            assert limiter._is_rate_limited("10.0.0.1") is True
        with patch("x402_sentinel.api.middleware.time.time", return_value=1061.0):
            assert limiter._is_rate_limited("10.0.0.1") is False

    def test_idle_clients_are_evicted(self) -> None:
        limiter = RateLimitMiddleware(MagicMock(), max_per_minute=5)
        with patch("x402_sentinel.api.middleware.time.time", return_value=1000.0):
            limiter._is_rate_limited("10.0.0.1")
            limiter._is_rate_limited("10.0.0.2")
        with patch("x402_sentinel.api.middleware.time.time", return_value=1050.0):
            limiter._is_rate_limited("10.0.0.3")
        assert set(limiter._hits) == {"10.0.0.1", "10.0.0.2", "10.0.0.3"}

        with patch("x402_sentinel.api.middleware.time.time", return_value=1100.0):
            limiter._is_rate_limited("10.0.0.4")
        assert set(limiter._hits) == {"10.0.0.3", "10.0.0.4"}
