"""Tests for the retry decorator."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
from aiohttp.client_exceptions import ClientResponseError

from campus_feed.storage.error_handler import (
    DEFAULT_RETRY_AFTER_SEC,
    retry_after_seconds,
    with_exponential_backoff,
)


class MockRequestInfo:
    def __init__(self, url="http://example.com/rest/v1/votes"):
        self.real_url = url


def _response_error(status, headers=None):
    error = ClientResponseError(
        request_info=MockRequestInfo(),
        history=(),
        status=status,
        message=f"HTTP {status}",
    )
    error.headers = headers
    return error


class TestRetryAfter(unittest.TestCase):
    """Test cases for retry_after_seconds."""

    def test_header_value(self):
        self.assertEqual(retry_after_seconds(_response_error(429, {"Retry-After": "2"})), 2.0)

    def test_missing_or_bad_header(self):
        """Test the default is used when the header is absent or unparsable."""
        self.assertEqual(retry_after_seconds(_response_error(429)), DEFAULT_RETRY_AFTER_SEC)
        self.assertEqual(
            retry_after_seconds(_response_error(429, {"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"})),
            DEFAULT_RETRY_AFTER_SEC,
        )


class TestWithExponentialBackoff(unittest.TestCase):
    """Test cases for the with_exponential_backoff decorator."""

    def test_successful_call(self):
        """Test decorator with a successful function call."""
        mock_func = AsyncMock(return_value=[{"id": "p1"}])
        decorated_func = with_exponential_backoff()(mock_func)

        result = asyncio.run(decorated_func("posts", params={"limit": "1"}))

        mock_func.assert_called_once_with("posts", params={"limit": "1"})
        self.assertEqual(result, [{"id": "p1"}])

    def test_retry_on_5xx_error(self):
        """Test decorator retries on 5xx errors."""
        mock_func = AsyncMock(side_effect=[_response_error(503), "success"])
        mock_exporter = MagicMock()
        decorated_func = with_exponential_backoff(
            initial_backoff=0.1, prometheus_exporter=mock_exporter
        )(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            result = asyncio.run(decorated_func())

        mock_sleep.assert_called_once_with(0.1)
        mock_exporter.record_api_error.assert_called_once_with("5xx")
        self.assertEqual(result, "success")

    def test_max_retries_exceeded(self):
        """Test decorator raises once retries are used up, backing off each time."""
        mock_func = AsyncMock(side_effect=_response_error(500))
        decorated_func = with_exponential_backoff(
            max_retries=2, initial_backoff=0.1, backoff_factor=2.0
        )(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            with self.assertRaises(ClientResponseError):
                asyncio.run(decorated_func())

        calls = [call[0][0] for call in mock_sleep.call_args_list]
        self.assertEqual(calls, [0.1, 0.2])
        self.assertEqual(mock_func.call_count, 3)

    def test_backoff_capped(self):
        """Test the backoff never exceeds max_backoff."""
        mock_func = AsyncMock(side_effect=[_response_error(500)] * 4 + ["ok"])
        decorated_func = with_exponential_backoff(
            max_retries=4, initial_backoff=1.0, max_backoff=3.0, backoff_factor=2.0
        )(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            asyncio.run(decorated_func())

        calls = [call[0][0] for call in mock_sleep.call_args_list]
        self.assertEqual(calls, [1.0, 2.0, 3.0, 3.0])

    def test_handle_429_with_retry_after(self):
        """Test 429 responses wait for Retry-After before retrying."""
        mock_func = AsyncMock(side_effect=[_response_error(429, {"Retry-After": "1"}), "success"])
        decorated_func = with_exponential_backoff()(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            result = asyncio.run(decorated_func())

        mock_sleep.assert_called_once_with(1.0)
        self.assertEqual(result, "success")

    def test_client_error_not_retried(self):
        """Test 4xx errors other than 429 are raised immediately."""
        mock_func = AsyncMock(side_effect=_response_error(401))
        mock_exporter = MagicMock()
        decorated_func = with_exponential_backoff(prometheus_exporter=mock_exporter)(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            with self.assertRaises(ClientResponseError):
                asyncio.run(decorated_func())

        mock_sleep.assert_not_called()
        mock_func.assert_called_once()
        mock_exporter.record_api_error.assert_called_once_with("4xx")

    def test_retry_on_connection_error(self):
        """Test connection errors and timeouts are retried."""
        mock_func = AsyncMock(
            side_effect=[aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), "success"]
        )
        decorated_func = with_exponential_backoff(initial_backoff=0.5)(mock_func)

        with patch("asyncio.sleep", AsyncMock()) as mock_sleep:
            result = asyncio.run(decorated_func())

        calls = [call[0][0] for call in mock_sleep.call_args_list]
        self.assertEqual(calls, [0.5, 1.0])
        self.assertEqual(result, "success")


if __name__ == "__main__":
    unittest.main()
