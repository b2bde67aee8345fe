"""
Tests for error classification functions.

Tests classify_http_error and classify_exception for correct routing
of upload errors to retry (TransientError) or the terminal failed state
(PermanentError).
"""

import pytest
from unittest.mock import MagicMock

import httpx

from validation.errors import classify_http_error, classify_exception
from worker.errors import TransientError, PermanentError


class TestClassifyHttpError:
    """Tests for classify_http_error function."""

    # =========================================================================
    # Transient (retry-able) codes
    # =========================================================================

    @pytest.mark.parametrize("status_code", [408, 429, 500, 502, 503, 504])
    def test_transient_codes_return_transient_error(self, status_code):
        """Known transient status codes return TransientError."""
        assert classify_http_error(status_code) is TransientError

    # =========================================================================
    # Permanent (non-retry-able) codes
    # =========================================================================

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 405, 409, 410, 413, 422])
    def test_permanent_codes_return_permanent_error(self, status_code):
        """Known permanent status codes return PermanentError."""
        assert classify_http_error(status_code) is PermanentError

    # =========================================================================
    # Unknown codes
    # =========================================================================

    @pytest.mark.parametrize("status_code", [402, 415, 418, 451])
    def test_unknown_4xx_returns_permanent(self, status_code):
        assert classify_http_error(status_code) is PermanentError

    @pytest.mark.parametrize("status_code", [501, 507, 599])
    def test_unknown_5xx_returns_transient(self, status_code):
        assert classify_http_error(status_code) is TransientError

    @pytest.mark.parametrize("status_code", [100, 302, 304])
    def test_unexpected_codes_return_transient(self, status_code):
        """Unexpected codes (1xx, 3xx) return TransientError (safe fallback)."""
        assert classify_http_error(status_code) is TransientError


class TestClassifyException:
    """Tests for classify_exception function."""

    # =========================================================================
    # Already classified exceptions
    # =========================================================================

    def test_already_transient_returns_transient(self):
        assert classify_exception(TransientError("Already transient")) is TransientError

    def test_already_permanent_returns_permanent(self):
        assert classify_exception(PermanentError("Already permanent")) is PermanentError

    # =========================================================================
    # Local content errors - permanent
    # =========================================================================

    @pytest.mark.parametrize("exc", [
        FileNotFoundError("gone"),
        IsADirectoryError("a directory"),
        PermissionError("denied"),
    ])
    def test_content_errors_are_permanent(self, exc):
        """Content that can't be read won't become readable on retry."""
        assert classify_exception(exc) is PermanentError

    # =========================================================================
    # Network errors - transient
    # =========================================================================

    @pytest.mark.parametrize("exc", [
        ConnectionError("refused"),
        ConnectionResetError("reset"),
        BrokenPipeError("broken pipe"),
        TimeoutError("timed out"),
        OSError("network unreachable"),
    ])
    def test_network_errors_are_transient(self, exc):
        assert classify_exception(exc) is TransientError

    # =========================================================================
    # Validation errors - permanent
    # =========================================================================

    @pytest.mark.parametrize("exc", [
        ValueError("bad"),
        TypeError("bad"),
        KeyError("missing"),
        AttributeError("missing"),
    ])
    def test_validation_errors_are_permanent(self, exc):
        assert classify_exception(exc) is PermanentError

    def test_unknown_exception_is_transient(self):
        assert classify_exception(RuntimeError("unexpected")) is TransientError

    # =========================================================================
    # HTTP response exceptions
    # =========================================================================

    def test_exception_with_response_uses_status_code(self):
        exc = Exception("HTTP error")
        exc.response = MagicMock()
        exc.response.status_code = 503

        assert classify_exception(exc) is TransientError

    def test_exception_with_4xx_response_is_permanent(self):
        exc = Exception("HTTP error")
        exc.response = MagicMock()
        exc.response.status_code = 404

        assert classify_exception(exc) is PermanentError

    def test_httpx_status_error(self):
        """httpx.HTTPStatusError carries its response."""
        request = httpx.Request("POST", "https://uploads.example.com/v1")
        response = httpx.Response(413, request=request)
        exc = httpx.HTTPStatusError("too large", request=request, response=response)

        assert classify_exception(exc) is PermanentError

    def test_exception_with_none_response_is_transient(self):
        exc = Exception("HTTP error")
        exc.response = None

        assert classify_exception(exc) is TransientError

    def test_exception_with_response_no_status_code_is_transient(self):
        exc = Exception("HTTP error")
        exc.response = MagicMock(spec=[])  # No status_code attribute

        assert classify_exception(exc) is TransientError


class TestClassifyHttpErrorLogging:
    """Tests for logging in classify_http_error."""

    def test_transient_code_logs_debug(self, mocker):
        mock_logger = mocker.patch("validation.errors.logger")
        classify_http_error(503)
        mock_logger.debug.assert_called_once()
        assert "503" in mock_logger.debug.call_args[0][0]
        assert "transient" in mock_logger.debug.call_args[0][0].lower()

    def test_permanent_code_logs_debug(self, mocker):
        mock_logger = mocker.patch("validation.errors.logger")
        classify_http_error(404)
        mock_logger.debug.assert_called_once()
        assert "permanent" in mock_logger.debug.call_args[0][0].lower()


class TestClassifyExceptionLogging:
    """Tests for logging in classify_exception."""

    def test_content_error_logs_debug(self, mocker):
        mock_logger = mocker.patch("validation.errors.logger")
        classify_exception(FileNotFoundError("gone"))
        mock_logger.debug.assert_called_once()
        assert "FileNotFoundError" in mock_logger.debug.call_args[0][0]

    def test_network_error_logs_debug(self, mocker):
        mock_logger = mocker.patch("validation.errors.logger")
        classify_exception(ConnectionError("test"))
        mock_logger.debug.assert_called_once()
        assert "transient" in mock_logger.debug.call_args[0][0].lower()
