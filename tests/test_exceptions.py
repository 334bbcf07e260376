"""
Unit tests for custom exceptions.

Tests the exception hierarchy to ensure proper error handling
and cause tracking.
"""

import pytest

from tiny_http_client.exceptions import (
    HTTPCoreError,
    ConnectionError,
    StalePooledConnection,
    TimeoutError,
    EncodingError,
    ProtocolError,
    MalformedStatusLine,
    MalformedHeaderLine,
    MalformedChunkSize,
    HeaderTooLarge,
    TruncatedBody,
    StreamError,
)


class TestHTTPCoreError:
    """Test base HTTPCoreError class."""

    def test_basic_creation(self) -> None:
        """Test creating basic HTTPCoreError."""
        error = HTTPCoreError("Test error message")
        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.cause is None

    def test_with_cause(self) -> None:
        """Test creating HTTPCoreError with cause."""
        original_error = ValueError("Original error")
        error = HTTPCoreError("Test error message", cause=original_error)
        assert error.message == "Test error message"
        assert error.cause is original_error


class TestConnectionError:
    """Test ConnectionError class."""

    def test_basic_creation(self) -> None:
        """Test creating basic ConnectionError."""
        error = ConnectionError("Connection failed")
        assert error.message == "Connection error: Connection failed"
        assert error.cause is None

    def test_with_cause(self) -> None:
        """Test creating ConnectionError with cause."""
        original_error = OSError("Network unreachable")
        error = ConnectionError("Connection failed", cause=original_error)
        assert "Connection error: Connection failed" in str(error)
        assert error.cause is original_error

    def test_does_not_shadow_builtin_hierarchy(self) -> None:
        """Library errors are not OSErrors."""
        assert not issubclass(ConnectionError, OSError)
        assert issubclass(ConnectionError, HTTPCoreError)

    def test_stale_pooled_connection(self) -> None:
        """Stale connection failures are connection errors."""
        error = StalePooledConnection("Connection 3 was closed by the peer")
        assert isinstance(error, ConnectionError)
        assert "Connection error: Connection 3" in str(error)


class TestTimeoutError:
    """Test TimeoutError class."""

    def test_basic_creation(self) -> None:
        """Test creating basic TimeoutError."""
        error = TimeoutError("Request timed out")
        assert error.message == "Timeout error: Request timed out"
        assert error.timeout is None

    def test_with_timeout(self) -> None:
        """Test that the timeout value is recorded and reported."""
        error = TimeoutError("Request timed out", timeout=2.5)
        assert error.timeout == 2.5
        assert "(timeout: 2.5s)" in str(error)


class TestEncodingError:
    """Test EncodingError class."""

    def test_basic_creation(self) -> None:
        error = EncodingError("Header value contains CRLF")
        assert error.message == "Encoding error: Header value contains CRLF"
        assert isinstance(error, HTTPCoreError)


class TestProtocolError:
    """Test ProtocolError and its refinements."""

    def test_basic_creation(self) -> None:
        """Test creating basic ProtocolError."""
        error = ProtocolError("Invalid HTTP version")
        assert error.message == "Protocol error: Invalid HTTP version"
        assert error.cause is None

    @pytest.mark.parametrize(
        "error_class",
        [MalformedStatusLine, MalformedHeaderLine, MalformedChunkSize, TruncatedBody],
    )
    def test_subclasses(self, error_class) -> None:
        """Every parse failure is a ProtocolError."""
        error = error_class("bad input")
        assert isinstance(error, ProtocolError)
        assert str(error) == "Protocol error: bad input"

    def test_header_too_large(self) -> None:
        """HeaderTooLarge reports the configured limit."""
        error = HeaderTooLarge(1024)
        assert isinstance(error, ProtocolError)
        assert error.limit == 1024
        assert "Response head exceeds 1024 bytes" in str(error)


class TestStreamError:
    """Test StreamError class."""

    def test_basic_creation(self) -> None:
        """Test creating basic StreamError."""
        error = StreamError("Stream closed")
        assert error.message == "Stream error: Stream closed"
        assert isinstance(error, HTTPCoreError)
