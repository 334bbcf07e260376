"""
Pytest configuration for tiny_http_client tests.

This file contains shared fixtures and configuration
for all tests in the project.
"""

import pytest

from tiny_http_client.http_primitives import Authority
from tiny_http_client.network.mock import MockNetworkBackend, MockNetworkStream


def http_response(
    body: bytes = b"hello",
    status: bytes = b"200 OK",
    headers=None,
) -> bytes:
    """Build a Content-Length framed HTTP/1.1 response."""
    lines = [b"HTTP/1.1 " + status]
    for name, value in headers or []:
        lines.append(name + b": " + value)
    lines.append(b"Content-Length: " + str(len(body)).encode())
    return b"\r\n".join(lines) + b"\r\n\r\n" + body


@pytest.fixture
def authority():
    """Authority used by most tests."""
    return Authority(host="localhost", port=80)


@pytest.fixture
def backend():
    """In-memory network backend."""
    return MockNetworkBackend()


@pytest.fixture
def scripted_stream(backend):
    """Queue a mock stream that answers each write with the next reply."""
    def _create(*replies: bytes, **kwargs) -> MockNetworkStream:
        return backend.add_stream(MockNetworkStream(replies=list(replies), **kwargs))
    return _create


@pytest.fixture
def sample_headers():
    """Sample headers for testing."""
    return [
        (b"Content-Type", b"application/json"),
        (b"Authorization", b"Bearer token123"),
        (b"User-Agent", b"tiny_http_client/0.1.0"),
        (b"Accept", b"*/*"),
    ]


@pytest.fixture
def chunked_response():
    """A chunked response whose decoded body is ``Wikipe``."""
    return (
        b"HTTP/1.1 200 OK\r\n"
        b"Transfer-Encoding: chunked\r\n"
        b"\r\n"
        b"4\r\nWiki\r\n2\r\npe\r\n0\r\n\r\n"
    )
