"""
HTTP primitives for tiny_http_client.

This module defines the core data structures for HTTP requests and responses
and the authority that identifies where a request is sent. All classes are
immutable to simplify reasoning about connection reuse.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
    NamedTuple,
    TYPE_CHECKING,
)
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from .network.utils import normalize_host, validate_port

if TYPE_CHECKING:
    from .streams import ResponseStream  # Forward reference


# Type aliases for better readability
Headers = List[Tuple[bytes, bytes]]
StatusCode = int

DEFAULT_PORTS = {"http": 80, "https": 443}


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode()
    return value


def find_headers(headers: Headers, name: Union[str, bytes]) -> List[bytes]:
    """Return every value of ``name`` (case-insensitive), in order."""
    name_lower = _to_bytes(name).lower()
    return [value for header_name, value in headers if header_name.lower() == name_lower]


@dataclass(frozen=True)
class Authority:
    """
    The host and port a request is sent to.

    Authorities are hashable and serve as the key under which
    pooled connections are kept.
    """

    host: str
    port: int
    scheme: str = "http"

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host:
            raise ValueError("host must be a non-empty string")
        if self.scheme not in DEFAULT_PORTS:
            raise ValueError(f"Unsupported scheme: {self.scheme}")
        object.__setattr__(self, "port", validate_port(self.port))
        object.__setattr__(self, "host", normalize_host(self.host))

    @classmethod
    def create(cls, host: str, port: Optional[int] = None, scheme: str = "http") -> "Authority":
        """Create an Authority, falling back to the scheme's default port."""
        if port is None:
            port = DEFAULT_PORTS.get(scheme, 80)
        return cls(host=host, port=port, scheme=scheme)

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"

    @property
    def host_header(self) -> str:
        """Value of the ``Host`` header for requests to this authority."""
        host = self.host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        if self.port == DEFAULT_PORTS[self.scheme]:
            return host
        return f"{host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


class URLComponents(NamedTuple):
    """Immutable representation of an already-parsed request target."""
    scheme: str
    host: str
    port: int
    path: str
    query: str = ""

    @classmethod
    def from_url(cls, url: str) -> "URLComponents":
        """Create URLComponents from a URL string."""
        parsed = urlsplit(url)
        scheme = parsed.scheme or "http"
        if scheme not in DEFAULT_PORTS:
            raise ValueError(f"Unsupported URL scheme: {scheme}")
        host = parsed.hostname or ""
        if not host:
            raise ValueError(f"No hostname found in URL: {url}")
        port = parsed.port or DEFAULT_PORTS[scheme]
        path = parsed.path or "/"

        return cls(scheme=scheme, host=host, port=port, path=path, query=parsed.query)

    @property
    def target(self) -> bytes:
        """Absolute path plus query, as sent on the request line."""
        target = self.path
        if self.query:
            target += "?" + self.query
        return target.encode()

    @property
    def authority(self) -> Authority:
        return Authority(host=self.host, port=self.port, scheme=self.scheme)


@dataclass(frozen=True)
class Request:
    """
    Immutable HTTP request representation.

    ``path`` holds the absolute path plus query. Headers keep their
    insertion order and are emitted verbatim; duplicates are allowed.
    Once created, the request cannot be modified - any changes
    must create a new Request instance.
    """

    method: bytes
    path: bytes
    headers: Headers = field(default_factory=list)
    body: Optional[bytes] = None

    def __post_init__(self) -> None:
        """Validate request data after initialization."""
        if not isinstance(self.method, bytes):
            raise ValueError("method must be bytes")

        if not isinstance(self.path, bytes):
            raise ValueError("path must be bytes")

        if not isinstance(self.headers, list):
            raise ValueError("headers must be a list")

        for name, value in self.headers:
            if not isinstance(name, bytes) or not isinstance(value, bytes):
                raise ValueError("header names and values must be bytes")

        if self.body is not None and not isinstance(self.body, bytes):
            raise ValueError("body must be bytes or None")

    @classmethod
    def create(
        cls,
        method: Union[str, bytes],
        path: Union[str, bytes] = b"/",
        headers: Optional[List[Tuple[Union[str, bytes], Union[str, bytes]]]] = None,
        body: Optional[Union[str, bytes]] = None,
    ) -> "Request":
        """
        Create a Request with proper type conversion.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: Absolute path plus query string
            headers: Optional list of (name, value) header tuples
            body: Optional request body

        Returns:
            New Request instance
        """
        converted = [(_to_bytes(name), _to_bytes(value)) for name, value in headers or []]
        return cls(
            method=_to_bytes(method).upper(),
            path=_to_bytes(path),
            headers=converted,
            body=_to_bytes(body) if body is not None else None,
        )

    def with_method(self, method: Union[str, bytes]) -> "Request":
        """Create a new request with a different method."""
        return Request(method=_to_bytes(method), path=self.path, headers=self.headers, body=self.body)

    def with_headers(self, headers: Headers) -> "Request":
        """Create a new request with different headers."""
        return Request(method=self.method, path=self.path, headers=headers, body=self.body)

    def with_body(self, body: Optional[bytes]) -> "Request":
        """Create a new request with a different body."""
        return Request(method=self.method, path=self.path, headers=self.headers, body=body)

    def add_header(self, name: Union[str, bytes], value: Union[str, bytes]) -> "Request":
        """Add a header to the request."""
        new_headers = self.headers + [(_to_bytes(name), _to_bytes(value))]
        return Request(method=self.method, path=self.path, headers=new_headers, body=self.body)

    def get_header(self, name: Union[str, bytes]) -> Optional[bytes]:
        """Get the first value of a header (case-insensitive)."""
        values = find_headers(self.headers, name)
        return values[0] if values else None

    def has_header(self, name: Union[str, bytes]) -> bool:
        """Check if a header exists (case-insensitive)."""
        return bool(find_headers(self.headers, name))


@dataclass(frozen=True)
class Response:
    """
    Immutable HTTP response representation.

    A buffered response carries its whole body in ``body``. A streamed
    response has an empty ``body`` and exposes the payload through
    ``stream``, which can be consumed exactly once.
    """

    status_code: StatusCode
    reason_phrase: bytes = b""
    headers: Headers = field(default_factory=list)
    body: bytes = b""
    http_version: bytes = b"HTTP/1.1"
    stream: Optional["ResponseStream"] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate response data after initialization."""
        if not isinstance(self.status_code, int):
            raise ValueError("status_code must be int")

        if not 100 <= self.status_code <= 599:
            raise ValueError(f"status_code out of range: {self.status_code}")

        if not isinstance(self.headers, list):
            raise ValueError("headers must be a list")

        for name, value in self.headers:
            if not isinstance(name, bytes) or not isinstance(value, bytes):
                raise ValueError("header names and values must be bytes")

        if not isinstance(self.body, bytes):
            raise ValueError("body must be bytes")

        if not isinstance(self.extensions, dict):
            raise ValueError("extensions must be a dict")

    def get_header(self, name: Union[str, bytes]) -> Optional[bytes]:
        """Get a header value by name (case-insensitive)."""
        values = find_headers(self.headers, name)
        return values[0] if values else None

    def get_headers(self, name: Union[str, bytes]) -> List[bytes]:
        """Get every value of a repeated header, in order."""
        return find_headers(self.headers, name)

    def has_header(self, name: Union[str, bytes]) -> bool:
        """Check if a header exists (case-insensitive)."""
        return self.get_header(name) is not None

    def text(self, encoding: str = "utf-8") -> str:
        """Decode the buffered body."""
        return self.body.decode(encoding, errors="replace")

    @property
    def is_streaming(self) -> bool:
        return self.stream is not None
