"""
HTTP/1.1 wire codec for tiny_http_client.

Requests are serialized with h11, which also enforces the RFC 7230
grammar for the request line and header fields. Responses are parsed by
ResponseDecoder, an explicit state machine that can be fed arbitrarily
small fragments of input and keeps partial lines and chunks buffered
between calls.
"""

import logging
import re
from enum import Enum
from typing import List, Optional, Tuple

import h11

from .http_primitives import Authority, Headers, Request, find_headers
from .exceptions import (
    EncodingError,
    HeaderTooLarge,
    MalformedChunkSize,
    MalformedHeaderLine,
    MalformedStatusLine,
    ProtocolError,
    TruncatedBody,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_HEADER_BYTES = 64 * 1024
MAX_CHUNK_SIZE_LINE = 4096

# Methods for which an empty body is sent without a Content-Length header
BODILESS_METHODS = frozenset(
    [b"GET", b"HEAD", b"DELETE", b"OPTIONS", b"TRACE", b"CONNECT"]
)

SUPPORTED_VERSIONS = (b"HTTP/1.1", b"HTTP/1.0")

_STATUS_CODE_RE = re.compile(rb"[0-9]{3}")
_REASON_PHRASE_RE = re.compile(rb"[\t\x20-\x7e\x80-\xff]*")
_TOKEN_RE = re.compile(rb"[-!#$%&'*+.^_`|~0-9a-zA-Z]+")
_FORBIDDEN_VALUE_RE = re.compile(rb"[\x00-\x08\x0a-\x1f\x7f]")
_CHUNK_SIZE_RE = re.compile(rb"[0-9a-fA-F]{1,16}")


def encode_request(request: Request, authority: Authority) -> bytes:
    """
    Serialize ``request`` for sending to ``authority``.

    The request line is followed by ``Host`` (unless the caller set one),
    ``Content-Length`` when a body is present or the method normally
    carries one, and then the caller's headers in order.

    Raises:
        EncodingError: If the request cannot be represented on the wire.
    """
    if not request.path:
        raise EncodingError("Request path must not be empty")
    if not request.method:
        raise EncodingError("Request method must not be empty")

    headers: Headers = []
    if not request.has_header(b"host"):
        try:
            headers.append((b"Host", authority.host_header.encode("ascii")))
        except UnicodeEncodeError as e:
            raise EncodingError(f"Host is not ASCII: {authority.host!r}", e) from e

    framed = request.has_header(b"content-length") or request.has_header(b"transfer-encoding")
    if not framed and (request.body or request.method.upper() not in BODILESS_METHODS):
        headers.append((b"Content-Length", str(len(request.body or b"")).encode()))

    headers.extend(request.headers)

    # h11 validates the head and frames the body; its writer hoists Host
    # to the front, so the head itself is written here in header order.
    connection = h11.Connection(h11.CLIENT)
    try:
        event = h11.Request(method=request.method, target=request.path, headers=headers)
        connection.send(event)
        body = b""
        if request.body:
            body += connection.send(h11.Data(data=request.body))
        body += connection.send(h11.EndOfMessage())
    except h11.LocalProtocolError as e:
        raise EncodingError(str(e), e) from e

    lines = [b"%s %s HTTP/1.1" % (event.method, event.target)]
    lines.extend(b"%s: %s" % (name, value) for name, value in event.headers.raw_items())
    return b"\r\n".join(lines) + b"\r\n\r\n" + body


class DecoderState(Enum):
    """States of the response decoder."""
    AWAIT_STATUS_LINE = "await_status_line"
    AWAIT_HEADERS = "await_headers"
    FIXED_BODY = "fixed_body"
    CHUNKED_BODY = "chunked_body"
    CLOSE_DELIMITED_BODY = "close_delimited_body"
    COMPLETE = "complete"


class BodyFraming(Enum):
    """How the end of a response body is recognized."""
    NO_BODY = "no_body"
    CONTENT_LENGTH = "content_length"
    CHUNKED = "chunked"
    CLOSE_DELIMITED = "close_delimited"


class _ChunkPhase(Enum):
    SIZE = "size"
    DATA = "data"
    DATA_END = "data_end"
    TRAILERS = "trailers"


class ResponseDecoder:
    """
    Incremental HTTP/1.1 response parser.

    Feed received bytes with ``feed`` and signal end-of-stream with
    ``feed_eof``. Both return the body fragments decoded by that call.
    Status, headers and framing become available once ``headers_complete``
    is true; the message is done when ``is_complete`` is true.
    """

    def __init__(
        self,
        request_method: bytes = b"GET",
        max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
    ) -> None:
        self._request_method = request_method.upper()
        self._max_header_bytes = max_header_bytes
        self._state = DecoderState.AWAIT_STATUS_LINE
        self._buffer = bytearray()
        self._header_bytes = 0
        self._bytes_received = 0
        self._interim = False
        self._remaining = 0
        self._chunk_phase = _ChunkPhase.SIZE
        self._keep_alive = False

        self.http_version: Optional[bytes] = None
        self.status_code: Optional[int] = None
        self.reason_phrase = b""
        self.headers: Headers = []
        self.trailers: Headers = []
        self.framing: Optional[BodyFraming] = None

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def headers_complete(self) -> bool:
        return self._state not in (
            DecoderState.AWAIT_STATUS_LINE,
            DecoderState.AWAIT_HEADERS,
        )

    @property
    def is_complete(self) -> bool:
        return self._state is DecoderState.COMPLETE

    @property
    def bytes_received(self) -> int:
        """Total number of bytes fed to the decoder."""
        return self._bytes_received

    @property
    def trailing_data(self) -> bytes:
        """Bytes received after the end of the message."""
        if not self.is_complete:
            return b""
        return bytes(self._buffer)

    @property
    def keep_alive(self) -> bool:
        """Whether the connection may carry another request."""
        return self.is_complete and self._keep_alive and not self._buffer

    def feed(self, data: bytes) -> List[bytes]:
        """
        Consume ``data`` and return the body fragments it completed.

        Raises:
            ProtocolError: If the input violates the protocol.
        """
        self._bytes_received += len(data)
        self._buffer += data

        chunks: List[bytes] = []
        while self._state is not DecoderState.COMPLETE and self._step(chunks):
            pass
        return chunks

    def feed_eof(self) -> List[bytes]:
        """
        Signal that the peer closed the connection.

        Raises:
            TruncatedBody: If the body was cut short.
            ProtocolError: If the response head was never completed.
        """
        state = self._state
        if state is DecoderState.COMPLETE:
            return []

        if state is DecoderState.CLOSE_DELIMITED_BODY:
            chunks = [bytes(self._buffer)] if self._buffer else []
            self._buffer.clear()
            self._complete()
            return chunks

        if state is DecoderState.FIXED_BODY:
            raise TruncatedBody(
                f"Connection closed with {self._remaining} body bytes outstanding"
            )

        if state is DecoderState.CHUNKED_BODY:
            raise TruncatedBody("Connection closed before the last chunk")

        raise ProtocolError("Connection closed before the response head was complete")

    def _step(self, chunks: List[bytes]) -> bool:
        """Advance the state machine; False means more input is needed."""
        state = self._state

        if state is DecoderState.AWAIT_STATUS_LINE:
            line = self._next_head_line()
            if line is None:
                return False
            self._parse_status_line(line)
            return True

        if state is DecoderState.AWAIT_HEADERS:
            line = self._next_head_line()
            if line is None:
                return False
            if line:
                self.headers.append(self._parse_field(line))
            else:
                self._end_of_head()
            return True

        if state is DecoderState.FIXED_BODY:
            if not self._buffer:
                return False
            chunks.append(self._take(self._remaining))
            if self._remaining == 0:
                self._complete()
            return True

        if state is DecoderState.CHUNKED_BODY:
            return self._step_chunked(chunks)

        if state is DecoderState.CLOSE_DELIMITED_BODY:
            if self._buffer:
                chunks.append(bytes(self._buffer))
                self._buffer.clear()
            return False

        return False

    def _take(self, limit: int) -> bytes:
        data = bytes(self._buffer[:limit])
        del self._buffer[:len(data)]
        self._remaining -= len(data)
        return data

    def _next_head_line(self) -> Optional[bytes]:
        """Pop one line of the head, or None if it is still incomplete."""
        index = self._buffer.find(b"\n")
        if index == -1:
            if self._header_bytes + len(self._buffer) > self._max_header_bytes:
                raise HeaderTooLarge(self._max_header_bytes)
            return None

        line = bytes(self._buffer[:index])
        del self._buffer[:index + 1]
        self._header_bytes += index + 1
        if self._header_bytes > self._max_header_bytes:
            raise HeaderTooLarge(self._max_header_bytes)

        if line.endswith(b"\r"):
            line = line[:-1]
        return line

    def _parse_status_line(self, line: bytes) -> None:
        parts = line.split(b" ", 2)
        if len(parts) < 2:
            raise MalformedStatusLine(f"Invalid status line: {line!r}")

        version, status = parts[0], parts[1]
        reason = parts[2] if len(parts) == 3 else b""

        if version not in SUPPORTED_VERSIONS:
            raise MalformedStatusLine(f"Unsupported HTTP version: {version!r}")
        if not _STATUS_CODE_RE.fullmatch(status):
            raise MalformedStatusLine(f"Invalid status code: {status!r}")
        status_code = int(status)
        if not 100 <= status_code <= 599:
            raise MalformedStatusLine(f"Status code out of range: {status_code}")
        if not _REASON_PHRASE_RE.fullmatch(reason):
            raise MalformedStatusLine(f"Invalid reason phrase: {reason!r}")

        self.http_version = version
        self.status_code = status_code
        self.reason_phrase = reason
        self._interim = 100 <= status_code < 200 and status_code != 101
        self._state = DecoderState.AWAIT_HEADERS

    def _parse_field(self, line: bytes) -> Tuple[bytes, bytes]:
        if line[:1] in (b" ", b"\t"):
            raise MalformedHeaderLine(f"Obsolete line folding is not supported: {line!r}")

        name, sep, value = line.partition(b":")
        if not sep:
            raise MalformedHeaderLine(f"Missing colon in header line: {line!r}")
        if not _TOKEN_RE.fullmatch(name):
            raise MalformedHeaderLine(f"Invalid header name: {name!r}")

        value = value.strip(b" \t")
        if _FORBIDDEN_VALUE_RE.search(value):
            raise MalformedHeaderLine(f"Invalid characters in value of {name!r}")
        return name, value

    def _end_of_head(self) -> None:
        if self._interim:
            logger.debug(f"Skipping interim response {self.status_code}")
            self.headers = []
            self._interim = False
            self._state = DecoderState.AWAIT_STATUS_LINE
            return

        self.framing = self._determine_framing()
        if self.framing is BodyFraming.NO_BODY:
            self._complete()
        elif self.framing is BodyFraming.CHUNKED:
            self._chunk_phase = _ChunkPhase.SIZE
            self._state = DecoderState.CHUNKED_BODY
        elif self.framing is BodyFraming.CONTENT_LENGTH:
            self._state = DecoderState.FIXED_BODY
            if self._remaining == 0:
                self._complete()
        else:
            self._state = DecoderState.CLOSE_DELIMITED_BODY

    def _determine_framing(self) -> BodyFraming:
        status_code = self.status_code or 0
        if (
            self._request_method == b"HEAD"
            or status_code < 200
            or status_code in (204, 304)
        ):
            return BodyFraming.NO_BODY

        transfer_encodings = find_headers(self.headers, b"transfer-encoding")
        if transfer_encodings:
            codings = [
                coding.strip().lower()
                for value in transfer_encodings
                for coding in value.split(b",")
                if coding.strip()
            ]
            if codings and codings[-1] == b"chunked":
                return BodyFraming.CHUNKED
            return BodyFraming.CLOSE_DELIMITED

        lengths = find_headers(self.headers, b"content-length")
        if lengths:
            values = {item.strip() for value in lengths for item in value.split(b",")}
            if len(values) != 1:
                raise MalformedHeaderLine(f"Conflicting Content-Length values: {sorted(values)!r}")
            value = values.pop()
            if not value.isdigit():
                raise MalformedHeaderLine(f"Invalid Content-Length: {value!r}")
            self._remaining = int(value)
            return BodyFraming.CONTENT_LENGTH

        return BodyFraming.CLOSE_DELIMITED

    def _step_chunked(self, chunks: List[bytes]) -> bool:
        phase = self._chunk_phase

        if phase is _ChunkPhase.SIZE:
            index = self._buffer.find(b"\n")
            if index == -1:
                if len(self._buffer) > MAX_CHUNK_SIZE_LINE:
                    raise MalformedChunkSize("Chunk size line too long")
                return False
            line = bytes(self._buffer[:index]).rstrip(b"\r")
            del self._buffer[:index + 1]

            token = line.split(b";", 1)[0].strip(b" \t")
            if not _CHUNK_SIZE_RE.fullmatch(token):
                raise MalformedChunkSize(f"Invalid chunk size: {token!r}")
            size = int(token, 16)
            if size == 0:
                self._chunk_phase = _ChunkPhase.TRAILERS
            else:
                self._remaining = size
                self._chunk_phase = _ChunkPhase.DATA
            return True

        if phase is _ChunkPhase.DATA:
            if not self._buffer:
                return False
            chunks.append(self._take(self._remaining))
            if self._remaining == 0:
                self._chunk_phase = _ChunkPhase.DATA_END
            return True

        if phase is _ChunkPhase.DATA_END:
            if self._buffer[:2] == b"\r\n":
                del self._buffer[:2]
            elif self._buffer[:1] == b"\n":
                del self._buffer[:1]
            elif self._buffer in (b"", b"\r"):
                return False
            else:
                raise MalformedChunkSize("Chunk data is not followed by CRLF")
            self._chunk_phase = _ChunkPhase.SIZE
            return True

        line = self._next_head_line()
        if line is None:
            return False
        if line:
            self.trailers.append(self._parse_field(line))
        else:
            self._complete()
        return True

    def _complete(self) -> None:
        self._state = DecoderState.COMPLETE

        connection_tokens = {
            token.strip().lower()
            for value in find_headers(self.headers, b"connection")
            for token in value.split(b",")
        }
        self._keep_alive = not (
            self.http_version != b"HTTP/1.1"
            or b"close" in connection_tokens
            or self.framing is BodyFraming.CLOSE_DELIMITED
            or self.status_code == 101
        )
