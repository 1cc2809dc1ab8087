"""
=============================================================================
HTTP RESPONSE
=============================================================================

The write-once response object, a fluent builder for it, and one-liner
helpers for the statuses the pipeline emits.

=============================================================================
WRITE-ONCE LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTPResponse LIFECYCLE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   OPEN                               FINALIZED                      │
    │   ────                               ─────────                      │
    │   set_status() ✓                     set_status()  ✗ raises         │
    │   set_header() ✓      ── end() ──►   set_header()  ✗ raises         │
    │   set_body()   ✓                     set_body()    ✗ raises         │
    │   headers[k]=v ✓                     headers[k]=v  ✗ TypeError      │
    │                                      end()         ✗ raises         │
    │                                      to_bytes()    ✓                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The pipeline runner calls end() exactly once per request, on whichever
response terminated the run. Anything that tries to touch the response
after that is a bug, and ResponseFinalizedError makes it loud.

Transport-level headers (Connection, Keep-Alive, Date, Content-Length) are
NOT written into the response. to_bytes() merges them into a copy, so a
finalized response can still be serialized.

=============================================================================
ERROR BODY SHAPE
=============================================================================

Every error helper here produces the same body shape:

    {"message": "Unauthorized: Invalid Token"}

Success bodies are shaped by the route handlers:

    {"message": "User created successfully", "data": {...}}

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "What's the difference between 401 and 403?"
A: "401 means 'I don't know who you are' (bad or missing token).
   403 means 'I know what you are and you're not allowed' (a blocked
   client). 400 is for a request that's simply malformed, like one with
   no User-Agent at all."

Q: "How does the client know where the body ends?"
A: "Content-Length. We always compute it from the final body bytes."

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus
from ..errors import ResponseFinalizedError


@dataclass
class HTTPResponse:
    """
    Outcome of one request: status, headers, body.

    Mutable until end() is called, read-only afterwards.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    _finalized: bool = field(default=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_finalized", False):
            raise ResponseFinalizedError(
                f"Cannot set {name!r}: response already finalized"
            )
        super().__setattr__(name, value)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def finalized(self) -> bool:
        return self._finalized

    def end(self) -> "HTTPResponse":
        """
        Finalize the response. No writes are allowed after this.

        Raises:
            ResponseFinalizedError: If called twice.
        """
        if self._finalized:
            raise ResponseFinalizedError("Response already finalized")
        # Freeze the header mapping so item assignment fails too
        super().__setattr__("headers", MappingProxyType(dict(self.headers)))
        super().__setattr__("_finalized", True)
        return self

    # =========================================================================
    # WRITERS
    # =========================================================================

    def set_status(self, status: HTTPStatus) -> "HTTPResponse":
        self.status = HTTPStatus(status)
        return self

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        if self._finalized:
            raise ResponseFinalizedError(
                f"Cannot set header {name!r}: response already finalized"
            )
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    # =========================================================================
    # READERS
    # =========================================================================

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def json(self) -> Any:
        """Decode a JSON body. Handy in tests and the access log."""
        return json.loads(self.body.decode("utf-8")) if self.body else None

    def to_bytes(
        self,
        server_name: str = "httppipeline/1.0",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> bytes:
        """
        Serialize for the socket.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: application/json; charset=utf-8\\r\\n
            Content-Length: 27\\r\\n         ← auto
            Date: Thu, 15 Jan 2026 ...\\r\\n  ← auto
            Server: httppipeline/1.0\\r\\n    ← auto
            Connection: keep-alive\\r\\n      ← extra_headers (transport)
            \\r\\n
            {"message": "..."}

        Args:
            server_name: Value for the Server header.
            extra_headers: Transport headers merged into the output only.
        """
        response_headers = dict(self.headers)
        if extra_headers:
            response_headers.update(extra_headers)

        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n" + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .json({"message": "User created successfully", "data": user})
            .header("Location", "/api/users/4")
            .build())

    build() hands back an OPEN response. Finalizing is the pipeline
    runner's job.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Serialize `data` as the body.

        ensure_ascii=False keeps non-ASCII names readable instead of
        \\u-escaping them.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    RFC 7231 HTTP-date, always GMT.

    Example: Thu, 15 Jan 2026 12:30:45 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     return ok({"message": "Users fetched successfully", "users": users})
#     return unauthorized("Unauthorized: Invalid Token")
#     return not_found("User not found")
#
# =============================================================================

def json_response(status: HTTPStatus, data: Any) -> HTTPResponse:
    """Any status, JSON body."""
    return ResponseBuilder().status(status).json(data).build()


def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK. dict/list → JSON, str → text (or `content_type`), bytes → raw.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def created(body: Union[dict, list], location: Optional[str] = None) -> HTTPResponse:
    """201 Created, optionally pointing at the new resource."""
    builder = ResponseBuilder().status(HTTPStatus.CREATED).json(body)
    if location:
        builder.header("Location", location)
    return builder.build()


def error_response(status: HTTPStatus, message: str, **extra: Any) -> HTTPResponse:
    """`{"message": ...}` with any extra top-level keys (e.g. errors=[...])."""
    return json_response(status, {"message": message, **extra})


def bad_request(message: str = "Bad Request", **extra: Any) -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message, **extra)


def unauthorized(message: str = "Unauthorized") -> HTTPResponse:
    """
    401 Unauthorized.

    No WWW-Authenticate challenge: the token travels as a query parameter,
    which no standard auth scheme describes.
    """
    return error_response(HTTPStatus.UNAUTHORIZED, message)


def forbidden(message: str = "Forbidden") -> HTTPResponse:
    return error_response(HTTPStatus.FORBIDDEN, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"message": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500. Keep the message generic; details belong in the server log."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def gateway_timeout(message: str = "Gateway Timeout") -> HTTPResponse:
    return error_response(HTTPStatus.GATEWAY_TIMEOUT, message)
