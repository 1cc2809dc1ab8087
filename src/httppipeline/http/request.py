"""
=============================================================================
HTTP REQUEST
=============================================================================

The parsed request that flows through the pipeline, plus the parser that
builds it from raw socket bytes.

=============================================================================
WHAT THE PIPELINE SEES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          HTTPRequest                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   method        "GET"                    ← from the request line     │
    │   path          "/api/users"             ← query string stripped     │
    │   query_params  {"token": ["123"]}       ← parse_qs output           │
    │   headers       {"user-agent": "..."}    ← keys LOWERCASED           │
    │   body          b'{"name": ...}'         ← exactly Content-Length    │
    │                                                                      │
    │   path_params   {"id": "2"}              ← filled in by the Router   │
    │   attachments   {"validated": {...}}     ← filled in by STAGES       │
    │   deadline      1234.5 (monotonic)       ← stamped by the server     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The attachment bag is how one stage hands derived data to a later one.
ValidationStage, for example, stores the accepted body under a key and the
route handler reads it back instead of re-parsing.

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "Why lowercase header names at parse time?"
A: "RFC 7230 makes field names case-insensitive. Normalizing once means
   every lookup is a plain dict get, and get_header() just lowercases its
   argument. No ambient dynamic attribute access needed."

Q: "How do you stop a request from reading /etc/passwd?"
A: "Reject '..' in the decoded path before routing ever sees it."

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import parse_qs, urlparse, unquote
import re
import json


class HTTPParseError(Exception):
    """
    Raised when raw bytes can't be turned into an HTTPRequest.

    Carries the status the server should answer with:
        400 malformed syntax, 405 unknown method,
        413 too large, 505 unsupported version.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    One inbound call.

    Created per request by the transport, mutated by the router (path_params)
    and by stages (attachments), discarded once the response is sent.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)

    # Per-request scratch space shared between stages
    attachments: Dict[str, Any] = field(default_factory=dict)

    # time.monotonic() value after which the runner gives up (None = no limit)
    deadline: Optional[float] = None

    client_address: tuple[str, int] = ("", 0)

    _body_json: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        # Requests built by hand (tests, embedding) may pass mixed-case keys
        self.headers = {name.lower(): value for name, value in self.headers.items()}
        self.method = self.method.upper()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json; charset=x" → "application/json")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> Optional[str]:
        """
        The User-Agent header, or None when the client didn't send one.

        None rather than "" so callers can tell "absent" apart from
        "present but empty".
        """
        return self.headers.get("user-agent")

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def json(self) -> Any:
        """
        The body decoded as JSON, parsed lazily and cached.

        An empty body yields None.

        Raises:
            HTTPParseError: If the body is not valid JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless told "close";
        HTTP/1.0 closes it unless told "keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter (?a=1&a=2 → "1")."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_query_list(self, name: str) -> list[str]:
        return self.query_params.get(name, [])


class RequestParser:
    """
    Parses raw HTTP/1.1 request bytes into HTTPRequest objects.

        raw bytes
            │
            ├── size check ─────────────► 413
            ├── split at \\r\\n\\r\\n ──────► 400 if missing
            ├── request line ───────────► 400 / 405 / 505
            ├── headers (lowercased, duplicates comma-joined)
            ├── body = Content-Length bytes
            ▼
        HTTPRequest
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Args:
            data: Raw request bytes (headers + body).
            client_address: (ip, port) of the peer, kept for access logs.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        "GET /api/users?token=123 HTTP/1.1"
          → ("GET", "/api/users", {"token": ["123"]}, "HTTP/1.1")
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        "Name: Value" lines → {"name": "Value"}.

        Repeated names are folded into one comma-separated value (RFC 7230
        §3.2.2). Obsolete line folding (continuation lines starting with
        whitespace) is appended to the previous header.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """One-shot convenience wrapper around RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
