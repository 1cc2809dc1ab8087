"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server actually emits, as an IntEnum.

Every pipeline outcome maps onto exactly one of these:

    ┌───────────┬──────────────────────────────────────────────────────────┐
    │  Code     │  Who produces it                                         │
    ├───────────┼──────────────────────────────────────────────────────────┤
    │  200      │  Route handler (read)                                    │
    │  201      │  Route handler (create)                                  │
    │  400      │  ValidationStage, UserAgentCheckStage (missing header),  │
    │           │  request parser                                          │
    │  401      │  TokenCheckStage                                         │
    │  403      │  UserAgentCheckStage (blocked client)                    │
    │  404      │  Router (no route), handlers (unknown id)                │
    │  405      │  Router (path exists, wrong method)                      │
    │  500      │  Top-level error boundary                                │
    │  504      │  Pipeline runner (deadline exceeded)                     │
    └───────────┴──────────────────────────────────────────────────────────┘

Using IntEnum means `HTTPStatus.OK == 200` is True, so statuses compare
naturally with plain integers in tests and logs.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """HTTP status codes used by the server."""

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    GATEWAY_TIMEOUT = 504
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 401 Unauthorized
                     ─── ────────────
                      │        │
                      │        └── phrase
                      └─────────── code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        """True for 4xx and 5xx. The access log uses this to pick a level."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
