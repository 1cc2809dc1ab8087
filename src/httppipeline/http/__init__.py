"""
=============================================================================
HTTP MESSAGES AND ROUTING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       raw bytes → HTTPRequest (+ attachment bag)         │
    │ response.py      write-once HTTPResponse, builder, helpers          │
    │ router.py        (method, path) → route stages → handler            │
    │ status_codes.py  the statuses this server emits                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .status_codes import HTTPStatus
from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    json_response,
    ok,
    created,
    error_response,
    bad_request,
    unauthorized,
    forbidden,
    not_found,
    method_not_allowed,
    internal_error,
    gateway_timeout,
)
from .router import Router, Route, RouteMatch

__all__ = [
    "HTTPStatus",
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "json_response",
    "ok",
    "created",
    "error_response",
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "gateway_timeout",
    "Router",
    "Route",
    "RouteMatch",
]
