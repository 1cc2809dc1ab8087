"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure a request can hit is one of these classes. Each carries the
HTTP status it maps to, so the single top-level boundary can turn it into
a response without a lookup table.

    ┌──────────────────────────┬────────┬──────────────────────────────────┐
    │ Exception                │ Status │ Surfaced to client?              │
    ├──────────────────────────┼────────┼──────────────────────────────────┤
    │ ClientInputError         │  400   │ yes, with per-field detail       │
    │ AuthenticationError      │  401   │ yes, generic message             │
    │ ForbiddenClientError     │  403   │ yes, generic message             │
    │ NotFoundError            │  404   │ yes                              │
    │ InternalError            │  500   │ generic "Internal Server Error"  │
    │ PipelineError            │  500   │ generic (stage contract broken)  │
    │ LoggingSideEffectError   │   -    │ never, recovered inside Logger   │
    │ ResponseFinalizedError   │   -    │ never, it's a programming error  │
    └──────────────────────────┴────────┴──────────────────────────────────┘

Stages do NOT raise these to reject a request. They return a response.
Route handlers may raise the HTTPError family when that reads better than
building the response by hand (e.g. NotFoundError for a missing id).

=============================================================================
"""

from typing import Any, List, Optional


class HTTPError(Exception):
    """
    Base class for errors that map onto an HTTP status.

    `message` is what the client sees in `{"message": ...}`, so keep it
    free of internals.
    """

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> dict:
        return {"message": self.message}


class ClientInputError(HTTPError):
    """400: the request body or parameters are unusable."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_body(self) -> dict:
        body = super().to_body()
        if self.errors:
            body["errors"] = self.errors
        return body


class AuthenticationError(HTTPError):
    status_code = 401


class ForbiddenClientError(HTTPError):
    status_code = 403


class NotFoundError(HTTPError):
    status_code = 404


class InternalError(HTTPError):
    status_code = 500

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(message)


class PipelineError(InternalError):
    """A stage broke the continue-or-respond contract."""


class LoggingSideEffectError(Exception):
    """Persisting a log record failed. Caught inside the Logger."""


class ResponseFinalizedError(RuntimeError):
    """A response was written to after end()."""
