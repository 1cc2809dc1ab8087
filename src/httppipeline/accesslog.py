"""
=============================================================================
ACCESS LOG
=============================================================================

One line per request on the "httppipeline.access" logger, in either of
two formats:

    TEXT (Apache-style):
    127.0.0.1 - - [15/Jan/2026:12:30:45 +0000] "GET /api/users" 200 187 1.42ms [a1b2c3d4]

    JSON (for log aggregators):
    {"request_id": "a1b2c3d4", "method": "GET", "path": "/api/users", ...}

The request id is also sent back as X-Request-ID so a client can quote
it when reporting a problem.

=============================================================================
INTERVIEW QUESTIONS ABOUT LOGGING
=============================================================================

Q: "What should you NOT log?"
A: "Secrets. The token here travels in the query string, so the access
   log records the path only, never the query."

=============================================================================
"""

from dataclasses import dataclass, asdict
import json
import logging
import time
import uuid

from .http.request import HTTPRequest
from .http.response import HTTPResponse


logger = logging.getLogger("httppipeline.access")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once, at process start."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def new_request_id() -> str:
    """8 hex chars of a uuid4: short enough to read, unique enough per day."""
    return str(uuid.uuid4())[:8]


@dataclass
class RequestLog:
    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms [{self.request_id}]'
        )


class AccessLog:
    """
    Emits RequestLog records.

    Successful requests log at `level`; 4xx and 5xx log at WARNING so they
    stand out when the level is raised.
    """

    def __init__(self, log_format: str = "text", level: int = logging.INFO):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown access log format: {log_format}")
        self.log_format = log_format
        self.level = level

    def record(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        duration_ms: float,
        request_id: str,
    ) -> RequestLog:
        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = logging.WARNING if response.status.is_error else self.level
        if self.log_format == "json":
            logger.log(level, json.dumps(entry.to_dict()))
        else:
            logger.log(level, entry.to_text())
        return entry
