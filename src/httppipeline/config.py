"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every knob the server and its pipeline read, in one dataclass.

=============================================================================
SOURCES, HIGHEST PRIORITY FIRST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   1. Command-line flags      httppipeline --port 4000               │
    │   2. Environment variables   PORT=4000 httppipeline                 │
    │   3. Defaults below                                                 │
    └─────────────────────────────────────────────────────────────────────┘

The CLI (__main__.py) starts from from_env() and overrides what it was
given, then calls validate() before anything binds a socket.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    PORT                 listen port (Node/Heroku convention)
    HTTP_HOST            bind address
    HTTP_WORKERS         worker threads
    HTTP_TIMEOUT         socket timeout, seconds
    HTTP_LOG_LEVEL       DEBUG / INFO / WARNING / ERROR
    HTTP_LOG_FORMAT      text / json  (access log)
    API_TOKEN            value the ?token= query parameter must equal
    AGENT_LOG_PATH       JSON file the User-Agent log is written to
    AGENT_LOG_EXTENDED   "1"/"true" → {"agent", "timestamp"} entries
    BLOCKED_USER_AGENTS  comma-separated substrings, "" blocks nothing
    PIPELINE_TIMEOUT     per-request deadline, seconds ("" or 0 = none)

=============================================================================
INTERVIEW QUESTIONS ABOUT CONFIGURATION
=============================================================================

Q: "When do you validate configuration?"
A: "At startup, eagerly. A bad port should stop the process before it
   accepts a single connection, not surface as a 500 an hour later."

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .pipeline.stages import DEFAULT_BLOCKED_AGENTS


_TRUTHY = {"1", "true", "yes", "on"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_timeout(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return default
    if not raw.strip():
        return None
    value = float(raw)
    return value if value > 0 else None


@dataclass
class ServerConfig:
    """
    Configuration for the server and its request pipeline.

        ServerConfig(port=0, api_token="secret", blocked_user_agents=())
    """

    # NETWORK

    host: str = "127.0.0.1"

    port: int = 3000
    """0 asks the OS for a free port (tests)."""

    backlog: int = 128

    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None blocks forever."""

    # HTTP

    keep_alive: bool = True

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024

    # WORKERS

    workers: int = 8
    """Size of the thread pool that runs requests."""

    # LOGGING

    log_level: str = "INFO"

    log_format: str = "text"
    """Access log format: 'text' (Apache style) or 'json'."""

    server_name: str = "httppipeline/1.0"

    # PIPELINE

    api_token: str = "123"
    """Expected ?token= value for /api routes."""

    agent_log_path: str = "user_agents.json"

    agent_log_extended: bool = False

    blocked_user_agents: tuple[str, ...] = field(default=DEFAULT_BLOCKED_AGENTS)
    """Case-insensitive substrings refused with 403 on /api routes."""

    pipeline_timeout: Optional[float] = 10.0
    """Seconds a request may spend in stages + handler. None = no limit."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Configuration from environment variables, defaults for the rest.

            PORT=4000 API_TOKEN=secret python -m httppipeline
        """
        defaults = cls()
        return cls(
            host=os.getenv("HTTP_HOST", defaults.host),
            port=int(os.getenv("PORT", str(defaults.port))),
            workers=int(os.getenv("HTTP_WORKERS", str(defaults.workers))),
            timeout=float(os.getenv("HTTP_TIMEOUT", str(defaults.timeout))),
            log_level=os.getenv("HTTP_LOG_LEVEL", defaults.log_level).upper(),
            log_format=os.getenv("HTTP_LOG_FORMAT", defaults.log_format).lower(),
            api_token=os.getenv("API_TOKEN", defaults.api_token),
            agent_log_path=os.getenv("AGENT_LOG_PATH", defaults.agent_log_path),
            agent_log_extended=_env_bool("AGENT_LOG_EXTENDED", defaults.agent_log_extended),
            blocked_user_agents=_env_list("BLOCKED_USER_AGENTS", defaults.blocked_user_agents),
            pipeline_timeout=_env_timeout("PIPELINE_TIMEOUT", defaults.pipeline_timeout),
        )

    def validate(self) -> None:
        """
        Fail fast on nonsense values.

        Raises:
            ValueError: Naming the first bad setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.workers < 1:
            raise ValueError("workers must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.pipeline_timeout is not None and self.pipeline_timeout <= 0:
            raise ValueError("pipeline_timeout must be > 0 or None")

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")

        if not self.api_token:
            raise ValueError("api_token must not be empty")
