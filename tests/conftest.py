"""
pytest configuration and fixtures.
"""

import dataclasses
import socket
import threading
from typing import Callable, Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httppipeline import HTTPServer, ServerConfig, create_app
from httppipeline.agentlog import JsonFileStore, MemoryStore, UserAgentLog
from httppipeline.http import HTTPRequest


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request for the users API."""
    return (
        b"GET /api/users?token=123&page=1 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: Mozilla/5.0 (X11; Linux x86_64)\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a valid user body."""
    body = b'{"name": "Dana Scully", "age": 34, "address": "2630 Hegal Place"}'
    return (
        b"POST /api/users?token=123 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: Mozilla/5.0\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


def build_request(
    method: str = "GET",
    path: str = "/",
    query: Optional[dict] = None,
    headers: Optional[dict] = None,
    body: bytes = b"",
) -> HTTPRequest:
    """HTTPRequest built by hand, query values given as plain strings."""
    return HTTPRequest(
        method=method,
        path=path,
        headers=dict(headers or {}),
        query_params={k: [v] for k, v in (query or {}).items()},
        body=body,
        client_address=("127.0.0.1", 50000),
    )


@pytest.fixture
def make_request():
    """Factory fixture: make_request("GET", "/api/users", query={"token": "123"})."""
    return build_request


@pytest.fixture
def memory_log() -> UserAgentLog:
    return UserAgentLog(MemoryStore())


@pytest.fixture
def agent_log_path(tmp_path: Path) -> Path:
    return tmp_path / "agents.json"


@pytest.fixture
def config(agent_log_path: Path) -> ServerConfig:
    """Test configuration: ephemeral port, no blocked agents, temp log file."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        workers=4,
        timeout=5.0,
        log_level="WARNING",
        agent_log_path=str(agent_log_path),
        blocked_user_agents=(),
    )


@pytest.fixture
def app(config: ServerConfig, memory_log: UserAgentLog):
    """The full application, logging agents in memory."""
    return create_app(config, agent_log=memory_log)


class LiveServer:
    """Runs an HTTPServer in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> tuple:
        return self.server.address

    def start(self) -> None:
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self) -> None:
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def request(self, raw: bytes) -> bytes:
        """Send one raw request (should say Connection: close), return the reply."""
        with socket.create_connection(self.address, timeout=5.0) as sock:
            sock.sendall(raw)
            chunks = []
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)


@pytest.fixture
def start_server(config: ServerConfig) -> Generator[Callable[..., LiveServer], None, None]:
    """
    Factory fixture: start_server(timeout=0.5) runs a real server with the
    test config plus overrides. Every server started is stopped afterwards.
    """
    started = []

    def start(**overrides) -> LiveServer:
        server_config = dataclasses.replace(config, **overrides)
        agent_log = UserAgentLog(JsonFileStore(server_config.agent_log_path))
        live = LiveServer(HTTPServer(create_app(server_config, agent_log=agent_log), server_config))
        live.start()
        started.append(live)
        return live

    yield start
    for live in started:
        live.stop()


@pytest.fixture
def live_server(start_server) -> LiveServer:
    """A real server on an ephemeral port, agent log on disk."""
    return start_server()
