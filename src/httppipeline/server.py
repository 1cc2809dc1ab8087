"""
=============================================================================
HTTP SERVER
=============================================================================

Socket in, Application.dispatch() in the middle, bytes out.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer (main thread)                                         │
    │       accept() ──► Connection ──► executor.submit(_serve)            │
    │                                                                      │
    │   worker thread: _serve(conn)                                        │
    │       loop:                                                          │
    │         raw = conn.read_request()          None → done               │
    │         request = parser.parse(raw)        error → 4xx/5xx, close    │
    │         response = app.dispatch(request)   always finalized          │
    │         conn.send_response(response.to_bytes(..., transport hdrs))   │
    │         keep-alive? loop : close                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Transport headers (Connection, Keep-Alive, X-Request-ID) are merged in at
serialization. The response itself was finalized by the pipeline and is
never written to again.

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Threads or an event loop?"
A: "Each request is short and mostly blocking socket/file I/O, so a
   fixed pool of threads keeps the code straight-line. The cost is that
   shared state (the agent log, the user store) needs locks."

Q: "How do you shut down gracefully?"
A: "Stop accepting, let in-flight requests finish, then exit. The
   executor's shutdown(wait=True) does the waiting."

=============================================================================
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional
import logging

from .app import Application, create_app
from .config import ServerConfig
from .core.connection import Connection, RequestTooLarge
from .core.socket_server import SocketServer
from .http.request import HTTPParseError, RequestParser
from .http.response import HTTPResponse, error_response
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Serves an Application over HTTP/1.1 with a pool of worker threads.

        server = HTTPServer(create_app(config), config)
        server.run()                 # blocks until SIGINT/SIGTERM

        # tests: run() in a thread, then
        server.wait_until_ready(5)
        host, port = server.address
        server.shutdown()
    """

    def __init__(self, app: Optional[Application] = None, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()
        self.app = app or create_app(self.config)

        self._listener = SocketServer(self.config)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def address(self) -> tuple[str, int]:
        return self._listener.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._listener.wait_until_ready(timeout)

    def run(self) -> None:
        """Serve until shutdown() or a signal."""
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.workers,
            thread_name_prefix="httppipeline-worker",
        )
        logger.info(
            "%s starting with %d workers", self.config.server_name, self.config.workers
        )
        try:
            self._listener.start(self._on_connection)
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self._executor.shutdown(wait=True)
            self._executor = None
            logger.info("Server stopped")

    def shutdown(self) -> None:
        self._listener.shutdown()

    def _on_connection(self, conn: Connection) -> None:
        try:
            self._executor.submit(self._serve, conn)
        except RuntimeError:
            # executor already shutting down
            conn.close()

    def _serve(self, conn: Connection) -> None:
        """Keep-alive loop for one connection (worker thread)."""
        with conn:
            while True:
                try:
                    raw = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    return
                except RequestTooLarge as e:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                    return
                except OSError as e:
                    logger.debug("[%s] Read failed: %s", conn.id, e)
                    return

                if raw is None:
                    return

                try:
                    request = self._parser.parse(raw, conn.address)
                except HTTPParseError as e:
                    self._send_error(conn, HTTPStatus(e.status_code), str(e))
                    return

                response = self.app.dispatch(request)
                keep_alive = self.config.keep_alive and request.is_keep_alive

                transport = {"X-Request-ID": request.attachments.get("request_id", "")}
                if keep_alive:
                    transport["Connection"] = "keep-alive"
                    transport["Keep-Alive"] = f"timeout={int(self.config.keep_alive_timeout)}"
                else:
                    transport["Connection"] = "close"

                if not conn.send_response(response.to_bytes(self.config.server_name, transport)):
                    return
                if not keep_alive:
                    return

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str) -> None:
        """Errors raised before a request reaches the application."""
        response: HTTPResponse = error_response(status, message).end()
        conn.send_response(
            response.to_bytes(self.config.server_name, {"Connection": "close"})
        )
