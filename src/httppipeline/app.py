"""
=============================================================================
APPLICATION
=============================================================================

Ties the stage runner, the router and the error boundary together. The
transport hands every parsed request to Application.dispatch() and gets
back one finalized response. Nothing raises past this point.

=============================================================================
REQUEST PATH
=============================================================================

    dispatch(request)
        │
        ├── stamp deadline (now + pipeline_timeout)
        │
        ├── runner.run(request, router.handle)
        │       │
        │       ├── mounted stages        /api: TokenCheck → UserAgentCheck
        │       └── router.handle         route stages → handler
        │
        ├── ERROR BOUNDARY
        │       HTTPError      → {"message": ...} with its own status
        │       InternalError  → 500, traceback to the server log
        │       anything else  → 500, traceback to the server log
        │
        └── access log line

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "Where should exceptions be turned into HTTP responses?"
A: "In exactly one place, at the outermost layer. Stages and handlers
   either return a response or raise. One boundary decides what the
   client sees and what goes to the log, so a 500 never leaks a
   stack trace and a 404 never gets logged as a crash."

=============================================================================
"""

from typing import Any, Callable, Optional, Union
import logging
import time

from .accesslog import AccessLog, new_request_id
from .agentlog import JsonFileStore, UserAgentLog
from .config import ServerConfig
from .errors import HTTPError, InternalError
from .handlers import DEFAULT_USERS, UserRepository, register_page_routes, register_user_routes
from .http.request import HTTPParseError, HTTPRequest
from .http.response import HTTPResponse, error_response, internal_error
from .http.router import Router
from .pipeline.base import Stage
from .pipeline.runner import PipelineRunner
from .pipeline.stages import TokenCheckStage, UserAgentCheckStage


logger = logging.getLogger(__name__)


class Application:
    """
    Stages + routes + error boundary.

        app = Application()
        app.use(TokenCheckStage("123"), path="/api")

        @app.router.get("/api/ping")
        def ping(request):
            return ok({"message": "pong"})

        response = app.dispatch(request)    # always finalized

    Args:
        router: Route table (a new one if omitted).
        access_log: Where request lines go (text format if omitted).
        pipeline_timeout: Per-request deadline in seconds, None for none.
        clock: Monotonic clock shared with the runner and every route
            runner. Defaults to the router's clock, or time.monotonic.

    Raises:
        ValueError: If both `router` and `clock` are given and the router
            runs on a different clock.
    """

    def __init__(
        self,
        router: Optional[Router] = None,
        access_log: Optional[AccessLog] = None,
        pipeline_timeout: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if router is None:
            router = Router(clock=clock or time.monotonic)
        elif clock is not None and router.clock is not clock:
            raise ValueError("router and application must share one clock")
        clock = router.clock

        self.router = router
        self.runner = PipelineRunner(clock=clock)
        self.access_log = access_log or AccessLog()
        self.pipeline_timeout = pipeline_timeout
        self._clock = clock

        # Set by create_app()
        self.agent_log: Optional[UserAgentLog] = None
        self.repository: Optional[UserRepository] = None

    def use(self, stage: Union[Stage, Callable], path: Optional[str] = None) -> "Application":
        """Mount a stage for every request, or only under `path`."""
        self.runner.use(stage, path)
        return self

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run one request to a finalized response.

        The request id ends up in request.attachments["request_id"] so the
        transport can echo it as X-Request-ID.
        """
        request_id = request.attachments.setdefault("request_id", new_request_id())
        if request.deadline is None and self.pipeline_timeout is not None:
            request.deadline = self._clock() + self.pipeline_timeout

        start = time.perf_counter()
        try:
            response = self.runner.run(request, self.router.handle)
        except InternalError:
            logger.exception("Internal error processing %s %s", request.method, request.path)
            response = internal_error().end()
        except HTTPError as e:
            response = error_response(e.status_code, **_body_kwargs(e)).end()
        except HTTPParseError as e:
            response = error_response(e.status_code, str(e)).end()
        except Exception:
            logger.exception("Unhandled error processing %s %s", request.method, request.path)
            response = internal_error().end()

        duration_ms = (time.perf_counter() - start) * 1000
        self.access_log.record(request, response, duration_ms, request_id)
        return response


def _body_kwargs(error: HTTPError) -> dict[str, Any]:
    body = error.to_body()
    return {"message": body.pop("message"), **body}


def create_app(
    config: Optional[ServerConfig] = None,
    agent_log: Optional[UserAgentLog] = None,
    repository: Optional[UserRepository] = None,
) -> Application:
    """
    The application with its full route table.

        /api/*   ← TokenCheckStage, then UserAgentCheckStage
        /users/v2, POST /api/users ← ValidationStage (route level)

    Args:
        config: Settings (ServerConfig() defaults if omitted).
        agent_log: User-Agent log (a JsonFileStore at config.agent_log_path
            if omitted).
        repository: User store (seeded with three users if omitted).
    """
    config = config or ServerConfig()

    if agent_log is None:
        agent_log = UserAgentLog(
            JsonFileStore(config.agent_log_path),
            extended=config.agent_log_extended,
        )
    if repository is None:
        repository = UserRepository(seed=DEFAULT_USERS)

    app = Application(
        access_log=AccessLog(config.log_format),
        pipeline_timeout=config.pipeline_timeout,
    )
    app.use(TokenCheckStage(config.api_token), path="/api")
    app.use(UserAgentCheckStage(agent_log, config.blocked_user_agents), path="/api")

    register_page_routes(app.router)
    register_user_routes(app.router, repository)

    app.agent_log = agent_log
    app.repository = repository
    return app
