"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler, extracting :param segments, and runs
any route-level stages before the handler.

=============================================================================
ROUTE TABLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET   /user/:id            → user_with_filter                      │
    │  POST  /users/v2            → create_user   [ValidationStage]       │
    │  GET   /api/users/:id       → get_user                              │
    │  POST  /api/users           → create_user   [ValidationStage]       │
    └─────────────────────────────────────────────────────────────────────┘

    GET /api/users/2  → path_params = {"id": "2"}

Patterns compile to anchored regexes:

    /api/users/:id   →   ^/api/users/(?P<id>[^/]+)$

First registered, first matched. Register /users/me before /users/:id.

=============================================================================
WHERE ROUTE-LEVEL STAGES RUN
=============================================================================

    Application runner                 Router
    ──────────────────                 ──────
    mounted stages (/api: token, UA)
            │
            ▼
    router.handle ───────────────────► match route
                                       route stages (e.g. validation)
                                       handler

The route's stages run in a nested PipelineRunner that returns the
response OPEN. The application's runner finalizes it.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List, Sequence
import re
import time

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed
from ..pipeline.base import Stage, as_stage
from ..pipeline.runner import PipelineRunner


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """
    A registered route.

        Route(path="/api/users", method="POST", handler=create_user,
              name="create_user", stages=[ValidationStage(UserSchema)])
    """

    path: str
    method: str
    handler: Handler
    name: Optional[str] = None
    stages: List[Stage] = field(default_factory=list)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)
    _runner: Optional[PipelineRunner] = field(default=None, repr=False)

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        if self._runner is None:
            return self.handler(request)
        return self._runner.execute(request, self.handler)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


def _normalize(path: str) -> str:
    return "/" + path.strip("/") if path != "/" else "/"


class Router:
    """
    HTTP request router with :param segments and per-route stages.

        router = Router()

        @router.get("/api/users/:id", name="get_user")
        def get_user(request):
            return ok({"id": request.path_params["id"]})

        @router.post("/api/users", stages=[ValidationStage(UserSchema)])
        def create_user(request):
            return created(request.attachments["validated"])

        api = router.group("/api")     # api.get("/users") → /api/users

    Route-level runners and groups share `clock`, so a deadline stamped
    by the application is read against the same time source.
    """

    def __init__(self, prefix: str = "", clock: Callable[[], float] = time.monotonic):
        self.prefix = prefix.rstrip("/")
        self.clock = clock
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}
        self._groups: List["Router"] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: str = "GET",
        name: Optional[str] = None,
        stages: Sequence[Any] = ()
    ) -> Route:
        """
        Register a route.

        Args:
            path: URL pattern (e.g. /users/:id)
            handler: request → response
            method: HTTP method
            name: Optional name for url_for()
            stages: Stages run after matching, before the handler
        """
        full_path = _normalize(self.prefix + path)
        pattern, param_names = self._compile_pattern(full_path)
        route_stages = [as_stage(s) for s in stages]

        route = Route(
            path=full_path,
            method=method.upper(),
            handler=handler,
            name=name,
            stages=route_stages,
            _pattern=pattern,
            _param_names=param_names,
            _runner=PipelineRunner(route_stages, clock=self.clock) if route_stages else None,
        )
        self._routes.append(route)
        if name:
            self._named_routes[name] = route
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        "/user/:id/payment" → ^/user/(?P<id>[^/]+)/payment$
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue
            regex_parts.append("/")
            if segment.startswith(":"):
                param_name = segment[1:]
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>[^/]+)")
            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")
        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def routes(self) -> List[Route]:
        """All routes, groups included, in registration order."""
        all_routes = list(self._routes)
        for group in self._groups:
            all_routes.extend(group.routes())
        return all_routes

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        path = _normalize(path)
        method = method.upper()
        for route in self.routes():
            if route.method != method:
                continue
            found = route._pattern.match(path)
            if found:
                return RouteMatch(route=route, params=found.groupdict())
        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for `path`, for the 405 Allow header."""
        path = _normalize(path)
        return sorted({
            route.method for route in self.routes() if route._pattern.match(path)
        })

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request: handler response, 405 if the path exists under
        another method, 404 otherwise.
        """
        match = self.match(request.method, request.path)
        if match:
            request.path_params = match.params
            return match.route.dispatch(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(
        self,
        path: str,
        method: str = "GET",
        name: Optional[str] = None,
        stages: Sequence[Any] = ()
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, stages)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None, stages: Sequence[Any] = ()):
        return self.route(path, "GET", name, stages)

    def post(self, path: str, name: Optional[str] = None, stages: Sequence[Any] = ()):
        return self.route(path, "POST", name, stages)

    def put(self, path: str, name: Optional[str] = None, stages: Sequence[Any] = ()):
        return self.route(path, "PUT", name, stages)

    def delete(self, path: str, name: Optional[str] = None, stages: Sequence[Any] = ()):
        return self.route(path, "DELETE", name, stages)

    # =========================================================================
    # COMPOSITION
    # =========================================================================

    def group(self, prefix: str) -> "Router":
        """A child router whose routes all live under `prefix`."""
        child = Router(self.prefix + prefix, clock=self.clock)
        self._groups.append(child)
        return child

    def url_for(self, name: str, **params: Any) -> Optional[str]:
        """
        Reverse routing.

            router.url_for("get_user", id=4)  → "/api/users/4"
        """
        route = self._named_routes.get(name)
        if route is None:
            for group in self._groups:
                url = group.url_for(name, **params)
                if url is not None:
                    return url
            return None

        url = route.path
        for param_name, value in params.items():
            url = url.replace(f":{param_name}", str(value))
        return url
