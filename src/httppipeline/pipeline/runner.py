"""
=============================================================================
PIPELINE RUNNER
=============================================================================

Runs an ordered list of stages against one request, then the route
handler, and finalizes exactly one response.

=============================================================================
THE RUN LOOP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   for each stage mounted on this path:                               │
    │       deadline passed?  ──yes──►  504, stop                          │
    │       outcome = stage(request, proceed)                              │
    │       deadline passed?  ──yes──►  504, stop                          │
    │       outcome is Continue?   ──►  next stage                         │
    │       outcome is Response?   ──►  TERMINATED, stop                   │
    │       otherwise              ──►  PipelineError                      │
    │                                                                      │
    │   response = handler(request)     (same deadline checks around it)   │
    │   response.end()                  ← the ONE finalization             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
MOUNTING
=============================================================================

    runner.use(log_requests)                 # every path
    runner.use(TokenCheckStage("123"), path="/api")

    /api          → both stages
    /api/users    → both stages
    /apiary       → log_requests only     (prefix must end at a "/")
    /about        → log_requests only

=============================================================================
DEADLINES
=============================================================================

request.deadline is a time.monotonic() value. The runner only checks it
BETWEEN steps: a stage stuck in a blocking call is not interrupted. When
the check fails, whatever the current step produced is discarded and the
client gets 504.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Union
import logging
import time

from ..errors import PipelineError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, gateway_timeout
from .base import (
    PIPELINE_STATE_KEY,
    Continuation,
    Continue,
    PipelineState,
    Stage,
    as_stage,
    pipeline_state,
)


logger = logging.getLogger(__name__)

Handler = Callable[[HTTPRequest], HTTPResponse]

DEADLINE_MESSAGE = "Gateway Timeout: request processing exceeded deadline"


def _normalize_prefix(prefix: Optional[str]) -> str:
    if not prefix:
        return ""
    return "/" + prefix.strip("/") if prefix.strip("/") else ""


@dataclass(frozen=True)
class MountedStage:
    """A stage plus the path prefix it runs under ("" = everywhere)."""

    stage: Stage
    prefix: str = ""

    def applies_to(self, path: str) -> bool:
        if not self.prefix:
            return True
        return path == self.prefix or path.startswith(self.prefix + "/")


class PipelineRunner:
    """
    Ordered stages + a handler → one finalized response.

    The runner holds no per-request state, so one instance serves every
    worker thread.

    Args:
        stages: Initial stages, mounted everywhere.
        clock: Monotonic clock used for deadline checks.
    """

    def __init__(
        self,
        stages: Iterable[Union[Stage, Callable]] = (),
        clock: Callable[[], float] = time.monotonic
    ):
        self._mounted: List[MountedStage] = []
        self._clock = clock
        for s in stages:
            self.use(s)

    def use(self, stage: Union[Stage, Callable], path: Optional[str] = None) -> "PipelineRunner":
        """
        Append a stage, optionally restricted to a path prefix.

        Returns:
            Self for chaining.
        """
        mounted = MountedStage(as_stage(stage), _normalize_prefix(path))
        self._mounted.append(mounted)
        logger.debug("Mounted stage %s on %r", mounted.stage.name, mounted.prefix or "/")
        return self

    def stages_for(self, path: str) -> List[Stage]:
        return [m.stage for m in self._mounted if m.applies_to(path)]

    def __len__(self) -> int:
        return len(self._mounted)

    def __iter__(self):
        return iter(self._mounted)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def run(self, request: HTTPRequest, handler: Handler) -> HTTPResponse:
        """
        Run the stages and handler, then finalize the terminal response.

        Raises:
            PipelineError: A stage or the handler broke its contract.
        """
        return self.execute(request, handler).end()

    def execute(self, request: HTTPRequest, handler: Handler) -> HTTPResponse:
        """
        Same as run() but hands back the terminal response still OPEN.

        Used for nested pipelines (route-level stages) where the outer
        runner owns finalization. A nested run leaves its own outcome in
        the request's pipeline state; the outer run only marks HANDLED
        over a state that is still RUNNING.
        """
        self._enter(request, PipelineState.RUNNING)
        try:
            return self._execute(request, handler)
        except Exception:
            self._enter(request, PipelineState.FAILED)
            raise

    def _execute(self, request: HTTPRequest, handler: Handler) -> HTTPResponse:
        for index, current in enumerate(self.stages_for(request.path)):
            if self._expired(request):
                return self._timed_out(request, f"before stage {current.name}")

            proceed = Continuation()
            outcome = current(request, proceed)

            if self._expired(request):
                return self._timed_out(request, f"after stage {current.name}")

            if isinstance(outcome, Continue):
                if not proceed.issued(outcome):
                    raise PipelineError(
                        f"Stage {current.name} returned a Continue it was not given"
                    )
                logger.debug("Stage %d (%s) passed", index, current.name)
                continue

            if isinstance(outcome, HTTPResponse):
                if proceed.called:
                    raise PipelineError(
                        f"Stage {current.name} called proceed() and returned a response"
                    )
                self._check_open(outcome, f"Stage {current.name}")
                self._enter(request, PipelineState.TERMINATED)
                logger.debug(
                    "Stage %d (%s) terminated with %d", index, current.name, outcome.status
                )
                return outcome

            raise PipelineError(
                f"Stage {current.name} returned {type(outcome).__name__}, "
                f"expected proceed() or a response"
            )

        if self._expired(request):
            return self._timed_out(request, "before handler")

        response = handler(request)

        if self._expired(request):
            return self._timed_out(request, "after handler")

        if not isinstance(response, HTTPResponse):
            raise PipelineError(
                f"Handler returned {type(response).__name__}, expected a response"
            )
        self._check_open(response, "Handler")
        if pipeline_state(request) is PipelineState.RUNNING:
            self._enter(request, PipelineState.HANDLED)
        return response

    def _expired(self, request: HTTPRequest) -> bool:
        return request.deadline is not None and self._clock() >= request.deadline

    @staticmethod
    def _enter(request: HTTPRequest, state: PipelineState) -> None:
        request.attachments[PIPELINE_STATE_KEY] = state

    def _timed_out(self, request: HTTPRequest, where: str) -> HTTPResponse:
        self._enter(request, PipelineState.TIMED_OUT)
        logger.warning(
            "Deadline exceeded %s for %s %s", where, request.method, request.path
        )
        return gateway_timeout(DEADLINE_MESSAGE)

    @staticmethod
    def _check_open(response: HTTPResponse, who: str) -> None:
        if response.finalized:
            raise PipelineError(f"{who} returned an already finalized response")
