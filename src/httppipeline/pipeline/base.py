"""
=============================================================================
STAGE INTERFACE
=============================================================================

A stage is one step of request processing. It looks at the request and
then does exactly ONE of two things:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      THE STAGE CONTRACT                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   def __call__(self, request, proceed):                              │
    │                                                                      │
    │       if request_is_bad:                                             │
    │           return unauthorized("...")   ← TERMINATE with a response   │
    │                                                                      │
    │       request.attachments["x"] = ...   ← optionally enrich request   │
    │       return proceed()                 ← CONTINUE to the next stage  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY proceed() RETURNS A SIGNAL INSTEAD OF A RESPONSE
=============================================================================

In a classic Chain of Responsibility, `next(request)` recursively runs the
rest of the chain and hands back its response. That makes it easy to write
a stage that calls next() and THEN also writes a response (the classic
"headers already sent" bug).

Here proceed() does not run anything. It returns a Continue token that the
runner checks:

    Stage returns          Runner does
    ─────────────          ───────────
    proceed()              advance to the next stage
    HTTPResponse           stop, finalize this response
    anything else          PipelineError (500)

The runner is an explicit loop, so "continue AND respond" is impossible
to express without the runner noticing.

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "How do you make sure a request gets exactly one response?"
A: "Don't let stages send. Stages RETURN an outcome, and a single loop
   owns the decision and the one call to end()."

=============================================================================
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional, Union
import logging

from ..errors import PipelineError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """
    Where the run over one request is. The runner keeps it in
    request.attachments["pipeline_state"].

        PENDING ──► RUNNING ──► TERMINATED    a stage answered
                       │
                       ├──────► HANDLED       the handler answered
                       ├──────► TIMED_OUT     deadline passed, 504
                       └──────► FAILED        exception escaped the run
    """

    PENDING = "pending"
    RUNNING = "running"
    TERMINATED = "terminated"
    HANDLED = "handled"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


PIPELINE_STATE_KEY = "pipeline_state"


def pipeline_state(request: HTTPRequest) -> PipelineState:
    """PENDING until a runner has started on `request`."""
    return request.attachments.get(PIPELINE_STATE_KEY, PipelineState.PENDING)


class Continue:
    """Marker returned by proceed(). Only meaningful to the runner that issued it."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "Continue()"


class Continuation:
    """
    The `proceed` callable handed to ONE stage invocation.

    Each invocation gets a fresh Continuation, so the runner can tell
    whether the Continue it got back was issued for this very call.
    """

    __slots__ = ("_signal", "_calls")

    def __init__(self):
        self._signal = Continue()
        self._calls = 0

    def __call__(self) -> Continue:
        self._calls += 1
        if self._calls > 1:
            raise PipelineError("proceed() called more than once")
        return self._signal

    @property
    def called(self) -> bool:
        return self._calls > 0

    def issued(self, signal: object) -> bool:
        return signal is self._signal


Proceed = Callable[[], Continue]
StageResult = Union[Continue, HTTPResponse]


class Stage(ABC):
    """
    Base class for pipeline stages.

    Subclasses implement __call__. Stages are shared across requests and
    threads, so keep per-request data on the request (attachments), never
    on the stage.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, proceed: Proceed) -> StageResult:
        """
        Inspect `request` and either `return proceed()` or return a response.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def __repr__(self) -> str:
        return f"<{self.name}>"


class FunctionStage(Stage):
    """
    Wraps a plain function as a stage.

        @stage
        def require_json(request, proceed):
            if not request.is_json:
                return bad_request("Expected application/json")
            return proceed()
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, Proceed], StageResult],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, proceed: Proceed) -> StageResult:
        return self._func(request, proceed)

    @property
    def name(self) -> str:
        return self._name


def stage(func: Callable[[HTTPRequest, Proceed], StageResult]) -> FunctionStage:
    """Decorator form of FunctionStage."""
    return FunctionStage(func)


def as_stage(obj: Union[Stage, Callable]) -> Stage:
    """Accept either a Stage or a bare (request, proceed) function."""
    if isinstance(obj, Stage):
        return obj
    if callable(obj):
        return FunctionStage(obj)
    raise TypeError(f"Not a stage: {obj!r}")
