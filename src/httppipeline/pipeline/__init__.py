"""
Request-processing pipeline.

    from httppipeline.pipeline import PipelineRunner, TokenCheckStage

    runner = PipelineRunner()
    runner.use(TokenCheckStage("123"), path="/api")
    response = runner.run(request, router.handle)
"""

from .base import (
    Continuation,
    Continue,
    FunctionStage,
    PIPELINE_STATE_KEY,
    PipelineState,
    Proceed,
    Stage,
    StageResult,
    as_stage,
    pipeline_state,
    stage,
)
from .runner import DEADLINE_MESSAGE, Handler, MountedStage, PipelineRunner
from .stages import (
    DEFAULT_BLOCKED_AGENTS,
    FORBIDDEN_MESSAGE,
    TokenCheckStage,
    UserAgentCheckStage,
    ValidationStage,
)

__all__ = [
    "Continuation",
    "Continue",
    "FunctionStage",
    "PIPELINE_STATE_KEY",
    "PipelineState",
    "Proceed",
    "Stage",
    "StageResult",
    "as_stage",
    "pipeline_state",
    "stage",
    "DEADLINE_MESSAGE",
    "Handler",
    "MountedStage",
    "PipelineRunner",
    "DEFAULT_BLOCKED_AGENTS",
    "FORBIDDEN_MESSAGE",
    "TokenCheckStage",
    "UserAgentCheckStage",
    "ValidationStage",
]
