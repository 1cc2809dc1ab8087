"""
=============================================================================
BUILT-IN STAGES
=============================================================================

    ┌──────────────────────┬────────────────────────┬──────────────────────┐
    │ Stage                │ Continues when         │ Otherwise            │
    ├──────────────────────┼────────────────────────┼──────────────────────┤
    │ TokenCheckStage      │ ?token == expected     │ 401                  │
    │ UserAgentCheckStage  │ UA present, not        │ 400 missing          │
    │                      │ blocked                │ 403 blocked          │
    │ ValidationStage      │ body passes the schema │ 400 + error list     │
    └──────────────────────┴────────────────────────┴──────────────────────┘

Mounted as `[TokenCheckStage, UserAgentCheckStage]` on /api, a request
without a token is rejected BEFORE its User-Agent is logged. Order is
part of the behavior.

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "Is User-Agent blocking a security control?"
A: "No. The header is whatever the client says it is. It keeps honest
   scripts off a browser-facing API and gives you a log of who's
   calling. Real access control is the token."

=============================================================================
"""

from typing import Iterable, Optional, Type
import hmac
import logging

from ..agentlog import UserAgentLog
from ..http.request import HTTPParseError, HTTPRequest
from ..http.response import bad_request, forbidden, unauthorized
from ..validation import Rejected, Schema, validate
from .base import Proceed, Stage, StageResult


logger = logging.getLogger(__name__)


DEFAULT_BLOCKED_AGENTS = ("curl", "wget", "python-requests", "httpie", "postman")

FORBIDDEN_MESSAGE = "Forbidden: client not allowed"


class TokenCheckStage(Stage):
    """
    Require a shared token in the query string.

        GET /api/users?token=123   → continue
        GET /api/users             → 401 Unauthorized: Invalid Token
    """

    def __init__(self, expected: str, param: str = "token"):
        if not expected:
            raise ValueError("expected token must not be empty")
        self.expected = expected
        self.param = param

    def __call__(self, request: HTTPRequest, proceed: Proceed) -> StageResult:
        supplied = request.get_query(self.param)
        if supplied is not None and hmac.compare_digest(
            supplied.encode("utf-8"), self.expected.encode("utf-8")
        ):
            return proceed()
        logger.debug("Rejected %s %s: bad or missing %s", request.method, request.path, self.param)
        return unauthorized("Unauthorized: Invalid Token")


class UserAgentCheckStage(Stage):
    """
    Log the caller's User-Agent, then refuse missing or blocked ones.

    The log write happens first and unconditionally, so rejected clients
    are recorded too. A missing header is logged as None.

    Args:
        log: Where agents are recorded.
        blocked_patterns: Case-insensitive substrings; any hit means 403.
    """

    def __init__(self, log: UserAgentLog, blocked_patterns: Iterable[str] = ()):
        self.log = log
        self.blocked_patterns = tuple(p.lower() for p in blocked_patterns if p)

    def __call__(self, request: HTTPRequest, proceed: Proceed) -> StageResult:
        agent = request.user_agent
        logger.info("The agent is %s", agent)
        self.log.record_agent(agent)

        if not agent:
            return bad_request("Bad Request: Missing User-Agent header")

        blocked = self.match_blocked(agent)
        if blocked is not None:
            logger.info("Blocked client %r (matched %r)", agent, blocked)
            return forbidden(FORBIDDEN_MESSAGE)

        return proceed()

    def match_blocked(self, agent: str) -> Optional[str]:
        """The first blocked pattern found in `agent`, if any."""
        lowered = agent.lower()
        for pattern in self.blocked_patterns:
            if pattern in lowered:
                return pattern
        return None


class ValidationStage(Stage):
    """
    Validate the JSON body and attach the accepted value.

        request.attachments["validated"] = {...}   # on success

    Handlers behind this stage read the attachment and never look at the
    raw body again.
    """

    def __init__(self, schema: Type[Schema], key: str = "validated"):
        self.schema = schema
        self.key = key

    def __call__(self, request: HTTPRequest, proceed: Proceed) -> StageResult:
        try:
            payload = request.json
        except HTTPParseError:
            return bad_request("Invalid JSON body")

        result = validate(self.schema, payload)
        if isinstance(result, Rejected):
            return bad_request("Validation failed", errors=result.to_list())

        request.attachments[self.key] = result.value
        return proceed()
