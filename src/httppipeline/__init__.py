"""
=============================================================================
HTTPPIPELINE
=============================================================================

An HTTP/1.1 server whose request handling is an ordered pipeline of
stages, ending in a route handler.

    ┌──────────┐   ┌──────────────┐   ┌──────────────┐   ┌──────────────┐
    │ request  │──►│ TokenCheck   │──►│ UserAgent    │──►│ router       │
    │          │   │ (?token=)    │   │ (log, block) │   │ [validation] │
    └──────────┘   └──────┬───────┘   └──────┬───────┘   │ handler      │
                          │ 401              │ 400/403   └──────┬───────┘
                          ▼                  ▼                  ▼
                       response           response           response
                                                          (end() once)

=============================================================================
LAYOUT
=============================================================================

    validation.py      declarative schemas, accumulating validator
    agentlog.py        User-Agent side-channel log (JSON array)
    pipeline/          Stage contract, runner state machine, built-in stages
    http/              request parsing, write-once response, router
    handlers/          pages and the users API
    app.py             Application: stages + router + error boundary
    server.py          sockets + worker threads around an Application
    config.py          ServerConfig (env + CLI)

=============================================================================
"""

__version__ = "1.0.0"

from .app import Application, create_app
from .config import ServerConfig
from .server import HTTPServer

__all__ = ["Application", "create_app", "HTTPServer", "ServerConfig", "__version__"]
