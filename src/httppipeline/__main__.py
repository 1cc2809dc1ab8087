"""
=============================================================================
COMMAND-LINE ENTRY POINT
=============================================================================

    python -m httppipeline                        # env + defaults
    python -m httppipeline --port 4000
    python -m httppipeline --token secret --block-agent curl --block-agent wget
    python -m httppipeline --allow-all-agents --json-logs

Flags override environment variables (see config.py), which override
the defaults.

=============================================================================
"""

import argparse
import dataclasses
import sys
from typing import Optional, Sequence

from . import __version__
from .accesslog import setup_logging
from .app import create_app
from .config import ServerConfig
from .server import HTTPServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="httppipeline",
        description="HTTP/1.1 server with an ordered request-processing pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  httppipeline --port 4000
  httppipeline --token secret --block-agent curl
  httppipeline --allow-all-agents --timeout 2.5
        """,
    )

    parser.add_argument("--host", "-H", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Listen port, 0 for any free port")
    parser.add_argument("--workers", "-w", type=int, help="Worker threads")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument("--json-logs", action="store_true", help="Access log as JSON lines")

    parser.add_argument("--token", help="Expected ?token= value for /api routes")
    parser.add_argument("--agent-log", metavar="PATH", help="File the User-Agent log is kept in")
    parser.add_argument(
        "--block-agent",
        action="append",
        metavar="PATTERN",
        help="Refuse User-Agents containing PATTERN (repeatable, replaces the defaults)",
    )
    parser.add_argument(
        "--allow-all-agents",
        action="store_true",
        help="Block no User-Agent at all",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Per-request pipeline deadline, 0 disables it",
    )

    parser.add_argument("--version", "-v", action="version", version=f"httppipeline {__version__}")
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """Overlay parsed flags on `base` (from_env() if omitted)."""
    config = base or ServerConfig.from_env()
    overrides = {}

    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.workers is not None:
        overrides["workers"] = args.workers
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.json_logs:
        overrides["log_format"] = "json"
    if args.token is not None:
        overrides["api_token"] = args.token
    if args.agent_log is not None:
        overrides["agent_log_path"] = args.agent_log
    if args.allow_all_agents:
        overrides["blocked_user_agents"] = ()
    elif args.block_agent:
        overrides["blocked_user_agents"] = tuple(args.block_agent)
    if args.timeout is not None:
        overrides["pipeline_timeout"] = args.timeout if args.timeout > 0 else None

    return dataclasses.replace(config, **overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)

    server = HTTPServer(create_app(config), config)
    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
