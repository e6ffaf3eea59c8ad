"""CLI entrypoints for orgdeps commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .api import GitHubClient
from .config import ConfigError, OrgDepsConfig, load_config, validate_config
from .errors import OrgDepsError
from .logging import configure_logging
from .orchestrator import Orchestrator


def _add_common_options(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    def _default(value: object) -> object:
        return argparse.SUPPRESS if suppress_default else value

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=_default(False),
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=_default(Path(".")),
        help="Path to .orgdeps.yml or the directory containing it (defaults to current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=_default(None),
        help="Also write logs to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgdeps",
        description="Map which repositories of an organization depend on which internal packages.",
    )
    _add_common_options(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser(
        "scan",
        help="Scan repositories (resuming from the checkpoint) and write the graph file.",
    )
    _add_common_options(scan_parser, suppress_default=True)
    scan_parser.add_argument(
        "repositories",
        nargs="*",
        help="Only scan these repositories instead of listing the whole organization.",
    )
    scan_parser.add_argument("--org", help="Organization to scan.")
    scan_parser.add_argument("--limit", type=int, help="Maximum number of repositories to list.")
    scan_parser.add_argument("--max-depth", type=int, help="Directory recursion limit.")
    scan_parser.add_argument("--concurrency", type=int, help="Concurrent repository scans.")
    scan_parser.add_argument("--batch-size", type=int, help="Repositories per batch.")
    scan_parser.add_argument(
        "--batch-pause", type=float, help="Seconds to wait between batches."
    )
    scan_parser.add_argument("--output", type=Path, help="Where to write the graph file.")

    graph_parser = subparsers.add_parser(
        "graph",
        help="Rebuild the graph file from the checkpoint without scanning.",
    )
    _add_common_options(graph_parser, suppress_default=True)
    graph_parser.add_argument("--output", type=Path, help="Where to write the graph file.")

    reset_parser = subparsers.add_parser(
        "reset",
        help="Forget scan progress so the next run starts from scratch.",
    )
    _add_common_options(reset_parser, suppress_default=True)
    reset_parser.add_argument(
        "--cache",
        action="store_true",
        help="Also delete cached manifest content.",
    )

    check_parser = subparsers.add_parser(
        "check-auth",
        help="Verify that the configured credential can read the organization.",
    )
    _add_common_options(check_parser, suppress_default=True)
    check_parser.add_argument("--org", help="Organization to check.")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve the graph file and scan progress over HTTP.",
    )
    _add_common_options(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind.")

    return parser


def _apply_overrides(config: OrgDepsConfig, args: argparse.Namespace) -> OrgDepsConfig:
    if getattr(args, "org", None):
        config.github.org = args.org
    if getattr(args, "limit", None) is not None:
        config.github.repo_limit = args.limit
    if getattr(args, "max_depth", None) is not None:
        config.scan.max_depth = args.max_depth
    if getattr(args, "concurrency", None) is not None:
        config.scan.concurrency = args.concurrency
    if getattr(args, "batch_size", None) is not None:
        config.scan.batch_size = args.batch_size
    if getattr(args, "batch_pause", None) is not None:
        config.scan.batch_pause = args.batch_pause
    if getattr(args, "output", None) is not None:
        config.output_path = args.output.expanduser().resolve()
    return config


async def _check_auth(config: OrgDepsConfig) -> str:
    async with GitHubClient(config.github) as client:
        org = await client.check_access()
    return str(org.get("login") or config.github.org)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for orgdeps commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = _apply_overrides(load_config(args.config), args)
        validate_config(config)
    except ConfigError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")

    orchestrator = Orchestrator(config)

    if args.command == "scan":
        if not config.github.org:
            parser.exit(1, "No organization configured. Use --org or set ORGDEPS_ORG.\n")
        repositories = list(args.repositories) or None
        try:
            graph = asyncio.run(orchestrator.run_scan(repositories))
        except (ConfigError, OrgDepsError) as exc:
            parser.exit(1, f"orgdeps scan failed: {exc}\nRun with --verbose for more details.\n")
        print(
            f"Graph with {len(graph.nodes)} nodes and {len(graph.links)} links "
            f"written to {_relativize(config.output_path)}"
        )
    elif args.command == "graph":
        try:
            graph = orchestrator.run_graph()
        except (ConfigError, OrgDepsError) as exc:
            parser.exit(1, f"orgdeps graph failed: {exc}\n")
        print(
            f"Graph with {len(graph.nodes)} nodes and {len(graph.links)} links "
            f"written to {_relativize(config.output_path)}"
        )
    elif args.command == "reset":
        try:
            orchestrator.reset(include_cache=bool(args.cache))
        except OrgDepsError as exc:
            parser.exit(1, f"orgdeps reset failed: {exc}\n")
        print("Scan progress cleared")
    elif args.command == "check-auth":
        if not config.github.org:
            parser.exit(1, "No organization configured. Use --org or set ORGDEPS_ORG.\n")
        try:
            login = asyncio.run(_check_auth(config))
        except OrgDepsError as exc:
            parser.exit(1, f"Credential check failed: {exc}\n")
        print(f"Credential can read organization {login}")
    elif args.command == "serve":  # pragma: no cover - integration path
        from .service import run_service

        run_service(config, host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
