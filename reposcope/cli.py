"""CLI entrypoints for reposcope commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from .config import load_settings
from .errors import ReposcopeError
from .logging import configure_logging
from .models import RepoCoordinates
from .orchestrator import Orchestrator, StepResult


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_repository_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "repository",
        help="Repository to analyze: a local checkout path, or owner/repo with --source github.",
    )
    parser.add_argument(
        "--path",
        default="",
        help="Restrict the analysis to this subdirectory of the repository.",
    )


def _add_reset_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Discard any stored plan and results and plan the analysis again.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reposcope",
        description="Analyze a source repository directory by directory with an LLM.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to .reposcope.yml or the directory containing it.",
    )
    parser.add_argument(
        "--source",
        choices=("local", "github"),
        default=None,
        help="Where repository content is read from (overrides the config file).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Plan the analysis and store the work units.",
    )
    _add_verbose_option(init_parser, suppress_default=True)
    _add_repository_arguments(init_parser)
    _add_reset_option(init_parser)

    process_parser = subparsers.add_parser(
        "process",
        help="Summarize one planned work unit.",
    )
    _add_verbose_option(process_parser, suppress_default=True)
    _add_repository_arguments(process_parser)
    process_parser.add_argument("unit_index", type=int, help="Index of the work unit to process.")

    summary_parser = subparsers.add_parser(
        "summary",
        help="Combine the directory summaries into the repository analysis.",
    )
    _add_verbose_option(summary_parser, suppress_default=True)
    _add_repository_arguments(summary_parser)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Run init, every process step and the summary in order.",
    )
    _add_verbose_option(analyze_parser, suppress_default=True)
    _add_repository_arguments(analyze_parser)
    _add_reset_option(analyze_parser)

    cleanup_parser = subparsers.add_parser(
        "cleanup",
        help="Delete the stored analysis for a repository.",
    )
    _add_verbose_option(cleanup_parser, suppress_default=True)
    _add_repository_arguments(cleanup_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Expose the analysis phases over HTTP.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def _build_orchestrator(args: argparse.Namespace) -> Orchestrator:
    settings = load_settings(args.config)
    if args.source:
        settings.content.source = args.source
    return Orchestrator(settings)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for reposcope commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
        return

    try:
        orchestrator = _build_orchestrator(args)
        repository = args.repository
        if orchestrator.settings.content.source == "local":
            repository = str(Path(repository).expanduser().resolve())
        coordinates = RepoCoordinates(repository, args.path.strip("/"))
        if args.command == "init":
            results = [orchestrator.run_init(coordinates, reset=bool(args.reset))]
        elif args.command == "process":
            results = [orchestrator.run_process(coordinates, args.unit_index)]
        elif args.command == "summary":
            results = [orchestrator.run_summary(coordinates)]
        elif args.command == "analyze":
            results = orchestrator.run_pipeline(coordinates, reset=bool(args.reset))
        elif args.command == "cleanup":
            removed = orchestrator.cleanup(coordinates)
            print("Stored analysis removed" if removed else "No stored analysis found")
            return
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except ReposcopeError as exc:
        parser.exit(1, f"reposcope {args.command} failed: {exc}\n")

    _print_results(args.command, results)
    failed = [result for result in results if not result.ok]
    if failed:
        parser.exit(
            1,
            f"reposcope {args.command} failed: {failed[0].error}\n"
            "Run with --verbose for more details.\n",
        )


def _print_results(command: str, results: List[StepResult]) -> None:
    if command == "analyze":
        total_cost = sum(result.cost for result in results)
        payload: object = {
            "steps": [result.to_dict() for result in results],
            "totalCost": total_cost,
        }
    else:
        payload = results[0].to_dict()
    print(json.dumps(payload, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main(sys.argv[1:])
