"""CLI entrypoints for devpilot commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict

from .agents import default_agents
from .config import ConfigError, DevPilotConfig, load_config
from .errors import DevPilotError
from .llm import LLMRunner
from .logging import configure_logging
from .models import ARTIFACT_FILENAMES, GeneratedArtifactSet, PipelineState
from .orchestrator import FailurePolicy, Orchestrator
from .workflow import AnalysisService

_ARTIFACT_PATHS: Dict[str, Path] = {
    "dockerfile": Path(ARTIFACT_FILENAMES["dockerfile"]),
    "githubActions": Path(".github") / "workflows" / ARTIFACT_FILENAMES["githubActions"],
    "envExample": Path(ARTIFACT_FILENAMES["envExample"]),
}


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


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to devpilot.yml (or a directory containing it).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devpilot",
        description="Analyze repositories and generate Dockerfiles, CI workflows and env templates.",
    )
    _add_verbose_option(parser)
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP and WebSocket service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_config_option(serve_parser)
    serve_parser.add_argument("--host", default=None, help="Interface to bind (overrides config).")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind (overrides config).")

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Run the analysis pipeline once and write the generated artifacts.",
    )
    _add_verbose_option(analyze_parser, suppress_default=True)
    _add_config_option(analyze_parser)
    analyze_parser.add_argument(
        "target",
        help="Repository URL to clone, or a path to a local checkout.",
    )
    analyze_parser.add_argument(
        "--output",
        type=Path,
        default=Path("devpilot-output"),
        help="Directory that receives the generated files (default: ./devpilot-output).",
    )
    analyze_parser.add_argument(
        "--policy",
        choices=[policy.value for policy in FailurePolicy],
        default=None,
        help="What to do when a phase fails (default from config: continue).",
    )
    analyze_parser.add_argument("--auth-token", default=None, help="Token used to clone private repositories.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for devpilot commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(args.config or Path.cwd())
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.command == "serve":
        from .service import run_service

        if args.host:
            config.service.host = args.host
        if args.port:
            config.service.port = args.port
        run_service(config)
    elif args.command == "analyze":
        if args.policy:
            config.failure_policy = args.policy
        try:
            state = asyncio.run(_analyze(config, args.target, args.auth_token))
        except DevPilotError as exc:
            parser.exit(1, f"devpilot analyze failed: {exc}\nRun with --verbose for more details.\n")
        except (FileNotFoundError, NotADirectoryError) as exc:
            parser.exit(1, f"{exc}\n")
        _report(state, args.output)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


async def _analyze(config: DevPilotConfig, target: str, auth_token: str | None) -> PipelineState:
    local = Path(target).expanduser()
    if local.is_dir():
        orchestrator = Orchestrator(
            default_agents(config, LLMRunner.from_config(config.llm)),
            policy=config.failure_policy,
        )
        return await orchestrator.run(str(local.resolve()), local.resolve())

    service = AnalysisService.from_config(config)
    session = await service.clone(target, auth_token)
    try:
        return await service.analyze(session.session_id)
    finally:
        service.cleanup(session.session_id)


def write_artifacts(artifacts: GeneratedArtifactSet, output: Path) -> list[Path]:
    written: list[Path] = []
    for key, content in artifacts.to_dict().items():
        destination = output / _ARTIFACT_PATHS[key]
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(content, encoding="utf-8")
        written.append(destination)
    return written


def _report(state: PipelineState, output: Path) -> None:
    stack = state.tech_stack
    if stack is not None:
        print(f"Detected stack: {stack.primary} (confidence {stack.confidence}%)")
    if state.generated_files is not None:
        for path in write_artifacts(state.generated_files, output):
            print(f"Wrote {_relativize(path)}")
    if state.verification is not None:
        for check in state.verification.failures():
            print(f"[{check.severity}] {check.artifact}: {check.name} - {check.detail}")
    for error in state.errors:
        print(f"error: {error}", file=sys.stderr)


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
