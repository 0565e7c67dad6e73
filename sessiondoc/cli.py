"""CLI entrypoints for sessiondoc commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from .config import SessionDocConfig, load_config
from .docs.base import DocAudience
from .docs.pipeline import DocumentationPipeline, PipelineRequest
from .errors import PipelineError
from .logging import configure_logging
from .sessions.reader import SessionStore


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity and list diagnostics.",
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


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("project_id", help="Session storage directory name of the project.")
    parser.add_argument(
        "-s",
        "--session",
        dest="sessions",
        action="append",
        default=[],
        metavar="ID",
        help="Session id to include (repeatable; prefix with codex: for Codex sessions). "
        "Defaults to every stored session of the project.",
    )
    parser.add_argument(
        "--project-path",
        type=Path,
        default=None,
        help="Project root holding the instruction file and .sessiondoc.yml.",
    )
    parser.add_argument("--project-name", default=None, help="Override the detected project name.")
    parser.add_argument(
        "--audience",
        choices=[audience.value for audience in DocAudience],
        default=None,
        help="Who the document is written for (defaults to pipeline.audience).",
    )
    parser.add_argument("--custom-prompt", default=None, help="Extra instructions for the AI writer.")
    parser.add_argument(
        "--debug-dir",
        type=Path,
        default=None,
        help="Directory receiving the persisted IR (overrides pipeline.debug_dir).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessiondoc",
        description="Generate project documentation from AI-assistant session logs.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log records to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Run the full pipeline and write the documentation.",
    )
    _add_verbose_option(generate_parser, suppress_default=True)
    _add_run_options(generate_parser)
    generate_parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip the AI writer and render the deterministic document.",
    )
    generate_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the markdown to this file instead of stdout.",
    )

    prompt_parser = subparsers.add_parser(
        "prompt",
        help="Print the writer prompt without calling the AI.",
    )
    _add_verbose_option(prompt_parser, suppress_default=True)
    _add_run_options(prompt_parser)
    prompt_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the prompt, IR path and diagnostics as JSON.",
    )

    sessions_parser = subparsers.add_parser(
        "sessions",
        help="List the stored session ids of a project.",
    )
    _add_verbose_option(sessions_parser, suppress_default=True)
    sessions_parser.add_argument("project_id", help="Session storage directory name of the project.")
    sessions_parser.add_argument("--project-path", type=Path, default=None)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for sessiondoc commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "serve":
        from .service.app import run_service

        run_service(host=args.host, port=args.port)
        return

    try:
        config = load_config(args.project_path or Path.cwd())
    except RuntimeError as exc:
        parser.exit(1, f"sessiondoc: {exc}\n")

    if args.command == "sessions":
        for session_id in _store(config, args.project_id).list_sessions():
            print(session_id)
        return

    if args.debug_dir is not None:
        config.pipeline.debug_dir = args.debug_dir

    session_ids = _session_ids(config, args)
    if not session_ids:
        parser.exit(1, f"No sessions found for project '{args.project_id}'.\n")

    request = PipelineRequest(
        project_id=args.project_id,
        session_ids=tuple(session_ids),
        project_path=args.project_path,
        project_name=args.project_name,
        audience=args.audience,
        custom_prompt=args.custom_prompt,
        use_ai=not bool(getattr(args, "no_ai", False)),
    )
    pipeline = DocumentationPipeline(config)

    if args.command == "generate":
        try:
            result = pipeline.run(request)
        except PipelineError as exc:
            parser.exit(1, f"sessiondoc generate failed during {exc.stage}: {exc.cause}\n")
        if args.verbose:
            for diagnostic in result.diagnostics:
                print(f"[{diagnostic.kind.value}] {diagnostic.stage}: {diagnostic.message}", file=sys.stderr)
        if args.output is not None:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(result.markdown, encoding="utf-8")
            print(f"Documentation written to {_relativize(args.output)}", file=sys.stderr)
        else:
            sys.stdout.write(result.markdown)
        if result.used_fallback:
            print(f"Used fallback document ({result.failure}).", file=sys.stderr)
        if result.ir_path is not None:
            print(f"IR persisted at {_relativize(result.ir_path)}", file=sys.stderr)
    elif args.command == "prompt":
        try:
            prepared = pipeline.prepare(request)
        except PipelineError as exc:
            parser.exit(1, f"sessiondoc prompt failed during {exc.stage}: {exc.cause}\n")
        if args.json:
            print(json.dumps(prepared.to_dict(), indent=2, ensure_ascii=False))
        else:
            sys.stdout.write(prepared.prompt.render())
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _store(config: SessionDocConfig, project_id: str) -> SessionStore:
    return SessionStore(
        project_id,
        claude_dir=config.sessions.claude_dir,
        codex_dir=config.sessions.codex_dir,
    )


def _session_ids(config: SessionDocConfig, args: argparse.Namespace) -> List[str]:
    if args.sessions:
        return list(dict.fromkeys(args.sessions))
    return _store(config, args.project_id).list_sessions()


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
