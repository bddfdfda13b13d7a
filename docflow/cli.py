"""
Docflow CLI.

Commands:
    run        Execute a workflow document
    validate   Check a workflow document without running it
    kinds      List the available processor kinds
    web        Start the web interface

Examples:
    docflow run shrink-and-protect.json -i report.pdf -o out/
    docflow run merge.json -i a.pdf -i b.pdf --format json
    docflow validate shrink-and-protect.json
    docflow kinds
"""

from __future__ import annotations

import argparse
import sys


def _configure(args: argparse.Namespace) -> None:
    """Apply runtime overrides and logging from common flags."""
    from docflow.runtime import configure_logging, get_runtime_config, set_global_config

    config = get_runtime_config(
        render_dpi=getattr(args, "dpi", None),
        image_quality=getattr(args, "quality", None),
        parallel_workers=getattr(args, "workers", None),
        verbose=getattr(args, "verbose", False),
    )
    set_global_config(config)
    configure_logging(config.log_level)


def _unique_path(directory, filename: str, prefix: str):
    """Output path that does not overwrite an existing file."""
    path = directory / filename
    if not path.exists():
        return path
    path = directory / f"{prefix}_{filename}"
    n = 2
    while path.exists():
        path = directory / f"{prefix}_{n}_{filename}"
        n += 1
    return path


def cmd_run(args: argparse.Namespace) -> int:
    """Handle run command - execute a workflow document."""
    import asyncio
    from pathlib import Path

    from docflow.artifact import Artifact
    from docflow.workflow import CycleError, WorkflowDocumentError, WorkflowRun, load_workflow_graph

    _configure(args)

    workflow_path = Path(args.workflow)
    if not workflow_path.exists():
        print(f"Error: File not found: {workflow_path}", file=sys.stderr)
        return 1

    inputs = []
    for raw in args.input or []:
        path = Path(raw)
        if not path.is_file():
            print(f"Error: Input file not found: {path}", file=sys.stderr)
            return 1
        inputs.append(Artifact.from_path(path))

    try:
        graph = load_workflow_graph(workflow_path)
    except WorkflowDocumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    def show_progress(percent: float, message: str) -> None:
        print(f"  [{percent:5.1f}%] {message}", file=sys.stderr)

    run = WorkflowRun(graph, on_progress=show_progress if args.verbose else None)

    try:
        if args.verbose:
            print(f"Running workflow: {workflow_path}", file=sys.stderr)
            print(f"Nodes: {len(graph)}  Inputs: {len(inputs)}", file=sys.stderr)
            print(file=sys.stderr)
        result = asyncio.run(run.run(inputs))
    except KeyboardInterrupt:
        run.cancel()
        print("Cancelled.", file=sys.stderr)
        return 130
    except CycleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output_dir = Path(args.output)
    written = []
    for node_id, output in result.outputs.items():
        if not output.success:
            continue
        output_dir.mkdir(parents=True, exist_ok=True)
        for artifact in output.artifacts:
            path = _unique_path(output_dir, artifact.filename or f"{node_id}.bin", node_id)
            path.write_bytes(artifact.data)
            written.append(path)

    if args.format == "json":
        print(result.to_json(indent=2))
    else:
        print(f"Status: {result.status}")
        print(f"Duration: {result.duration_ms}ms")
        print()
        for nr in result.node_results:
            status = "[OK]" if nr.success else "[FAIL]"
            line = f"  {status} {nr.node_id} ({nr.kind})"
            if not nr.success:
                line += f": {nr.output.error.code.value} - {nr.output.error.message}"
            print(line)
        if written:
            print()
            print("Output:")
            for path in written:
                print(f"  {path}")

    return 0 if result.success else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command."""
    import json
    from pathlib import Path

    from docflow.workflow import WorkflowDocumentError, load_workflow_graph, validate_workflow

    _configure(args)

    workflow_path = Path(args.workflow)
    try:
        graph = load_workflow_graph(workflow_path)
    except WorkflowDocumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    validation = validate_workflow(graph)
    if args.format == "json":
        print(json.dumps(validation.to_dict(), indent=2))
    else:
        for issue in validation.errors:
            print(f"error: {issue.message}")
        for issue in validation.warnings:
            print(f"warning: {issue.message}")
        if validation.is_valid:
            print(f"{workflow_path}: OK ({len(graph)} node(s))")
    return 0 if validation.is_valid else 1


def cmd_kinds(args: argparse.Namespace) -> int:
    """Handle kinds command - list registered processor kinds."""
    import json

    from docflow.workflow import default_registry

    entries = list(default_registry())
    if args.category:
        entries = [e for e in entries if e.category == args.category]

    if args.format == "json":
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    by_category: dict[str, list] = {}
    for entry in entries:
        by_category.setdefault(entry.category, []).append(entry)
    for category in sorted(by_category):
        print(f"{category}:")
        for entry in sorted(by_category[category], key=lambda e: e.kind):
            print(f"  {entry.kind:<22} {entry.label}")
    return 0


def cmd_web(args: argparse.Namespace) -> int:
    """Handle web command - start the web server."""
    from docflow.web import run_server

    _configure(args)

    try:
        run_server(host=args.host, port=args.port)
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _add_runtime_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dpi",
        type=int,
        default=None,
        help="Render resolution for rasterizing pages (default: 150)",
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=None,
        help="JPEG quality for rendered images, 1-100 (default: 85)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for image work (default: 4)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and debug logging",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docflow",
        description="Chain document processors into workflows.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run
    run_parser = subparsers.add_parser(
        "run",
        help="Execute a workflow document",
    )
    run_parser.add_argument(
        "workflow",
        help="Path to the workflow JSON document",
    )
    run_parser.add_argument(
        "-i",
        "--input",
        action="append",
        help="Input file for the workflow's input nodes (repeatable)",
    )
    run_parser.add_argument(
        "-o",
        "--output",
        default="output",
        help="Directory for the output files (default: ./output)",
    )
    run_parser.add_argument(
        "-f",
        "--format",
        choices=["json", "text"],
        default="text",
        help="Output format (default: text)",
    )
    _add_runtime_args(run_parser)

    # validate
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check a workflow document without running it",
    )
    validate_parser.add_argument(
        "workflow",
        help="Path to the workflow JSON document",
    )
    validate_parser.add_argument(
        "-f",
        "--format",
        choices=["json", "text"],
        default="text",
        help="Output format (default: text)",
    )

    # kinds
    kinds_parser = subparsers.add_parser(
        "kinds",
        help="List the available processor kinds",
    )
    kinds_parser.add_argument(
        "-c",
        "--category",
        default=None,
        help="Only list one category (e.g. organize, security)",
    )
    kinds_parser.add_argument(
        "-f",
        "--format",
        choices=["json", "text"],
        default="text",
        help="Output format (default: text)",
    )

    # web
    web_parser = subparsers.add_parser(
        "web",
        help="Start the web interface",
    )
    web_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    web_parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    _add_runtime_args(web_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "kinds":
        return cmd_kinds(args)
    elif args.command == "web":
        return cmd_web(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
