"""Command-line entry point.

    clabgraph compile lab.clab.yml [--mode view --inspect snapshot.json]
    clabgraph annotations lab.clab.yml
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from clabgraph.enums import CompileMode
from clabgraph.logging_config import setup_logging
from clabgraph.schemas import parse_labs_snapshot
from clabgraph.services.topology import TopologyAdapter, TopologyLoadError
from clabgraph.storage import AnnotationsManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clabgraph", description="Compile containerlab topologies into graph elements.")
    parser.add_argument("--log-level", default=None, help="Override CLABGRAPH_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    compile_cmd = sub.add_parser("compile", help="Compile a topology file to JSON elements")
    compile_cmd.add_argument("topology", type=Path, help="Path to the .clab.yml file")
    compile_cmd.add_argument(
        "--mode",
        choices=[mode.value for mode in CompileMode],
        default=CompileMode.EDITOR.value,
        help="editor (default) or view (needs --inspect for live state)",
    )
    compile_cmd.add_argument("--inspect", type=Path, default=None, help="Live inspection snapshot (JSON)")
    compile_cmd.add_argument("--output", type=Path, default=None, help="Write elements here instead of stdout")
    compile_cmd.add_argument(
        "--no-migrate",
        action="store_true",
        help="Do not move legacy graph-* labels into the annotations file",
    )

    ann_cmd = sub.add_parser("annotations", help="Show the annotations file for a topology")
    ann_cmd.add_argument("topology", type=Path, help="Path to the .clab.yml file")
    return parser


def _load_snapshot(path: Path | None):
    if path is None:
        return None
    return parse_labs_snapshot(json.loads(path.read_text(encoding="utf-8")))


def run_compile(args: argparse.Namespace) -> int:
    try:
        labs = _load_snapshot(args.inspect)
    except (OSError, ValueError) as e:
        print(f"Cannot read inspection snapshot {args.inspect}: {e}", file=sys.stderr)
        return 2

    adapter = TopologyAdapter(migrate_legacy=not args.no_migrate)
    try:
        elements = asyncio.run(adapter.compile_file(args.topology, args.mode, labs))
    except TopologyLoadError as e:
        print(str(e), file=sys.stderr)
        return 1

    text = json.dumps(elements, indent=2)
    if args.output is None:
        print(text)
    else:
        args.output.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote {len(elements or [])} elements to {args.output}")
    return 0


def run_annotations(args: argparse.Namespace) -> int:
    manager = AnnotationsManager()
    print(manager.annotations_path(args.topology))
    annotations = manager.read(args.topology)
    print(json.dumps(annotations.to_json_dict(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "compile":
        return run_compile(args)
    return run_annotations(args)


if __name__ == "__main__":
    sys.exit(main())
