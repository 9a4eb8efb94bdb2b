#!/usr/bin/env python3
"""FlowDeconstruct CLI - inspect, validate and convert diagram files."""

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from . import config
from .project import read_project_file, write_project_file
from .prompt import build_prompt
from .validation import validate_diagram, validation_summary

logger = logging.getLogger(__name__)


def _json_out(data) -> int:
    print(json.dumps(data, ensure_ascii=False))
    return 1 if data.get("status") in ("error", "invalid") else 0


def _error(message: str) -> int:
    return _json_out({"status": "error", "error": message})


def _summary(diagram) -> dict:
    return {
        "name": diagram.name,
        "node_count": diagram.node_count,
        "connection_count": diagram.connection_count,
        "timeline_event_count": len(diagram.timeline_events),
        "sub_flow_count": sum(1 for n in diagram.nodes if n.has_sub_flow),
    }


# ── Inspection ───────────────────────────────────────────────────────────────

def cmd_show(args):
    diagram = read_project_file(args.file)
    data = {"status": "ok", "summary": _summary(diagram)}
    if args.full:
        data["diagram"] = diagram.to_json_dict()
    return _json_out(data)


def cmd_validate(args):
    diagram = read_project_file(args.file)
    issues = validate_diagram(diagram, recursive=not args.shallow)
    summary = validation_summary(issues)
    return _json_out({
        "status": "ok" if summary["valid"] else "invalid",
        "summary": summary,
        "issues": [i.to_dict() for i in issues],
    })


# ── Conversion ───────────────────────────────────────────────────────────────

def cmd_convert(args):
    diagram = read_project_file(args.source)
    path = write_project_file(
        diagram,
        args.destination,
        include_notes=not args.no_notes,
        include_sub_flows=not args.no_sub_flows,
    )
    return _json_out({"status": "converted", "path": str(path), "summary": _summary(diagram)})


def cmd_normalize_timeline(args):
    diagram = read_project_file(args.file)
    diagram.normalize_timeline_positions()
    path = write_project_file(diagram, args.output or args.file)
    return _json_out({
        "status": "normalized",
        "path": str(path),
        "events": [e.to_json_dict() for e in diagram.timeline_events],
    })


# ── Prompt ───────────────────────────────────────────────────────────────────

def cmd_prompt(args):
    if args.file in (None, "-"):
        transcription = sys.stdin.read()
    else:
        transcription = Path(args.file).read_text(encoding="utf-8")

    text = build_prompt(transcription)
    if args.raw:
        sys.stdout.write(text)
        return 0
    return _json_out({"status": "ok", "prompt": text})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flowdeconstruct", description="FlowDeconstruct diagram files")
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("show")
    p.add_argument("file")
    p.add_argument("--full", action="store_true")

    p = sub.add_parser("validate")
    p.add_argument("file")
    p.add_argument("--shallow", action="store_true")

    p = sub.add_parser("convert")
    p.add_argument("source")
    p.add_argument("destination")
    p.add_argument("--no-notes", action="store_true")
    p.add_argument("--no-sub-flows", action="store_true")

    p = sub.add_parser("normalize-timeline")
    p.add_argument("file")
    p.add_argument("--output", default=None)

    p = sub.add_parser("prompt")
    p.add_argument("file", nargs="?", default=None)
    p.add_argument("--raw", action="store_true")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cmd_map = {
        "show": cmd_show,
        "validate": cmd_validate,
        "convert": cmd_convert,
        "normalize-timeline": cmd_normalize_timeline,
        "prompt": cmd_prompt,
    }
    try:
        return cmd_map[args.command](args)
    except FileNotFoundError as e:
        return _error(str(e))
    except json.JSONDecodeError as e:
        return _error(f"Invalid project file: {e}")
    except ValidationError as e:
        return _error(f"Invalid project data: {e}")
    except (AttributeError, TypeError) as e:
        # JSON that parses but is not shaped like a project.
        return _error(f"Invalid project data: {e}")
    except OSError as e:
        logger.debug("I/O failure", exc_info=True)
        return _error(str(e))


if __name__ == "__main__":
    sys.exit(main())
