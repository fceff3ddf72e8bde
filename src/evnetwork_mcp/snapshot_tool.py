"""snapshot_tool.py

Offline CLI for saved tree snapshots (the JSON body of
``GET /binary/tree/{root_id}/``). Runs the same engines the server uses,
with no network access:

  - members   materialize the member list under a side filter and depth bounds
  - summary   show which engine applies, page envelopes and skipped fragments

Example:

  evnetwork-snapshot snapshot.json members --side left --max-depth 3
  evnetwork-snapshot snapshot.json members --json > members.json
  evnetwork-snapshot snapshot.json summary
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .client import materialize, parse_root_snapshot
from .models import SIDES, Paged, TreeQuery

JsonDict = Dict[str, Any]


def die(msg: str) -> None:
    print(f"[snapshot_tool] ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def load_json(path: str) -> JsonDict:
    if not os.path.isfile(path):
        die(f"File not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        die(f"Invalid JSON in {path}: {e}")
    if not isinstance(data, dict):
        die(f"Expected a JSON object in {path}")
    # Saved API responses may still carry the wrapper
    for key in ("data", "tree"):
        if isinstance(data.get(key), dict) and "left_child" not in data:
            return data[key]
    return data


def _format_member_lines(members: List[JsonDict]) -> List[str]:
    if not members:
        return ["(no members)"]
    id_width = max(len(str(m["id"])) for m in members)
    lines = []
    for m in members:
        indent = "  " * max(0, m["level"] - 1)
        status = "active" if m["is_active"] else "inactive"
        parent = m["parent_name"] or (f"#{m['parent_id']}" if m["parent_id"] is not None else "-")
        lines.append(
            f"{str(m['id']).rjust(id_width)}  L{m['level']} {m['leg']:<5} "
            f"{indent}{m['display_name'] or '(unnamed)'}  "
            f"[{status}, parent: {parent}, downline: {m['descendant_count']}, "
            f"earnings: {m['metric_value']}]"
        )
    return lines


def cmd_members(args: argparse.Namespace) -> None:
    snapshot = parse_root_snapshot(load_json(args.file))
    try:
        query = TreeQuery(
            root_id=snapshot.node_id,
            side=args.side,
            min_depth=args.min_depth,
            max_depth=args.max_depth,
        )
    except ValidationError as e:
        die(f"Invalid filter: {e.errors()[0]['msg']}")
        return

    page = materialize(snapshot, query)
    members = [m.model_dump(mode="json") for m in page.members]

    if args.json:
        json.dump(members, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    print(f"[snapshot_tool] Root {snapshot.node_id} ({snapshot.name or 'unnamed'}), engine={page.engine}")
    for line in _format_member_lines(members):
        print(f"  {line}")
    print(f"[snapshot_tool] {len(members)} member(s)")


def cmd_summary(args: argparse.Namespace) -> None:
    snapshot = parse_root_snapshot(load_json(args.file))
    engine = "merge" if snapshot.has_side_member_fields else "fallback"
    print(f"[snapshot_tool] Root {snapshot.node_id} ({snapshot.name or 'unnamed'})")
    print(f"  engine: {engine}")
    for leg in SIDES:
        child = snapshot.child(leg)
        label = f"{child.node_id} ({child.name or 'unnamed'})" if child else "-"
        print(f"  {leg} child: {label}")
        envelope = snapshot.envelope(leg)
        if envelope is not None:
            print(
                f"    page {envelope.page}/{envelope.total_pages}, "
                f"{len(envelope.results)} of {envelope.count} side member(s)"
            )
        elif child is not None and not any(
            isinstance(c, Paged) for c in (child.left_side_members, child.right_side_members)
        ):
            print("    no paginated side members")
    print(f"  skipped fragments: {snapshot.skipped_fragments}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect saved EV network tree snapshots offline.",
    )
    parser.add_argument("file", help="Path to a saved tree snapshot JSON file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_members = subparsers.add_parser("members", help="Materialize the member list")
    p_members.add_argument("--side", choices=["left", "right", "both"], default="both")
    p_members.add_argument("--min-depth", type=int, default=None, help="Inclusive lower level bound")
    p_members.add_argument("--max-depth", type=int, default=None, help="Inclusive upper level bound")
    p_members.add_argument("--json", action="store_true", help="Print members as JSON")
    p_members.set_defaults(func=cmd_members)

    p_summary = subparsers.add_parser("summary", help="Show engine choice and pagination")
    p_summary.set_defaults(func=cmd_summary)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except ValueError as e:
        die(str(e))


if __name__ == "__main__":  # pragma: no cover
    main()
