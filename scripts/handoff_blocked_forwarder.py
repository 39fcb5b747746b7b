"""Report blocked handoff tasks from the journal for monitoring integrations."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from handoff_queue.config import HandoffSettings
from handoff_queue.storage import JournalUnavailableError, TaskJournal


def load_journal(settings: HandoffSettings) -> TaskJournal:
    return TaskJournal(settings.chroma_persist_path)


def collect_blocked(
    journal: TaskJournal,
    *,
    project_name: str | None = None,
    user: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Latest ``task_blocked`` events, oldest first, as flat records."""

    events = journal.search_events(
        event_type="task_blocked",
        project_name=project_name,
        user=user,
        limit=limit,
    )
    return [
        {
            "task_id": event.task_id,
            "project_name": event.project_name,
            "blocked_by": event.user,
            "reason": event.body.get("reason"),
            "blocked_at": event.recorded_at.isoformat(),
        }
        for event in events
    ]


def render_text(records: list[dict[str, Any]]) -> str:
    lines = []
    for record in records:
        project = record["project_name"] or "-"
        who = record["blocked_by"] or "unknown"
        lines.append(f"{record['blocked_at']} {record['task_id']} [{project}] {who}: {record['reason']}")
    return "\n".join(lines)


def forward_blocked(args: argparse.Namespace) -> int:
    journal = load_journal(HandoffSettings())
    limit = args.limit if args.limit and args.limit > 0 else None
    try:
        records = collect_blocked(journal, project_name=args.project, user=args.user, limit=limit)
    except JournalUnavailableError as exc:
        print(f"Journal unavailable: {exc}", file=sys.stderr)
        return 1

    text = json.dumps(records, indent=2) if args.format == "json" else render_text(records)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
    else:
        print(text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Emit blocked handoff tasks as JSON or text.")
    parser.add_argument("--project", help="Only tasks of this project")
    parser.add_argument("--user", help="Only tasks blocked by this user")
    parser.add_argument("--format", choices=("json", "text"), default="json")
    parser.add_argument("--output", help="Write to this file instead of stdout")
    parser.add_argument("--limit", type=int, default=None, help="Only the latest N blocked events")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    exit_code = forward_blocked(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
