"""Handoff queue diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from handoff_queue.batches import BatchLoadError, load_batch_file
from handoff_queue.config import HandoffSettings
from handoff_queue.queue import HandoffError, Identity
from handoff_queue.service import HandoffQueue
from handoff_queue.storage import JournalUnavailableError, SqliteTaskBackend, TaskJournal


def load_queue(settings: HandoffSettings) -> HandoffQueue:
    try:
        backend = SqliteTaskBackend(settings.db_path, busy_timeout=settings.busy_timeout)
    except HandoffError as exc:
        print(f"Handoff store unavailable: {exc}")
        raise SystemExit(1)
    return HandoffQueue(backend, default_limit=settings.queue_limit)


def load_journal(settings: HandoffSettings) -> TaskJournal:
    journal = TaskJournal(settings.chroma_persist_path)
    try:
        journal.ping()
    except JournalUnavailableError as exc:
        print(f"Journal unavailable: {exc}")
        raise SystemExit(1)
    return journal


def cmd_tasks(args: argparse.Namespace) -> None:
    settings = HandoffSettings()
    queue = load_queue(settings)
    try:
        tasks = queue.view_queue(
            status=args.status,
            project_name=args.project,
            limit=args.limit,
        )
    except HandoffError as exc:
        print(f"Query failed: {exc}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps([task.summary() for task in tasks], indent=2))
    else:
        for task in tasks:
            claimant = f" -> {task.claimed_by}" if task.claimed_by else ""
            print(f"{task.id} [{task.priority.value}/{task.status.value}]{claimant} {task.instruction}")


def cmd_projects(args: argparse.Namespace) -> None:
    settings = HandoffSettings()
    queue = load_queue(settings)
    try:
        if args.name:
            payload = queue.project_status(args.name).model_dump(mode="json")
        else:
            payload = [summary.model_dump() for summary in queue.list_projects()]
    except HandoffError as exc:
        print(f"Query failed: {exc}")
        raise SystemExit(1)
    print(json.dumps(payload, indent=2))


def cmd_history(args: argparse.Namespace) -> None:
    settings = HandoffSettings()
    try:
        task_id = load_queue(settings).store.resolve(args.task_id)
    except HandoffError as exc:
        print(f"Lookup failed: {exc}")
        raise SystemExit(1)

    journal = load_journal(settings)
    try:
        events = journal.fetch_task_events(task_id, limit=args.limit)
    except JournalUnavailableError as exc:
        print(f"Journal unavailable: {exc}")
        raise SystemExit(1)

    print(json.dumps([event.to_dict() for event in events], indent=2, default=str))


def cmd_import(args: argparse.Namespace) -> None:
    settings = HandoffSettings()
    try:
        batch = load_batch_file(Path(args.path))
    except BatchLoadError as exc:
        print(f"Batch invalid: {exc}")
        raise SystemExit(1)

    if args.dry_run:
        print(f"Batch {batch.id}: {batch.task_count} task(s) for project {batch.project_name}")
        return

    queue = load_queue(settings)
    identity = Identity(user_id=args.user or settings.default_user, teammates=settings.teammates)
    tasks = queue.import_batch(identity, batch)
    print(json.dumps([task.summary() for task in tasks], indent=2))


def cmd_status(args: argparse.Namespace) -> None:
    settings = HandoffSettings()
    queue = load_queue(settings)
    try:
        snapshot = queue.status_snapshot()
    except HandoffError as exc:
        print(f"Status failed: {exc}")
        raise SystemExit(1)
    print(json.dumps(snapshot, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Handoff queue diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_tasks = sub.add_parser("tasks", help="List queued tasks in priority order")
    p_tasks.add_argument("--status")
    p_tasks.add_argument("--project")
    p_tasks.add_argument("--limit", type=int, default=None)
    p_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_tasks.set_defaults(func=cmd_tasks)

    p_projects = sub.add_parser("projects", help="List projects, or one project's status rollup")
    p_projects.add_argument("--name")
    p_projects.set_defaults(func=cmd_projects)

    p_history = sub.add_parser("history", help="Show journaled events for a task")
    p_history.add_argument("task_id")
    p_history.add_argument("--limit", type=int, default=None)
    p_history.set_defaults(func=cmd_history)

    p_import = sub.add_parser("import", help="Create tasks from a YAML batch file")
    p_import.add_argument("path")
    p_import.add_argument("--user", help="Creator id (defaults to HANDOFF_DEFAULT_USER)")
    p_import.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the batch without creating tasks",
    )
    p_import.set_defaults(func=cmd_import)

    p_status = sub.add_parser("status", help="Show store and project counts")
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
