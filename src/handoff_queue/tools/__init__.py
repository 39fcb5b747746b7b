"""Tool registration for the handoff queue MCP server."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from fastmcp import Context, FastMCP

from ..batches import BatchLoader, BatchLoadError, load_batch_file
from ..config import HandoffSettings
from ..queue import HandoffError, HandoffTask, Identity, NoTasksAvailable
from ..service import HandoffQueue

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    create_task: Any
    view_queue: Any
    get_task: Any
    get_next_task: Any
    claim_task: Any
    update_task: Any
    update_progress: Any
    complete_task: Any
    block_task: Any
    project_status: Any
    list_projects: Any
    get_results: Any
    my_tasks: Any
    task_history: Any
    import_batch: Any


def _task_payload(task: HandoffTask) -> dict[str, Any]:
    return task.model_dump(mode="json")


def register_tools(
    server: FastMCP,
    *,
    queue: HandoffQueue,
    settings: HandoffSettings,
) -> ToolHandles:
    """Register the handoff_* tools on the server."""

    def _identity(user_id: str | None) -> Identity:
        return Identity(
            user_id=(user_id or "").strip() or settings.default_user,
            teammates=settings.teammates,
        )

    def _failure(context: Context | None, tool: str, exc: HandoffError) -> dict[str, Any]:
        _emit_log(
            context,
            "warning" if exc.code != "store_unavailable" else "error",
            "Handoff tool failed",
            extra={"tool": tool, "error": exc.code, "detail": str(exc)},
        )
        return exc.to_payload()

    def _create_task(
        instruction: str,
        context: str | None = None,
        priority: Literal["low", "normal", "high", "urgent"] = "normal",
        project_name: str | None = None,
        estimated_complexity: Literal["simple", "moderate", "complex"] | None = None,
        files_needed: list[str] | None = None,
        parent_task_id: str | None = None,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Create a pending handoff task."""

        try:
            task = queue.create_task(
                _identity(user_id),
                instruction,
                context=context,
                priority=priority,
                project_name=project_name,
                estimated_complexity=estimated_complexity,
                files_needed=files_needed,
                parent_task_id=parent_task_id,
            )
        except HandoffError as exc:
            return _failure(ctx, "handoff_create_task", exc)

        _emit_log(
            ctx,
            "info",
            "Created handoff task",
            extra={"task_id": task.id, "priority": task.priority.value},
        )
        return {"ok": True, "task": _task_payload(task)}

    def _view_queue(
        status: Literal["pending", "claimed", "in_progress", "complete", "blocked"] | None = None,
        project_name: str | None = None,
        priority: Literal["low", "normal", "high", "urgent"] | None = None,
        limit: int | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """List tasks ordered by priority, then age."""

        try:
            tasks = queue.view_queue(
                status=status,
                project_name=project_name,
                priority=priority,
                limit=limit,
            )
        except HandoffError as exc:
            return _failure(ctx, "handoff_view_queue", exc)

        _emit_log(ctx, "debug", "Viewed queue", extra={"count": len(tasks)})
        return {"ok": True, "count": len(tasks), "tasks": [task.summary() for task in tasks]}

    def _get_task(task_id: str, ctx: Context | None = None) -> dict[str, Any]:
        """Fetch a task by id or unique id fragment."""

        try:
            task = queue.get_task(task_id)
        except HandoffError as exc:
            return _failure(ctx, "handoff_get_task", exc)
        return {"ok": True, "task": _task_payload(task)}

    def _get_next_task(
        priority_filter: Literal["any", "high_or_above", "urgent_only"] = "any",
        project_name: str | None = None,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Claim the highest-priority, oldest pending task."""

        identity = _identity(user_id)
        try:
            task = queue.claim_next(
                identity,
                priority_filter=priority_filter,
                project_name=project_name,
            )
        except NoTasksAvailable as exc:
            _emit_log(ctx, "debug", "No tasks available", extra={"claimant": identity.user_id})
            return {"ok": True, "result": "no_tasks_available", "message": str(exc), "task": None}
        except HandoffError as exc:
            return _failure(ctx, "handoff_get_next_task", exc)

        _emit_log(
            ctx,
            "info",
            "Claimed next task",
            extra={"task_id": task.id, "claimant": identity.user_id},
        )
        return {"ok": True, "result": "claimed", "task": _task_payload(task)}

    def _claim_task(task_id: str, user_id: str | None = None, ctx: Context | None = None) -> dict[str, Any]:
        """Claim a specific task, replacing any existing claimant."""

        identity = _identity(user_id)
        try:
            task = queue.claim_task(identity, task_id)
        except HandoffError as exc:
            return _failure(ctx, "handoff_claim_task", exc)

        _emit_log(
            ctx,
            "info",
            "Claimed task",
            extra={"task_id": task.id, "claimant": identity.user_id},
        )
        return {"ok": True, "result": "claimed", "task": _task_payload(task)}

    def _update_task(
        task_id: str,
        instruction: str | None = None,
        context: str | None = None,
        priority: Literal["low", "normal", "high", "urgent"] | None = None,
        status: Literal["pending", "claimed", "in_progress", "complete", "blocked"] | None = None,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Edit instruction, context, priority or status of a task."""

        fields = {
            "instruction": instruction,
            "context": context,
            "priority": priority,
            "status": status,
        }
        try:
            result = queue.update_task(_identity(user_id), task_id, fields)
        except HandoffError as exc:
            return _failure(ctx, "handoff_update_task", exc)

        if not result.changed:
            return {
                "ok": True,
                "result": "no_change",
                "message": "No changes to apply",
                "task": _task_payload(result.task),
            }

        _emit_log(
            ctx,
            "info",
            "Updated task",
            extra={"task_id": result.task.id, "fields": list(result.changed_fields)},
        )
        return {
            "ok": True,
            "result": "updated",
            "changed_fields": list(result.changed_fields),
            "task": _task_payload(result.task),
        }

    def _update_progress(
        task_id: str,
        note: str,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Append a progress note; a claimed task moves to in_progress."""

        try:
            task = queue.update_progress(_identity(user_id), task_id, note)
        except HandoffError as exc:
            return _failure(ctx, "handoff_update_progress", exc)

        _emit_log(
            ctx,
            "debug",
            "Recorded progress",
            extra={"task_id": task.id, "entries": len(task.progress_notes)},
        )
        return {"ok": True, "task": _task_payload(task)}

    def _complete_task(
        task_id: str,
        output_summary: str,
        output_location: Literal["github", "drive", "both", "local"],
        files_created: list[str] | None = None,
        github_repo: str | None = None,
        github_paths: list[str] | None = None,
        drive_folder_id: str | None = None,
        drive_file_ids: list[str] | None = None,
        worker_notes: str | None = None,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Record completion outputs for a task."""

        try:
            task = queue.complete_task(
                _identity(user_id),
                task_id,
                output_summary=output_summary,
                output_location=output_location,
                files_created=files_created,
                github_repo=github_repo,
                github_paths=github_paths,
                drive_folder_id=drive_folder_id,
                drive_file_ids=drive_file_ids,
                worker_notes=worker_notes,
            )
        except HandoffError as exc:
            return _failure(ctx, "handoff_complete_task", exc)

        _emit_log(ctx, "info", "Completed task", extra={"task_id": task.id})
        return {"ok": True, "task": _task_payload(task)}

    def _block_task(
        task_id: str,
        reason: str,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Mark a task blocked with a reason."""

        try:
            task = queue.block_task(_identity(user_id), task_id, reason)
        except HandoffError as exc:
            return _failure(ctx, "handoff_block_task", exc)

        _emit_log(ctx, "warning", "Blocked task", extra={"task_id": task.id, "reason": reason})
        return {"ok": True, "task": _task_payload(task)}

    def _project_status(project_name: str, ctx: Context | None = None) -> dict[str, Any]:
        """Per-status counts and percentages for a project."""

        try:
            status = queue.project_status(project_name)
        except HandoffError as exc:
            return _failure(ctx, "handoff_project_status", exc)
        return {"ok": True, "project": status.model_dump(mode="json")}

    def _list_projects(ctx: Context | None = None) -> dict[str, Any]:
        """Every project with total, pending and complete counts."""

        try:
            projects = queue.list_projects()
        except HandoffError as exc:
            return _failure(ctx, "handoff_list_projects", exc)
        return {"ok": True, "projects": [summary.model_dump() for summary in projects]}

    def _get_results(
        task_id: str | None = None,
        project_name: str | None = None,
        since: str | None = None,
        limit: int | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Completed tasks, newest completion first."""

        try:
            tasks = queue.results(
                task_id=task_id,
                project_name=project_name,
                since=since,
                limit=limit,
            )
        except HandoffError as exc:
            return _failure(ctx, "handoff_get_results", exc)
        return {"ok": True, "count": len(tasks), "results": [_task_payload(task) for task in tasks]}

    def _my_tasks(
        include_team: bool = False,
        limit: int | None = None,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Claimed and in-progress tasks held by the caller (optionally the team)."""

        identity = _identity(user_id)
        try:
            tasks = queue.my_tasks(identity, include_team=include_team, limit=limit)
        except HandoffError as exc:
            return _failure(ctx, "handoff_my_tasks", exc)
        return {
            "ok": True,
            "user_id": identity.user_id,
            "count": len(tasks),
            "tasks": [task.summary() for task in tasks],
        }

    def _task_history(task_id: str, limit: int | None = None, ctx: Context | None = None) -> dict[str, Any]:
        """Journaled lifecycle events for a task, oldest first."""

        try:
            events = queue.task_history(task_id, limit=limit)
        except HandoffError as exc:
            return _failure(ctx, "handoff_task_history", exc)

        return {
            "ok": True,
            "events": [event.to_dict() for event in events],
        }

    def _import_batch(
        batch_id: str | None = None,
        path: str | None = None,
        user_id: str | None = None,
        ctx: Context | None = None,
    ) -> dict[str, Any]:
        """Create a parent task and its subtasks from a YAML batch file."""

        if not batch_id and not path:
            return {"ok": False, "error": "invalid_input", "message": "batch_id or path is required"}

        try:
            if path:
                batch = load_batch_file(Path(path))
            else:
                batch = BatchLoader(settings.batch_paths).get(batch_id)
        except BatchLoadError as exc:
            _emit_log(ctx, "warning", "Batch load failed", extra={"batch_id": batch_id, "path": path})
            return {"ok": False, "error": "invalid_input", "message": str(exc)}

        try:
            tasks = queue.import_batch(_identity(user_id), batch)
        except HandoffError as exc:
            return _failure(ctx, "handoff_import_batch", exc)

        _emit_log(ctx, "info", "Imported batch", extra={"batch_id": batch.id, "count": len(tasks)})
        return {
            "ok": True,
            "batch_id": batch.id,
            "count": len(tasks),
            "tasks": [task.summary() for task in tasks],
        }

    tool_create = server.tool(
        name="handoff_create_task",
        description=(
            "Create a task for another party to pick up. Provide a clear instruction, "
            "optional context, priority, project and the files the worker will need."
        ),
    )(_create_task)

    tool_view = server.tool(
        name="handoff_view_queue",
        description="List tasks ordered by priority (urgent first) then age, with optional filters.",
    )(_view_queue)

    tool_get = server.tool(
        name="handoff_get_task",
        description="Fetch full task details by id or a unique fragment of the id.",
    )(_get_task)

    tool_next = server.tool(
        name="handoff_get_next_task",
        description=(
            "Atomically claim the highest-priority, oldest pending task. "
            "Returns result=no_tasks_available when nothing matches."
        ),
    )(_get_next_task)

    tool_claim = server.tool(
        name="handoff_claim_task",
        description="Claim a specific task by id, taking it over from any current claimant.",
    )(_claim_task)

    tool_update = server.tool(
        name="handoff_update_task",
        description="Edit a task's instruction, context, priority or status.",
    )(_update_task)

    tool_progress = server.tool(
        name="handoff_update_progress",
        description="Append a progress note to a task's log; a claimed task becomes in_progress.",
    )(_update_progress)

    tool_complete = server.tool(
        name="handoff_complete_task",
        description=(
            "Mark a task complete with an output summary, where the output lives "
            "(github, drive, both, local) and the files produced."
        ),
    )(_complete_task)

    tool_block = server.tool(
        name="handoff_block_task",
        description="Mark a task blocked with the reason it cannot proceed.",
    )(_block_task)

    tool_project_status = server.tool(
        name="handoff_project_status",
        description="Task counts and percentages per status for a project.",
    )(_project_status)

    tool_projects = server.tool(
        name="handoff_list_projects",
        description="List projects with total, pending and complete task counts.",
    )(_list_projects)

    tool_results = server.tool(
        name="handoff_get_results",
        description="Completed task outputs, most recent first, filterable by task, project and date.",
    )(_get_results)

    tool_mine = server.tool(
        name="handoff_my_tasks",
        description="Tasks you (or your teammates) have claimed and not yet finished.",
    )(_my_tasks)

    tool_history = server.tool(
        name="handoff_task_history",
        description="Lifecycle events recorded in the task journal for one task.",
    )(_task_history)

    tool_import = server.tool(
        name="handoff_import_batch",
        description="Create tasks from a YAML batch file, by batch id or by file path.",
    )(_import_batch)

    return ToolHandles(
        create_task=tool_create,
        view_queue=tool_view,
        get_task=tool_get,
        get_next_task=tool_next,
        claim_task=tool_claim,
        update_task=tool_update,
        update_progress=tool_progress,
        complete_task=tool_complete,
        block_task=tool_block,
        project_status=tool_project_status,
        list_projects=tool_projects,
        get_results=tool_results,
        my_tasks=tool_mine,
        task_history=tool_history,
        import_batch=tool_import,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the MCP context logger when present, else the module logger."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
