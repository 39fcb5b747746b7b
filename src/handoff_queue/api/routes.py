"""FastAPI routes for the handoff queue."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from ..queue import HandoffTask, Identity, NoTasksAvailable, ProjectStatus, ProjectSummary
from ..service import HandoffQueue
from .schemas import (
    ActivityFeed,
    BlockTaskRequest,
    ClaimNextRequest,
    ClaimResponse,
    CompleteTaskRequest,
    CreateTaskRequest,
    ProgressRequest,
    ProjectDetail,
    TaskList,
    UpdateResponse,
    UpdateTaskRequest,
)


def get_queue(request: Request) -> HandoffQueue:
    return request.app.state.queue


def get_identity(
    request: Request,
    x_handoff_user: Optional[str] = Header(default=None),
) -> Identity:
    """Caller identity from the X-Handoff-User header, else the configured default."""
    settings = request.app.state.settings
    user_id = (x_handoff_user or "").strip() or settings.default_user
    return Identity(user_id=user_id, teammates=settings.teammates)


router = APIRouter(prefix="/api/handoff")


# =============================================================================
# Queue and tasks
# =============================================================================


@router.get("/queue", response_model=TaskList)
def view_queue(
    status: Optional[str] = None,
    project: Optional[str] = None,
    priority: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    queue: HandoffQueue = Depends(get_queue),
):
    """Tasks ordered by priority, then oldest first."""
    tasks = queue.view_queue(status=status, project_name=project, priority=priority, limit=limit)
    return TaskList(count=len(tasks), tasks=tasks)


@router.post("/tasks", response_model=HandoffTask, status_code=201)
def create_task(
    req: CreateTaskRequest,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    return queue.create_task(identity, **req.model_dump())


@router.get("/tasks/{task_id}", response_model=HandoffTask)
def get_task(task_id: str, queue: HandoffQueue = Depends(get_queue)):
    return queue.get_task(task_id)


@router.put("/tasks/{task_id}", response_model=UpdateResponse)
def update_task(
    task_id: str,
    req: UpdateTaskRequest,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    result = queue.update_task(identity, task_id, req.model_dump(exclude_none=True))
    return UpdateResponse(
        result="updated" if result.changed else "no_change",
        changed_fields=list(result.changed_fields),
        task=result.task,
    )


# =============================================================================
# Claims and lifecycle
# =============================================================================


@router.post("/claim", response_model=ClaimResponse)
def claim_next(
    req: Optional[ClaimNextRequest] = None,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    """Claim the next eligible task; an empty queue is not an error."""
    req = req or ClaimNextRequest()
    try:
        task = queue.claim_next(
            identity,
            priority_filter=req.priority_filter,
            project_name=req.project_name,
        )
    except NoTasksAvailable as exc:
        return ClaimResponse(result=exc.code, message=str(exc))
    return ClaimResponse(result="claimed", task=task)


@router.post("/tasks/{task_id}/claim", response_model=ClaimResponse)
def claim_task(
    task_id: str,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    return ClaimResponse(result="claimed", task=queue.claim_task(identity, task_id))


@router.post("/tasks/{task_id}/progress", response_model=HandoffTask)
def update_progress(
    task_id: str,
    req: ProgressRequest,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    return queue.update_progress(identity, task_id, req.note)


@router.post("/tasks/{task_id}/complete", response_model=HandoffTask)
def complete_task(
    task_id: str,
    req: CompleteTaskRequest,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    return queue.complete_task(identity, task_id, **req.model_dump())


@router.post("/tasks/{task_id}/block", response_model=HandoffTask)
def block_task(
    task_id: str,
    req: BlockTaskRequest,
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    return queue.block_task(identity, task_id, req.reason)


# =============================================================================
# Results, projects and activity
# =============================================================================


@router.get("/results", response_model=TaskList)
def get_results(
    task_id: Optional[str] = None,
    project: Optional[str] = None,
    since: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    queue: HandoffQueue = Depends(get_queue),
):
    tasks = queue.results(task_id=task_id, project_name=project, since=since, limit=limit)
    return TaskList(count=len(tasks), tasks=tasks)


@router.get("/mine", response_model=TaskList)
def my_tasks(
    include_team: bool = False,
    limit: Optional[int] = Query(default=None, ge=1),
    queue: HandoffQueue = Depends(get_queue),
    identity: Identity = Depends(get_identity),
):
    tasks = queue.my_tasks(identity, include_team=include_team, limit=limit)
    return TaskList(count=len(tasks), tasks=tasks)


@router.get("/projects", response_model=list[ProjectSummary])
def list_projects(queue: HandoffQueue = Depends(get_queue)):
    return queue.list_projects()


@router.get("/projects/{project_name}", response_model=ProjectDetail)
def project_detail(project_name: str, queue: HandoffQueue = Depends(get_queue)):
    return ProjectDetail(**queue.project_detail(project_name))


@router.get("/projects/{project_name}/status", response_model=ProjectStatus)
def project_status(project_name: str, queue: HandoffQueue = Depends(get_queue)):
    return queue.project_status(project_name)


@router.get("/activity", response_model=ActivityFeed)
def activity(
    user: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=200),
    queue: HandoffQueue = Depends(get_queue),
):
    """Recent created/claimed/completed/blocked events, newest first."""
    return ActivityFeed(items=queue.activity(user_id=user, limit=limit))


__all__ = ["get_identity", "get_queue", "router"]
