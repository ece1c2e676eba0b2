"""Task API routes.

These are the HTTP face of TaskService's transaction protocol. Routes
only translate: None from the service is a 404, a label outside the
project is a 400, and a failed transaction is a 500 with a generic
message (the cause is logged by the service, never returned).

Key patterns:
- POST under a board to create; everything after that is by task id
- PUT is a partial update: fields left out of the body are untouched
- PATCH /move is its own endpoint because it changes the ownership path
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.auth.dependencies import CurrentIdentity, get_current_user
from fourme.db.engine import get_db
from fourme.schemas.common import IdPath
from fourme.schemas.task import HistoryRead, TaskCreate, TaskMove, TaskRead, TaskUpdate
from fourme.services.task_service import (
    LabelNotFoundError,
    TaskService,
    TaskTransactionError,
)

router = APIRouter()


def _task_svc(db: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(db)


@router.post("/boards/{board_id}/tasks", response_model=TaskRead, status_code=201)
async def create_task(
    board_id: IdPath,
    body: TaskCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    """Create a task in 'todo' with its labels and a 'created' history entry."""
    try:
        task = await svc.create_task(identity.user_id, board_id, body)
    except LabelNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TaskTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not task:
        raise HTTPException(status_code=404, detail="Board not found")
    return task


@router.get("/boards/{board_id}/tasks", response_model=list[TaskRead])
async def list_tasks(
    board_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    tasks = await svc.list_tasks(identity.user_id, board_id)
    if tasks is None:
        raise HTTPException(status_code=404, detail="Board not found")
    return tasks


@router.get("/tasks/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    """A single task with its labels."""
    task = await svc.get_task(identity.user_id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.put("/tasks/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: IdPath,
    body: TaskUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    """Partially update a task.

    Only the fields present in the body change, and only they appear in
    the 'updated' history entry. Sending label_ids replaces the whole
    label set.
    """
    try:
        task = await svc.update_task(identity.user_id, task_id, body)
    except LabelNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TaskTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.patch("/tasks/{task_id}/move", response_model=TaskRead)
async def move_task(
    task_id: IdPath,
    body: TaskMove,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    """Move a task to another of the caller's boards.

    A target board the caller doesn't own looks exactly like a missing
    task: 404, and the task stays where it was.
    """
    try:
        task = await svc.move_task(identity.user_id, task_id, body)
    except TaskTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    try:
        deleted = await svc.delete_task(identity.user_id, task_id)
    except TaskTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"message": "Task deleted successfully"}


@router.get("/tasks/{task_id}/history", response_model=list[HistoryRead])
async def get_task_history(
    task_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    """The task's audit trail, most recent first."""
    history = await svc.get_history(identity.user_id, task_id)
    if history is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return history
