"""Project, board, and label API routes.

Boards and labels are created and listed under their project and then
addressed by their own id. Anything outside the caller's projects is a
404, indistinguishable from a missing id.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.auth.dependencies import CurrentIdentity, get_current_user
from fourme.db.engine import get_db
from fourme.schemas.common import IdPath
from fourme.schemas.project import (
    BoardCreate,
    BoardRead,
    BoardUpdate,
    LabelCreate,
    LabelRead,
    LabelUpdate,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
)
from fourme.services.project_service import ProjectService

router = APIRouter()


def _svc(db: AsyncSession = Depends(get_db)) -> ProjectService:
    return ProjectService(db)


# ═══════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════


@router.post("/projects", response_model=ProjectRead, status_code=201)
async def create_project(
    body: ProjectCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.create_project(identity.user_id, body)


@router.get("/projects", response_model=list[ProjectRead])
async def list_projects(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    """The caller's projects, newest first."""
    return await svc.list_projects(identity.user_id)


@router.get("/projects/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    project = await svc.get_project(identity.user_id, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.put("/projects/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: IdPath,
    body: ProjectUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    project = await svc.update_project(identity.user_id, project_id, body)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    """Delete a project with all of its boards, tasks, and labels."""
    if not await svc.delete_project(identity.user_id, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return {"message": "Project deleted successfully"}


# ═══════════════════════════════════════════════════════════
# Boards
# ═══════════════════════════════════════════════════════════


@router.post("/projects/{project_id}/boards", response_model=BoardRead, status_code=201)
async def create_board(
    project_id: IdPath,
    body: BoardCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    board = await svc.create_board(identity.user_id, project_id, body)
    if not board:
        raise HTTPException(status_code=404, detail="Project not found")
    return board


@router.get("/projects/{project_id}/boards", response_model=list[BoardRead])
async def list_boards(
    project_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    boards = await svc.list_boards(identity.user_id, project_id)
    if boards is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return boards


@router.put("/boards/{board_id}", response_model=BoardRead)
async def update_board(
    board_id: IdPath,
    body: BoardUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    board = await svc.update_board(identity.user_id, board_id, body)
    if not board:
        raise HTTPException(status_code=404, detail="Board not found")
    return board


@router.delete("/boards/{board_id}")
async def delete_board(
    board_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    if not await svc.delete_board(identity.user_id, board_id):
        raise HTTPException(status_code=404, detail="Board not found")
    return {"message": "Board deleted successfully"}


# ═══════════════════════════════════════════════════════════
# Labels
# ═══════════════════════════════════════════════════════════


@router.post("/projects/{project_id}/labels", response_model=LabelRead, status_code=201)
async def create_label(
    project_id: IdPath,
    body: LabelCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    label = await svc.create_label(identity.user_id, project_id, body)
    if not label:
        raise HTTPException(status_code=404, detail="Project not found")
    return label


@router.get("/projects/{project_id}/labels", response_model=list[LabelRead])
async def list_labels(
    project_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    labels = await svc.list_labels(identity.user_id, project_id)
    if labels is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return labels


@router.put("/labels/{label_id}", response_model=LabelRead)
async def update_label(
    label_id: IdPath,
    body: LabelUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    label = await svc.update_label(identity.user_id, label_id, body)
    if not label:
        raise HTTPException(status_code=404, detail="Label not found")
    return label


@router.delete("/labels/{label_id}")
async def delete_label(
    label_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    if not await svc.delete_label(identity.user_id, label_id):
        raise HTTPException(status_code=404, detail="Label not found")
    return {"message": "Label deleted successfully"}
