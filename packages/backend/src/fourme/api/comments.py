"""Comment and attachment API routes.

Both hang off a task: created and listed under /tasks/{id}, then
addressed by their own id. Uploads are multipart with a single `file`
field; the bytes go to the object store and only the URL is kept.
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.auth.dependencies import CurrentIdentity, get_current_user
from fourme.config import settings
from fourme.db.engine import get_db
from fourme.schemas.comment import (
    AttachmentRead,
    CommentCreate,
    CommentRead,
    CommentUpdate,
)
from fourme.schemas.common import IdPath
from fourme.services.comment_service import (
    AttachmentService,
    AttachmentTooLargeError,
    CommentService,
)
from fourme.services.storage import ObjectStore, StorageError, get_object_store

router = APIRouter()


def _comment_svc(db: AsyncSession = Depends(get_db)) -> CommentService:
    return CommentService(db)


def _attachment_svc(
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> AttachmentService:
    return AttachmentService(db, store)


# ═══════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════


@router.post("/tasks/{task_id}/comments", response_model=CommentRead, status_code=201)
async def create_comment(
    task_id: IdPath,
    body: CommentCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CommentService = Depends(_comment_svc),
):
    comment = await svc.create_comment(identity.user_id, task_id, body.content)
    if not comment:
        raise HTTPException(status_code=404, detail="Task not found")
    return comment


@router.get("/tasks/{task_id}/comments", response_model=list[CommentRead])
async def list_comments(
    task_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CommentService = Depends(_comment_svc),
):
    """Oldest first, each with its author."""
    comments = await svc.list_comments(identity.user_id, task_id)
    if comments is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return comments


@router.put("/comments/{comment_id}", response_model=CommentRead)
async def update_comment(
    comment_id: IdPath,
    body: CommentUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CommentService = Depends(_comment_svc),
):
    """Only the author can edit a comment."""
    comment = await svc.update_comment(identity.user_id, comment_id, body.content)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CommentService = Depends(_comment_svc),
):
    if not await svc.delete_comment(identity.user_id, comment_id):
        raise HTTPException(status_code=404, detail="Comment not found")
    return {"message": "Comment deleted successfully"}


# ═══════════════════════════════════════════════════════════
# Attachments
# ═══════════════════════════════════════════════════════════


@router.post(
    "/tasks/{task_id}/attachments", response_model=AttachmentRead, status_code=201
)
async def upload_attachment(
    task_id: IdPath,
    file: UploadFile = File(...),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AttachmentService = Depends(_attachment_svc),
):
    # At most one byte past the cap is read.
    content = await file.read(settings.max_upload_bytes + 1)
    try:
        attachment = await svc.upload(
            identity.user_id,
            task_id,
            filename=file.filename or "file",
            content=content,
            content_type=file.content_type,
        )
    except AttachmentTooLargeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Failed to upload file: {e}")
    except SQLAlchemyError:
        raise HTTPException(status_code=500, detail="Failed to save attachment")
    if not attachment:
        raise HTTPException(status_code=404, detail="Task not found")
    return attachment


@router.get("/tasks/{task_id}/attachments", response_model=list[AttachmentRead])
async def list_attachments(
    task_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AttachmentService = Depends(_attachment_svc),
):
    attachments = await svc.list_attachments(identity.user_id, task_id)
    if attachments is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return attachments


@router.delete("/attachments/{attachment_id}")
async def delete_attachment(
    attachment_id: IdPath,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AttachmentService = Depends(_attachment_svc),
):
    """Delete the record and its stored file."""
    if not await svc.delete_attachment(identity.user_id, attachment_id):
        raise HTTPException(status_code=404, detail="Attachment not found")
    return {"message": "Attachment deleted successfully"}
