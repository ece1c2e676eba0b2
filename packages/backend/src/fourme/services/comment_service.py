"""Comment and attachment service — the children of a task.

Both are visible to whoever owns the task's project. Comments add an
authorship rule on top: only the user who wrote a comment may edit or
delete it, and they must still own the project.

Attachments keep their bytes in the object store and only the public
URL here. The two stores can't share a transaction, so the service
cleans up after itself: an upload whose row can't be saved is deleted
again, and deleting a row also deletes its object.
"""

from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fourme.auth.ownership import ResourceKind, owned_ids, owns
from fourme.config import settings
from fourme.db.models import Attachment, Comment
from fourme.services.storage import ObjectStore, StorageError

logger = structlog.get_logger()


class AttachmentTooLargeError(Exception):
    """The uploaded file exceeds max_upload_bytes."""


class CommentService:
    """Business logic for task comments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_comment(
        self, user_id: int, task_id: int, content: str
    ) -> Optional[Comment]:
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None
        comment = Comment(task_id=task_id, user_id=user_id, content=content)
        self.db.add(comment)
        await self.db.commit()
        return await self._load(comment.id)

    async def list_comments(
        self, user_id: int, task_id: int
    ) -> Optional[list[Comment]]:
        """Oldest first, each with its author."""
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None
        result = await self.db.execute(
            select(Comment)
            .where(Comment.task_id == task_id)
            .options(selectinload(Comment.user))
            .order_by(Comment.created_at, Comment.id)
        )
        return list(result.scalars().all())

    async def update_comment(
        self, user_id: int, comment_id: int, content: str
    ) -> Optional[Comment]:
        comment = await self._authored(user_id, comment_id)
        if not comment:
            return None
        comment.content = content
        await self.db.commit()
        return await self._load(comment.id)

    async def delete_comment(self, user_id: int, comment_id: int) -> bool:
        result = await self.db.execute(
            delete(Comment).where(
                Comment.id == comment_id,
                Comment.user_id == user_id,
                Comment.id.in_(owned_ids(ResourceKind.COMMENT, user_id)),
            ).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def _authored(self, user_id: int, comment_id: int) -> Optional[Comment]:
        result = await self.db.execute(
            select(Comment).where(
                Comment.id == comment_id,
                Comment.user_id == user_id,
                Comment.id.in_(owned_ids(ResourceKind.COMMENT, user_id)),
            )
        )
        return result.scalars().first()

    async def _load(self, comment_id: int) -> Optional[Comment]:
        result = await self.db.execute(
            select(Comment)
            .where(Comment.id == comment_id)
            .options(selectinload(Comment.user))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()


class AttachmentService:
    """Business logic for task attachments."""

    def __init__(self, db: AsyncSession, store: ObjectStore):
        self.db = db
        self.store = store

    async def upload(
        self,
        user_id: int,
        task_id: int,
        filename: str,
        content: bytes,
        content_type: Optional[str],
    ) -> Optional[Attachment]:
        """Store the file, then record it. Returns None if the task isn't visible."""
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None
        if len(content) > settings.max_upload_bytes:
            raise AttachmentTooLargeError(
                f"File exceeds the {settings.max_upload_bytes} byte limit"
            )

        path = self.store.object_path(task_id, filename)
        file_url = await self.store.upload(path, content, content_type)

        attachment = Attachment(
            task_id=task_id,
            filename=filename,
            file_url=file_url,
            file_type=content_type,
            size=len(content),
        )
        self.db.add(attachment)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            await self._discard(path)
            raise

        await self.db.refresh(attachment)
        logger.info(
            "attachment.uploaded",
            attachment_id=attachment.id,
            task_id=task_id,
            size=attachment.size,
        )
        return attachment

    async def list_attachments(
        self, user_id: int, task_id: int
    ) -> Optional[list[Attachment]]:
        """Newest first."""
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None
        result = await self.db.execute(
            select(Attachment)
            .where(Attachment.task_id == task_id)
            .order_by(Attachment.uploaded_at.desc(), Attachment.id.desc())
        )
        return list(result.scalars().all())

    async def delete_attachment(self, user_id: int, attachment_id: int) -> bool:
        result = await self.db.execute(
            select(Attachment).where(
                Attachment.id == attachment_id,
                Attachment.id.in_(owned_ids(ResourceKind.ATTACHMENT, user_id)),
            )
        )
        attachment = result.scalars().first()
        if not attachment:
            return False

        file_url = attachment.file_url
        await self.db.delete(attachment)
        await self.db.commit()

        path = self.store.path_from_url(file_url)
        if path:
            await self._discard(path)
        return True

    async def _discard(self, path: str) -> None:
        """Best-effort object delete. Failures are logged, not raised."""
        try:
            await self.store.delete(path)
        except StorageError as e:
            logger.warning("storage.delete_failed", path=path, error=str(e))
