"""History store — append-only task audit log.

Every task mutation appends exactly one entry in the same transaction
as the mutation itself; the store only flushes, the caller commits.
Entries are never updated or deleted (they disappear only when the
task itself is deleted, through ON DELETE CASCADE).
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fourme.db.models import TaskHistory
from fourme.history.actions import ALL_ACTIONS


class HistoryStore:
    """Append-only history backed by the task_history table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        task_id: int,
        user_id: int,
        action: str,
        changes: dict,
    ) -> TaskHistory:
        """Append an entry for a task. Returns the flushed (uncommitted) row."""
        if action not in ALL_ACTIONS:
            raise ValueError(f"Unknown history action: {action!r}")
        entry = TaskHistory(
            task_id=task_id,
            user_id=user_id,
            action=action,
            changes=changes,
        )
        self.db.add(entry)
        await self.db.flush()  # get the auto-generated id
        return entry

    async def read_task(self, task_id: int) -> list[TaskHistory]:
        """The whole trail of a task, most recent first, with the acting user loaded."""
        result = await self.db.execute(
            select(TaskHistory)
            .where(TaskHistory.task_id == task_id)
            .options(selectinload(TaskHistory.user))
            .order_by(TaskHistory.created_at.desc(), TaskHistory.id.desc())
        )
        return list(result.scalars().all())
