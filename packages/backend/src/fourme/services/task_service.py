"""Task service — every task mutation is one all-or-nothing transaction.

Each write runs in the same fixed order inside a single unit:

1. fields  — INSERT/UPDATE the task row
2. labels  — rewrite the task's label associations (when supplied)
3. history — append exactly one task_history entry
4. commit  — or roll everything back

No intermediate state is ever visible: if any step raises, the session
is rolled back and the caller gets TaskTransactionError (or the domain
error that caused it). Ownership is checked on every call, and the move
and delete statements carry the ownership predicate in their own WHERE
clause so a foreign board can never be touched.

Reads and writes that fail the ownership check return None, and the
route turns that into a 404.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fourme.auth.ownership import ResourceKind, owned_ids, owns
from fourme.db.models import Board, Label, Task, TaskHistory, task_labels, utcnow
from fourme.history.actions import TASK_CREATED, TASK_MOVED, TASK_UPDATED
from fourme.history.store import HistoryStore
from fourme.schemas.task import TaskCreate, TaskMove, TaskUpdate

logger = structlog.get_logger()


class TaskTransactionError(Exception):
    """A database step of a task mutation failed; nothing was committed."""


class LabelNotFoundError(Exception):
    """A supplied label id doesn't exist in the task's project."""


class TaskService:
    """Business logic for tasks, their labels, and their history."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.history = HistoryStore(db)

    @asynccontextmanager
    async def _atomic(self, action: str):
        """Commit on success; roll back and translate storage errors on failure."""
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("task.transaction_failed", action=action, error=str(e))
            raise TaskTransactionError(f"Failed to {action} task") from e
        except Exception:
            await self.db.rollback()
            raise

    # ─── Reads ───────────────────────────────────────────

    async def get_task(self, user_id: int, task_id: int) -> Optional[Task]:
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None
        return await self._load(task_id)

    async def list_tasks(self, user_id: int, board_id: int) -> Optional[list[Task]]:
        """Tasks on a board by position. None if the board isn't visible."""
        if not await owns(self.db, user_id, ResourceKind.BOARD, board_id):
            return None
        result = await self.db.execute(
            select(Task)
            .where(Task.board_id == board_id)
            .options(selectinload(Task.labels))
            .order_by(Task.position, Task.id)
        )
        return list(result.scalars().all())

    async def get_history(
        self, user_id: int, task_id: int
    ) -> Optional[list[TaskHistory]]:
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None
        return await self.history.read_task(task_id)

    # ─── Create ──────────────────────────────────────────

    async def create_task(
        self, user_id: int, board_id: int, body: TaskCreate
    ) -> Optional[Task]:
        """Insert a task in 'todo', link its labels, record 'created'."""
        if not await owns(self.db, user_id, ResourceKind.BOARD, board_id):
            return None

        async with self._atomic("create"):
            position = body.position
            if position is None:
                position = await self._next_position(board_id)

            task = Task(
                board_id=board_id,
                title=body.title,
                description=body.description,
                status="todo",
                priority=body.priority,
                assignee_id=body.assignee_id,
                due_date=body.due_date,
                position=position,
            )
            self.db.add(task)
            await self.db.flush()

            await self._link_labels(task.id, board_id, body.label_ids)
            await self.history.append(
                task_id=task.id,
                user_id=user_id,
                action=TASK_CREATED,
                changes={"title": task.title},
            )

        logger.info("task.created", task_id=task.id, board_id=board_id, user_id=user_id)
        return await self._load(task.id)

    # ─── Update ──────────────────────────────────────────

    async def update_task(
        self, user_id: int, task_id: int, body: TaskUpdate
    ) -> Optional[Task]:
        """Apply the fields present in `body`; record them as one 'updated' entry.

        An empty body writes nothing and records nothing.
        """
        if not await owns(self.db, user_id, ResourceKind.TASK, task_id):
            return None

        changes = body.changes()
        if not changes:
            return await self._load(task_id)

        async with self._atomic("update"):
            columns = {
                name: getattr(body, name)
                for name in changes
                if name != "label_ids"
            }
            columns["updated_at"] = utcnow()
            await self.db.execute(
                update(Task)
                .where(
                    Task.id == task_id,
                    Task.id.in_(owned_ids(ResourceKind.TASK, user_id)),
                )
                .values(**columns)
                .execution_options(synchronize_session=False)
            )

            if "label_ids" in changes:
                board_id = await self.db.scalar(
                    select(Task.board_id).where(Task.id == task_id)
                )
                await self.db.execute(
                    delete(task_labels).where(task_labels.c.task_id == task_id)
                )
                await self._link_labels(task_id, board_id, body.label_ids)

            await self.history.append(
                task_id=task_id,
                user_id=user_id,
                action=TASK_UPDATED,
                changes=changes,
            )

        logger.info("task.updated", task_id=task_id, fields=sorted(changes))
        return await self._load(task_id)

    # ─── Move ────────────────────────────────────────────

    async def move_task(
        self, user_id: int, task_id: int, body: TaskMove
    ) -> Optional[Task]:
        """Move a task to another board the same user owns.

        One UPDATE whose WHERE requires both the current and the target
        board to be owned by `user_id`. Zero rows means one of them isn't
        visible, and nothing changes. Moving into another project unlinks
        the labels of the old one.
        """
        async with self._atomic("move"):
            owned_boards = owned_ids(ResourceKind.BOARD, user_id)
            target_owned = (
                owned_ids(ResourceKind.BOARD, user_id)
                .where(Board.id == body.board_id)
                .exists()
            )
            result = await self.db.execute(
                update(Task)
                .where(
                    Task.id == task_id,
                    Task.board_id.in_(owned_boards),
                    target_owned,
                )
                .values(
                    board_id=body.board_id,
                    position=body.position,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None

            # Labels belong to a project; links into any other project go.
            target_project = (
                select(Board.project_id)
                .where(Board.id == body.board_id)
                .scalar_subquery()
            )
            await self.db.execute(
                delete(task_labels).where(
                    task_labels.c.task_id == task_id,
                    task_labels.c.label_id.in_(
                        select(Label.id).where(Label.project_id != target_project)
                    ),
                )
            )

            await self.history.append(
                task_id=task_id,
                user_id=user_id,
                action=TASK_MOVED,
                changes={"board_id": body.board_id, "position": body.position},
            )

        logger.info("task.moved", task_id=task_id, board_id=body.board_id)
        return await self._load(task_id)

    # ─── Delete ──────────────────────────────────────────

    async def delete_task(self, user_id: int, task_id: int) -> bool:
        """Delete a task; comments, attachments, labels links and history cascade."""
        async with self._atomic("delete"):
            result = await self.db.execute(
                delete(Task)
                .where(
                    Task.id == task_id,
                    Task.board_id.in_(owned_ids(ResourceKind.BOARD, user_id)),
                )
                .execution_options(synchronize_session=False)
            )
        deleted = result.rowcount > 0
        if deleted:
            logger.info("task.deleted", task_id=task_id, user_id=user_id)
        return deleted

    # ─── Helpers ─────────────────────────────────────────

    async def _load(self, task_id: int) -> Optional[Task]:
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id)
            .options(selectinload(Task.labels))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _next_position(self, board_id: int) -> int:
        last = await self.db.scalar(
            select(func.max(Task.position)).where(Task.board_id == board_id)
        )
        return 0 if last is None else last + 1

    async def _link_labels(
        self, task_id: int, board_id: int, label_ids: list[int]
    ) -> None:
        """Associate labels with a task. All must belong to the board's project."""
        wanted = list(dict.fromkeys(label_ids))
        if not wanted:
            return

        project_id = (
            select(Board.project_id).where(Board.id == board_id).scalar_subquery()
        )
        found = set(
            (
                await self.db.scalars(
                    select(Label.id).where(
                        Label.id.in_(wanted), Label.project_id == project_id
                    )
                )
            ).all()
        )
        missing = [label_id for label_id in wanted if label_id not in found]
        if missing:
            raise LabelNotFoundError(
                f"Labels not found in this project: {missing}"
            )

        await self.db.execute(
            insert(task_labels),
            [{"task_id": task_id, "label_id": label_id} for label_id in wanted],
        )
