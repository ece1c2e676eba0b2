"""Project service — projects, their boards, and their labels.

Projects are the only rows that name an owner. Boards and labels are
reached through their project, so every method takes the acting
user's id and checks the chain before touching anything. A resource
the user can't see is reported as None/False, exactly like one that
doesn't exist.

Deletes are single statements with the ownership predicate in the
WHERE clause; the database cascades to everything below.
"""

from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.auth.ownership import ResourceKind, owned_ids, owns
from fourme.db.models import Board, Label, Project
from fourme.schemas.project import (
    BoardCreate,
    BoardUpdate,
    LabelCreate,
    LabelUpdate,
    ProjectCreate,
    ProjectUpdate,
)

logger = structlog.get_logger()


class ProjectService:
    """Business logic for projects, boards, and labels."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Projects ────────────────────────────────────────

    async def create_project(self, user_id: int, body: ProjectCreate) -> Project:
        project = Project(user_id=user_id, **body.model_dump())
        self.db.add(project)
        await self.db.commit()
        await self.db.refresh(project)
        logger.info("project.created", project_id=project.id, user_id=user_id)
        return project

    async def list_projects(self, user_id: int) -> list[Project]:
        """Newest first."""
        result = await self.db.execute(
            select(Project)
            .where(Project.user_id == user_id)
            .order_by(Project.created_at.desc(), Project.id.desc())
        )
        return list(result.scalars().all())

    async def get_project(self, user_id: int, project_id: int) -> Optional[Project]:
        result = await self.db.execute(
            select(Project).where(
                Project.id == project_id, Project.user_id == user_id
            )
        )
        return result.scalars().first()

    async def update_project(
        self, user_id: int, project_id: int, body: ProjectUpdate
    ) -> Optional[Project]:
        project = await self.get_project(user_id, project_id)
        if not project:
            return None
        return await self._apply(project, body.model_dump(exclude_unset=True))

    async def delete_project(self, user_id: int, project_id: int) -> bool:
        result = await self.db.execute(
            delete(Project).where(
                Project.id == project_id, Project.user_id == user_id
            ).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    # ─── Boards ──────────────────────────────────────────

    async def create_board(
        self, user_id: int, project_id: int, body: BoardCreate
    ) -> Optional[Board]:
        if not await owns(self.db, user_id, ResourceKind.PROJECT, project_id):
            return None
        board = Board(project_id=project_id, **body.model_dump())
        self.db.add(board)
        await self.db.commit()
        await self.db.refresh(board)
        return board

    async def list_boards(
        self, user_id: int, project_id: int
    ) -> Optional[list[Board]]:
        """Boards in position order. None if the project isn't visible."""
        if not await owns(self.db, user_id, ResourceKind.PROJECT, project_id):
            return None
        result = await self.db.execute(
            select(Board)
            .where(Board.project_id == project_id)
            .order_by(Board.position, Board.id)
        )
        return list(result.scalars().all())

    async def update_board(
        self, user_id: int, board_id: int, body: BoardUpdate
    ) -> Optional[Board]:
        board = await self._owned(Board, ResourceKind.BOARD, user_id, board_id)
        if not board:
            return None
        return await self._apply(board, body.model_dump(exclude_unset=True))

    async def delete_board(self, user_id: int, board_id: int) -> bool:
        result = await self.db.execute(
            delete(Board).where(
                Board.id == board_id,
                Board.id.in_(owned_ids(ResourceKind.BOARD, user_id)),
            ).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    # ─── Labels ──────────────────────────────────────────

    async def create_label(
        self, user_id: int, project_id: int, body: LabelCreate
    ) -> Optional[Label]:
        if not await owns(self.db, user_id, ResourceKind.PROJECT, project_id):
            return None
        label = Label(project_id=project_id, **body.model_dump())
        self.db.add(label)
        await self.db.commit()
        await self.db.refresh(label)
        return label

    async def list_labels(
        self, user_id: int, project_id: int
    ) -> Optional[list[Label]]:
        if not await owns(self.db, user_id, ResourceKind.PROJECT, project_id):
            return None
        result = await self.db.execute(
            select(Label)
            .where(Label.project_id == project_id)
            .order_by(Label.created_at, Label.id)
        )
        return list(result.scalars().all())

    async def update_label(
        self, user_id: int, label_id: int, body: LabelUpdate
    ) -> Optional[Label]:
        label = await self._owned(Label, ResourceKind.LABEL, user_id, label_id)
        if not label:
            return None
        return await self._apply(label, body.model_dump(exclude_unset=True))

    async def delete_label(self, user_id: int, label_id: int) -> bool:
        result = await self.db.execute(
            delete(Label).where(
                Label.id == label_id,
                Label.id.in_(owned_ids(ResourceKind.LABEL, user_id)),
            ).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    # ─── Helpers ─────────────────────────────────────────

    async def _owned(self, model, kind: ResourceKind, user_id: int, resource_id: int):
        result = await self.db.execute(
            select(model).where(
                model.id == resource_id,
                model.id.in_(owned_ids(kind, user_id)),
            )
        )
        return result.scalars().first()

    async def _apply(self, obj, fields: dict):
        """Set the given attributes (explicit nulls included) and commit."""
        for name, value in fields.items():
            setattr(obj, name, value)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj
