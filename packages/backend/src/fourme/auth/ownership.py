"""Ownership gate — join-based authorization for every non-user resource.

Only projects store an owner. Everything else is owned transitively:

    board      → project
    task       → board → project
    label      → project
    comment    → task → board → project
    attachment → task → board → project

owns() answers "can this user see resource X?" with a single EXISTS
query that walks that chain. It runs on every call; ownership is
never cached between requests. owned_ids() exposes the same walk as a
sub-select so UPDATE and DELETE statements can carry the ownership
predicate in their own WHERE clause.

Callers report a failed check as 404, never 403, so a non-owner can't
tell "exists but not yours" from "doesn't exist".
"""

import enum

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.db.models import Attachment, Board, Comment, Label, Project, Task


class ResourceKind(str, enum.Enum):
    PROJECT = "project"
    BOARD = "board"
    TASK = "task"
    LABEL = "label"
    COMMENT = "comment"
    ATTACHMENT = "attachment"


# (root model, joins from the root up to projects)
_CHAINS = {
    ResourceKind.PROJECT: (Project, ()),
    ResourceKind.BOARD: (
        Board,
        ((Project, Board.project_id == Project.id),),
    ),
    ResourceKind.TASK: (
        Task,
        (
            (Board, Task.board_id == Board.id),
            (Project, Board.project_id == Project.id),
        ),
    ),
    ResourceKind.LABEL: (
        Label,
        ((Project, Label.project_id == Project.id),),
    ),
    ResourceKind.COMMENT: (
        Comment,
        (
            (Task, Comment.task_id == Task.id),
            (Board, Task.board_id == Board.id),
            (Project, Board.project_id == Project.id),
        ),
    ),
    ResourceKind.ATTACHMENT: (
        Attachment,
        (
            (Task, Attachment.task_id == Task.id),
            (Board, Task.board_id == Board.id),
            (Project, Board.project_id == Project.id),
        ),
    ),
}


def owned_ids(kind: ResourceKind, user_id: int) -> Select:
    """SELECT of every `kind` id reachable from projects owned by `user_id`."""
    root, joins = _CHAINS[kind]
    query = select(root.id)
    for model, onclause in joins:
        query = query.join(model, onclause)
    # Uncorrelated: enclosing UPDATE/DELETE statements name the same tables.
    return query.where(Project.user_id == user_id).correlate(None)


async def owns(
    db: AsyncSession,
    user_id: int,
    kind: ResourceKind,
    resource_id: int,
) -> bool:
    """True if `resource_id` of `kind` belongs to a project owned by `user_id`."""
    root, _ = _CHAINS[kind]
    reachable = owned_ids(kind, user_id).where(root.id == resource_id)
    return bool(await db.scalar(select(reachable.exists())))
