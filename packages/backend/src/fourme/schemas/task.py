"""Pydantic schemas for tasks, moves, and task history.

TaskUpdate is the partial-update contract: the set of fields the client
actually sent (model_fields_set) is the change set. A field that is
absent stays as it is; a field sent as null overwrites the column with
NULL, which is only allowed for nullable columns.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from fourme.schemas.common import PartialUpdate, Position, RowId
from fourme.schemas.project import LabelRead
from fourme.schemas.user import UserSummary

PRIORITY_PATTERN = r"^(low|medium|high)$"


# ─── Tasks ───────────────────────────────────────────────

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: str = Field(default="medium", pattern=PRIORITY_PATTERN)
    assignee_id: Optional[RowId] = None
    due_date: Optional[datetime] = None
    position: Optional[Position] = Field(None, description="Defaults to the end of the board")
    label_ids: list[RowId] = Field(default_factory=list)


class TaskUpdate(PartialUpdate):
    """Partial update — only the fields present in the body are applied."""

    not_nullable = ("title", "status", "priority", "position", "label_ids")

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[str] = Field(None, min_length=1, max_length=50)
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    assignee_id: Optional[RowId] = None
    due_date: Optional[datetime] = None
    position: Optional[Position] = None
    label_ids: Optional[list[RowId]] = None


class TaskMove(BaseModel):
    board_id: RowId
    position: Position = 0


class TaskRead(BaseModel):
    id: int
    board_id: int
    title: str
    description: Optional[str]
    status: str
    priority: str
    assignee_id: Optional[int]
    due_date: Optional[datetime]
    position: int
    created_at: datetime
    updated_at: datetime
    labels: list[LabelRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}


# ─── History ─────────────────────────────────────────────

class HistoryRead(BaseModel):
    id: int
    task_id: int
    user_id: int
    action: str
    changes: dict[str, Any]
    created_at: datetime
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}
