"""Pydantic schemas for projects, boards, and labels.

Create schemas carry the required fields; Update schemas make every
field optional and are applied with exclude_unset, so a field the
client leaves out is never touched.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fourme.db.models import DEFAULT_COLOR
from fourme.schemas.common import PartialUpdate, Position

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# ─── Projects ────────────────────────────────────────────

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: str = Field(default=DEFAULT_COLOR, pattern=COLOR_PATTERN)


class ProjectUpdate(PartialUpdate):
    not_nullable = ("name", "color")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class ProjectRead(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str]
    color: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ─── Boards ──────────────────────────────────────────────

class BoardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    position: Position = 0


class BoardUpdate(PartialUpdate):
    not_nullable = ("name", "position")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    position: Optional[Position] = None


class BoardRead(BaseModel):
    id: int
    project_id: int
    name: str
    position: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ─── Labels ──────────────────────────────────────────────

class LabelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(default=DEFAULT_COLOR, pattern=COLOR_PATTERN)


class LabelUpdate(PartialUpdate):
    not_nullable = ("name", "color")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class LabelRead(BaseModel):
    id: int
    project_id: int
    name: str
    color: str
    created_at: datetime

    model_config = {"from_attributes": True}
