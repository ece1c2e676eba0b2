"""Pydantic schemas for comments and attachments."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fourme.schemas.user import UserSummary


# ─── Comments ────────────────────────────────────────────

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class CommentRead(BaseModel):
    id: int
    task_id: int
    user_id: int
    content: str
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


# ─── Attachments ─────────────────────────────────────────

class AttachmentRead(BaseModel):
    id: int
    task_id: int
    filename: str
    file_url: str
    file_type: Optional[str]
    size: Optional[int]
    uploaded_at: datetime

    model_config = {"from_attributes": True}
