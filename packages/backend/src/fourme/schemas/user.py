"""Pydantic schemas for users as they appear in API responses.

Password hashes and Google ids are never serialised.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserSummary(BaseModel):
    """Embedded author/actor on comments and history entries."""
    id: int
    username: str
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class UserRead(BaseModel):
    id: int
    username: str
    email: str
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
