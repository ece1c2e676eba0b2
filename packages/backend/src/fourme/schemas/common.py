"""Shared request pieces: bounded ids and the partial-update base."""

from typing import Annotated, Any, ClassVar

from fastapi import Path
from pydantic import BaseModel, Field, model_validator

# Ids and positions are INTEGER (int4) columns.
MAX_INT = 2**31 - 1

RowId = Annotated[int, Field(ge=1, le=MAX_INT)]
Position = Annotated[int, Field(ge=0, le=MAX_INT)]
IdPath = Annotated[int, Path(ge=1, le=MAX_INT)]


class PartialUpdate(BaseModel):
    """Body whose present fields are the change set.

    Fields listed in `not_nullable` may be left out but not sent as null;
    every other field accepts null to clear the column.
    """

    not_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_null_for_required_columns(self):
        for name in self.not_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} may be omitted but not null")
        return self

    def changes(self) -> dict[str, Any]:
        """Present fields only, JSON-ready (datetimes as ISO strings)."""
        return self.model_dump(mode="json", exclude_unset=True)
