"""
schemas/note.py
---------------
Pydantic models for notes. tenant_id and user_id are never accepted from
the client; they come from the authenticated principal.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator, model_validator

from notes_saas.schemas.base import CamelModel


class NoteCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=50000)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v


class NoteUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=50000)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be blank")
        return v

    @model_validator(mode="after")
    def require_change(self) -> "NoteUpdate":
        if self.title is None and self.content is None:
            raise ValueError("Provide a title or content to update")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class NoteView(CamelModel):
    id: str
    title: str
    content: str
    user_id: str
    tenant_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NoteListResponse(CamelModel):
    notes: list[NoteView]
    total: int
    skip: int
    limit: int
