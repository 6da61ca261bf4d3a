"""Pydantic schemas for message requests and responses."""
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from models.messages import MessageRole


class MessageCreate(BaseModel):
    """Schema for appending a message to a thread."""
    role: MessageRole
    content: str = Field(..., min_length=1)


class MessageEdit(BaseModel):
    """Schema for editing a user message, optionally regenerating the reply."""
    content: str = Field(..., min_length=1)
    regenerate: bool = True
    stream: bool = True
    file_ids: List[str] = Field(default_factory=list, alias="fileIds")

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    """Schema for message responses."""
    id: str
    thread_id: str
    role: MessageRole
    content: str
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class DeleteResult(BaseModel):
    ok: bool = True
    deleted: Optional[int] = None
