"""Pydantic schemas for thread-related requests and responses."""
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class ThreadCreate(BaseModel):
    """Schema for creating a thread."""
    title: Optional[str] = Field(default="New Chat", max_length=255)


class ThreadUpdate(BaseModel):
    """Schema for renaming a thread."""
    title: str = Field(..., min_length=1, max_length=255)


class ThreadResponse(BaseModel):
    """Schema for thread responses."""
    id: str
    title: str
    created_at: int

    model_config = ConfigDict(from_attributes=True)
