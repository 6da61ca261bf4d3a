"""Upload schemas."""
from pydantic import BaseModel, ConfigDict


class UploadResponse(BaseModel):
    """Schema for upload metadata responses."""
    id: str
    filename: str
    mime_type: str
    size_bytes: int
    created_at: int

    model_config = ConfigDict(from_attributes=True)
