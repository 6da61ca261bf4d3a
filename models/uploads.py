"""Upload model for files attached to chat turns."""
from sqlalchemy import Column, String, Integer, BigInteger

from .threads import Base, new_id


class Upload(Base):
    """Metadata for a file stored on local disk."""
    __tablename__ = "uploads"

    id = Column(String(36), primary_key=True, default=new_id)
    filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    storage_path = Column(String, nullable=False)
    created_at = Column(BigInteger, nullable=False)
