"""Message model for thread history."""
import enum

from sqlalchemy import Column, String, Text, BigInteger, ForeignKey, Index
from sqlalchemy.orm import relationship

from .threads import Base, new_id


class MessageRole(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(Base):
    """
    SQLAlchemy model for a single message within a thread.

    ``created_at`` is strictly increasing within a thread so that ordering by
    it matches insertion order.
    """
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    thread_id = Column(String(36), ForeignKey("threads.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(BigInteger, nullable=False)

    thread = relationship("Thread", back_populates="messages")

    __table_args__ = (Index("idx_messages_thread_created_at", "thread_id", "created_at"),)
