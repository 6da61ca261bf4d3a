"""Thread model for conversation management."""
from sqlalchemy import Column, String, BigInteger, Index
from sqlalchemy.orm import declarative_base, relationship
from uuid import uuid4

Base = declarative_base()


def new_id() -> str:
    return str(uuid4())


class Thread(Base):
    """
    SQLAlchemy model for conversation threads.

    Each thread owns an ordered list of messages; deleting a thread removes
    its messages through the foreign key cascade.
    """
    __tablename__ = "threads"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False, default="New Chat")
    # Epoch milliseconds
    created_at = Column(BigInteger, nullable=False)

    messages = relationship(
        "Message",
        back_populates="thread",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )

    __table_args__ = (Index("idx_threads_created_at", "created_at"),)
