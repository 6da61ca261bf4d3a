"""Thread service for thread and message CRUD operations."""
import logging
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session, sessionmaker

from models.threads import Thread
from models.messages import Message, MessageRole
from services.errors import MessageNotFoundError, ThreadNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_THREAD_TITLE = "New Chat"


def now_ms() -> int:
    return time.time_ns() // 1_000_000


class ThreadService:
    """
    Service class for thread and message persistence.

    Owns its session factory; every operation runs in its own session and
    commits independently.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Threads

    def create_thread(self, title: Optional[str] = None) -> Thread:
        """Create a new thread."""
        with self._session() as db:
            db_thread = Thread(title=title or DEFAULT_THREAD_TITLE, created_at=now_ms())
            db.add(db_thread)
            db.commit()
            db.refresh(db_thread)
            logger.debug(f"Created thread {db_thread.id}")
            return db_thread

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        """Retrieve a thread by ID."""
        with self._session() as db:
            return db.get(Thread, thread_id)

    def list_threads(self, limit: int = 50, offset: int = 0) -> List[Thread]:
        """Retrieve threads, most recent first."""
        with self._session() as db:
            return db.query(Thread).order_by(
                desc(Thread.created_at)
            ).offset(offset).limit(limit).all()

    def rename_thread(self, thread_id: str, title: str) -> Optional[Thread]:
        """Update a thread's title."""
        with self._session() as db:
            thread = db.get(Thread, thread_id)
            if not thread:
                return None
            thread.title = title
            db.commit()
            db.refresh(thread)
            return thread

    def delete_thread(self, thread_id: str) -> bool:
        """Delete a thread; its messages go with it."""
        with self._session() as db:
            thread = db.get(Thread, thread_id)
            if not thread:
                return False
            db.delete(thread)
            db.commit()
            logger.debug(f"Deleted thread {thread_id}")
            return True

    # Messages

    def save_message(self, thread_id: str, role: MessageRole, content: str) -> Message:
        """
        Persist a message linked to its thread.

        Raises:
            ThreadNotFoundError: if the thread does not exist.
        """
        role = MessageRole(role)
        with self._session() as db:
            if db.get(Thread, thread_id) is None:
                raise ThreadNotFoundError(thread_id)

            # Keep created_at strictly increasing within the thread
            last = db.query(func.max(Message.created_at)).filter(
                Message.thread_id == thread_id
            ).scalar()
            created_at = now_ms()
            if last is not None and created_at <= last:
                created_at = last + 1

            message = Message(
                thread_id=thread_id,
                role=role.value,
                content=content,
                created_at=created_at,
            )
            db.add(message)
            db.commit()
            db.refresh(message)
            return message

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._session() as db:
            return db.get(Message, message_id)

    def get_thread_message(self, thread_id: str, message_id: str) -> Message:
        """
        Fetch a message that must belong to the given thread.

        Raises:
            MessageNotFoundError: if it does not exist or lives in another thread.
        """
        message = self.get_message(message_id)
        if message is None or message.thread_id != thread_id:
            raise MessageNotFoundError(message_id)
        return message

    def list_messages(self, thread_id: str, limit: Optional[int] = 200, offset: int = 0) -> List[Message]:
        """Return messages in chronological order for the thread; ``limit=None`` returns all."""
        with self._session() as db:
            query = db.query(Message).filter(
                Message.thread_id == thread_id
            ).order_by(
                Message.created_at
            ).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def count_messages(self, thread_id: str, role: Optional[MessageRole] = None) -> int:
        with self._session() as db:
            query = db.query(func.count(Message.id)).filter(Message.thread_id == thread_id)
            if role is not None:
                query = query.filter(Message.role == MessageRole(role).value)
            return query.scalar() or 0

    def update_message(self, message_id: str, content: str) -> Optional[Message]:
        """Replace a message's content; id, role and timestamp are untouched."""
        with self._session() as db:
            message = db.get(Message, message_id)
            if not message:
                return None
            message.content = content
            db.commit()
            db.refresh(message)
            return message

    def delete_message(self, message_id: str) -> bool:
        with self._session() as db:
            deleted = db.query(Message).filter(Message.id == message_id).delete(
                synchronize_session=False
            )
            db.commit()
            return deleted > 0

    def delete_messages_after(self, thread_id: str, timestamp: int) -> int:
        """Delete every message in the thread created strictly after ``timestamp``."""
        with self._session() as db:
            deleted = db.query(Message).filter(
                Message.thread_id == thread_id,
                Message.created_at > timestamp,
            ).delete(synchronize_session=False)
            db.commit()
            logger.debug(f"Deleted {deleted} messages after {timestamp} in thread {thread_id}")
            return deleted
