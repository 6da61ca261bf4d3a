"""Editing a user message and regenerating everything after it."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from models.messages import Message, MessageRole
from services.chat import ChatOrchestrator, Turn
from services.errors import InvalidEditError, ThreadNotFoundError
from services.history import from_records
from services.threads import ThreadService

logger = logging.getLogger(__name__)


@dataclass
class EditOutcome:
    message: Message
    deleted: int
    history: List[Message]


class EditController:
    """
    Replaces a user message's content and truncates the thread after it.

    Truncation is committed before regeneration starts and is not undone if
    the regenerated turn fails.
    """

    def __init__(self, threads: ThreadService, orchestrator: ChatOrchestrator):
        self.threads = threads
        self.orchestrator = orchestrator

    def edit(self, thread_id: str, message_id: str, content: str) -> EditOutcome:
        """
        Apply the edit and truncate.

        If the message no longer exists, nothing is deleted and the new
        content is saved as a fresh user message so the thread can still
        be regenerated from it.

        Raises:
            ThreadNotFoundError: if the thread does not exist.
            InvalidEditError: if the message belongs to another thread or is
                not user-authored.
        """
        if self.threads.get_thread(thread_id) is None:
            raise ThreadNotFoundError(thread_id)

        existing = self.threads.get_message(message_id)
        if existing is not None and existing.thread_id != thread_id:
            raise InvalidEditError(f"Message {message_id} does not belong to thread {thread_id}")
        if existing is not None and existing.role != MessageRole.USER.value:
            raise InvalidEditError("Only user messages can be edited")

        message = self.threads.update_message(message_id, content) if existing else None
        if message is None:
            logger.warning(f"Message {message_id} vanished before edit; saving content as a new message")
            message = self.threads.save_message(thread_id, MessageRole.USER, content)
            deleted = 0
        else:
            deleted = self.threads.delete_messages_after(thread_id, message.created_at)

        history = [
            record for record in self.threads.list_messages(thread_id, limit=None)
            if record.created_at <= message.created_at
        ]
        logger.info(f"Edited message {message.id}; truncated {deleted} later messages")
        return EditOutcome(message=message, deleted=deleted, history=history)

    def regenerate(self, outcome: EditOutcome, file_ids: Optional[List[str]] = None) -> Turn:
        """Assemble a fresh turn over the truncated history."""
        return self.orchestrator.prepare_regeneration(
            outcome.message.thread_id, from_records(outcome.history), file_ids
        )
