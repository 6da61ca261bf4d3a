"""Turn orchestration: persistence, tool eligibility, streaming and finish handling."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, SystemMessage

from dtos.chat_request import ChatMessage, ChatRequest, message_text
from models.messages import Message, MessageRole
from services.confirmation import ConfirmationGate
from services.errors import ThreadNotFoundError
from services.history import last_user_text, to_langchain_messages
from services.threads import ThreadService, DEFAULT_THREAD_TITLE
from services.titles import generate_title
from services.tools import ToolRegistry
from services.uploads import UploadService, build_upload_context

logger = logging.getLogger(__name__)

TOOL_MARKER = "@"


@dataclass
class Turn:
    """Everything one generation turn needs, assembled before the model runs."""
    thread_id: str
    history: List[BaseMessage]
    gate: ConfirmationGate
    tools_enabled: bool
    user_message: Optional[Message] = None


@dataclass
class TurnResult:
    text: str = ""
    message: Optional[Message] = None
    pending: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """Final turn payload, shared by the SSE ``done`` event and the JSON response."""
        return {
            "text": self.text,
            "messageId": self.message.id if self.message else None,
            "pendingToolCalls": self.pending,
        }


def wants_tools(text: str) -> bool:
    """Tools are attached only when the user references workbook items with ``@``."""
    return TOOL_MARKER in text


class ChatOrchestrator:
    """
    Drives one turn at a time for a thread.

    The triggering user message is saved before the model is called; the
    assistant reply is saved only when the turn completes with text.
    """

    def __init__(
        self,
        threads: ThreadService,
        uploads: UploadService,
        registry: ToolRegistry,
        model_factory: Callable[[], BaseChatModel],
        max_tool_steps: int = 5,
        upload_context_bytes: int = 5000,
    ):
        self.threads = threads
        self.uploads = uploads
        self.registry = registry
        self.model_factory = model_factory
        self.max_tool_steps = max_tool_steps
        self.upload_context_bytes = upload_context_bytes
        self._running: Set[asyncio.Task] = set()

    def prepare_turn(self, request: ChatRequest) -> Turn:
        """
        Persist the triggering user message (if the request ends with one)
        and assemble the turn.

        Raises:
            ThreadNotFoundError: if the thread does not exist.
        """
        thread_id = request.thread_id
        if self.threads.get_thread(thread_id) is None:
            raise ThreadNotFoundError(thread_id)

        user_message = None
        last = request.messages[-1] if request.messages else None
        if last is not None and last.role == MessageRole.USER:
            text = message_text(last.content)
            if text:
                user_message = self.threads.save_message(thread_id, MessageRole.USER, text)
                self._title_thread(thread_id, text)

        turn = self.prepare_regeneration(thread_id, request.messages, request.file_ids)
        turn.user_message = user_message
        return turn

    def prepare_regeneration(
        self,
        thread_id: str,
        messages: List[ChatMessage],
        file_ids: Optional[List[str]] = None,
    ) -> Turn:
        """Assemble a turn over an already-persisted history."""
        history = to_langchain_messages(messages)
        context = build_upload_context(self.uploads, file_ids or [], self.upload_context_bytes)
        if context:
            history.insert(0, SystemMessage(content=context))

        return Turn(
            thread_id=thread_id,
            history=history,
            gate=ConfirmationGate.from_history(messages),
            tools_enabled=wants_tools(last_user_text(messages)),
        )

    def _title_thread(self, thread_id: str, text: str) -> None:
        """Name the thread after its first user message, once."""
        if self.threads.count_messages(thread_id, MessageRole.USER) != 1:
            return
        thread = self.threads.get_thread(thread_id)
        if thread is None or thread.title != DEFAULT_THREAD_TITLE:
            return
        try:
            self.threads.rename_thread(thread_id, generate_title(text))
        except Exception as e:
            logger.error(f"Failed to title thread {thread_id}: {e}")

    def stream(self, turn: Turn, model: BaseChatModel) -> AsyncIterator[Dict[str, Any]]:
        """
        Start the turn in a detached task and return its event stream.

        Abandoning the iterator (client disconnect) does not stop the task,
        so the reply is still persisted once the model finishes.
        """
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._drive(turn, model, queue.put_nowait))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

        async def events():
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event

        return events()

    async def drain(self) -> None:
        """Wait for detached turns to finish so their replies are persisted."""
        if not self._running:
            return
        logger.info(f"Waiting for {len(self._running)} running turn(s) to finish")
        await asyncio.gather(*list(self._running), return_exceptions=True)

    async def run(self, turn: Turn, model: BaseChatModel) -> TurnResult:
        """Run the turn to completion without streaming."""
        return await self._drive(turn, model, lambda event: None)

    async def _drive(self, turn: Turn, model: BaseChatModel, emit: Callable[[Optional[dict]], None]) -> TurnResult:
        result = TurnResult()
        registry = self.registry if turn.tools_enabled else None
        logger.info(f"Turn started for thread {turn.thread_id} (tools={'on' if registry else 'off'})")
        try:
            # Import here to avoid circular imports
            from graph import build_turn_graph

            graph = build_turn_graph(model, registry, turn.gate, self.max_tool_steps)
            initial = {"messages": turn.history, "text": "", "steps": 0, "pending": []}
            async for event in graph.astream(initial, stream_mode="custom"):
                if event.get("type") == "text":
                    result.text += event["delta"]
                elif event.get("type") == "tool_result" and event["state"] == "pending":
                    result.pending.append({k: v for k, v in event.items() if k != "type"})
                emit(event)
        except Exception as e:
            logger.error(f"Turn failed for thread {turn.thread_id}: {e}")
            result.error = str(e) or "Failed to generate response"
            emit({"type": "error", "message": result.error})
        else:
            result.message = self._on_finish(turn.thread_id, result.text)
            emit({"type": "done", **result.summary()})
        finally:
            emit(None)
        return result

    def _on_finish(self, thread_id: str, text: str) -> Optional[Message]:
        """Persist the assistant reply; empty replies are not recorded."""
        if not text.strip():
            logger.info(f"Turn for thread {thread_id} produced no text; nothing persisted")
            return None
        try:
            message = self.threads.save_message(thread_id, MessageRole.ASSISTANT, text)
        except Exception as e:
            # The stream has already been delivered; the reply is just not stored
            logger.error(f"Failed to persist assistant reply for thread {thread_id}: {e}")
            return None
        logger.info(f"Turn finished for thread {thread_id}; saved message {message.id}")
        return message
