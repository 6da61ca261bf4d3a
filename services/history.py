"""Conversion between wire/persisted messages and LangChain messages."""
import json
import logging
from typing import Iterable, List

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from dtos.chat_request import ChatMessage, ToolCallPart, ToolResultPart, message_text
from models.messages import Message, MessageRole

logger = logging.getLogger(__name__)

NO_RESPONSE = {"status": "no_response", "message": "The user did not respond to this request."}


def from_records(records: Iterable[Message]) -> List[ChatMessage]:
    """Persisted messages as wire messages, preserving order."""
    return [ChatMessage(role=MessageRole(record.role), content=record.content) for record in records]


def _tool_message(part: ToolResultPart) -> ToolMessage:
    content = part.result if isinstance(part.result, str) else json.dumps(part.result, default=str)
    return ToolMessage(content=content, tool_call_id=part.tool_call_id, name=part.tool_name)


def to_langchain_messages(messages: Iterable[ChatMessage]) -> List[BaseMessage]:
    """
    Convert wire messages to LangChain messages.

    Assistant tool calls become ``AIMessage.tool_calls``; tool results become
    ``ToolMessage``s. A tool call that never got a result is answered with a
    ``no_response`` result so the history stays well formed.
    """
    converted: List[BaseMessage] = []
    for message in messages:
        text = message_text(message.content)
        parts = [] if isinstance(message.content, str) else message.content

        if message.role == MessageRole.SYSTEM:
            converted.append(SystemMessage(content=text))
        elif message.role == MessageRole.USER:
            converted.append(HumanMessage(content=text))
        elif message.role == MessageRole.ASSISTANT:
            tool_calls = [
                {"id": part.tool_call_id, "name": part.tool_name, "args": part.args}
                for part in parts if isinstance(part, ToolCallPart)
            ]
            converted.append(AIMessage(content=text, tool_calls=tool_calls))
            converted.extend(_tool_message(part) for part in parts if isinstance(part, ToolResultPart))
        else:
            results = [part for part in parts if isinstance(part, ToolResultPart)]
            if not results:
                logger.debug("Skipping tool message without a tool-result part")
            converted.extend(_tool_message(part) for part in results)

    return _answer_dangling_tool_calls(converted)


def _answer_dangling_tool_calls(messages: List[BaseMessage]) -> List[BaseMessage]:
    answered = {m.tool_call_id for m in messages if isinstance(m, ToolMessage)}
    result: List[BaseMessage] = []
    for message in messages:
        result.append(message)
        if isinstance(message, AIMessage):
            for call in message.tool_calls:
                if call["id"] not in answered:
                    result.append(ToolMessage(
                        content=json.dumps(NO_RESPONSE), tool_call_id=call["id"], name=call["name"]
                    ))
    return result


def last_user_text(messages: Iterable[ChatMessage]) -> str:
    text = ""
    for message in messages:
        if message.role == MessageRole.USER:
            text = message_text(message.content)
    return text
