import asyncio
import json
import logging
import operator
from typing import Annotated, Any, Dict, List, Optional, TypedDict

from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage, message_chunk_to_message
from langgraph.graph import StateGraph, START, END
from langgraph.graph.message import add_messages
from langgraph.types import StreamWriter

from config import Settings
from services.confirmation import ConfirmationGate
from services.errors import GenerationUnavailableError
from services.tools import NEEDS_CONFIRMATION, ToolRegistry

logger = logging.getLogger(__name__)


class TurnState(TypedDict):
    messages: Annotated[list[BaseMessage], add_messages]
    text: Annotated[str, operator.add]
    steps: Annotated[int, operator.add]
    pending: Annotated[List[Dict[str, Any]], operator.add]


def create_chat_model(settings: Settings) -> BaseChatModel:
    """Construct the configured chat model; fails fast without credentials."""
    if not settings.openai_api_key:
        raise GenerationUnavailableError("Missing OPENAI_API_KEY in the environment")
    try:
        return init_chat_model(settings.chat_model, api_key=settings.openai_api_key)
    except Exception as e:
        raise GenerationUnavailableError(f"Failed to initialise chat model: {e}") from e


def chunk_text(content: Any) -> str:
    """Text carried by a message chunk, whether plain or a list of blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block if isinstance(block, str) else block.get("text", "")
            for block in content
            if isinstance(block, (str, dict))
        )
    return ""


def build_turn_graph(
    model: BaseChatModel,
    registry: Optional[ToolRegistry],
    gate: ConfirmationGate,
    max_tool_steps: int = 5,
):
    """
    Build the per-turn graph: ``llm`` streams the model's reply, ``tools``
    runs any requested calls, and the loop ends on plain text, on a call
    awaiting confirmation, or after ``max_tool_steps`` model calls.

    ``registry`` is None when the turn runs without tools.
    """
    bound = model.bind_tools(registry.openai_tools()) if registry is not None else model

    async def llm(state: TurnState, writer: StreamWriter):
        gathered = None
        text = ""
        async for chunk in bound.astream(state["messages"]):
            delta = chunk_text(chunk.content)
            if delta:
                text += delta
                writer({"type": "text", "delta": delta})
            gathered = chunk if gathered is None else gathered + chunk

        message = message_chunk_to_message(gathered) if gathered is not None else AIMessage(content="")
        return {"messages": [message], "text": text, "steps": 1}

    async def tools(state: TurnState, writer: StreamWriter):
        last = state["messages"][-1]
        results = []
        pending = []
        for tool_call in last.tool_calls:
            call, outcome = await asyncio.to_thread(
                registry.run, tool_call["id"], tool_call["name"], tool_call["args"], gate
            )
            logger.info(f"Tool {call.name} ({call.id}) -> {outcome.get('status')}")
            event = {
                "toolCallId": call.id,
                "toolName": call.name,
                "args": tool_call["args"],
                "state": call.state.value,
            }
            writer({"type": "tool_call", **event})
            writer({"type": "tool_result", **event, "result": outcome})
            if outcome.get("status") == NEEDS_CONFIRMATION:
                pending.append(event)
            results.append(ToolMessage(
                content=json.dumps(outcome, default=str),
                tool_call_id=call.id,
                name=call.name,
            ))
        return {"messages": results, "pending": pending}

    def route_after_llm(state: TurnState):
        last = state["messages"][-1]
        if registry is None or not getattr(last, "tool_calls", None):
            return END
        return "tools"

    def route_after_tools(state: TurnState):
        if state["pending"]:
            return END
        if state["steps"] >= max_tool_steps:
            logger.warning(f"Stopping turn after {state['steps']} model calls")
            return END
        return "llm"

    return (
        StateGraph(TurnState)
        .add_node("llm", llm)
        .add_node("tools", tools)
        .add_edge(START, "llm")
        .add_conditional_edges("llm", route_after_llm, ["tools", END])
        .add_conditional_edges("tools", route_after_tools, ["llm", END])
        .compile()
    )
