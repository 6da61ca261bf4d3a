from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models.messages import MessageRole


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TextPart(WireModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallPart(WireModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(WireModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    result: Any = None


Part = Annotated[Union[TextPart, ToolCallPart, ToolResultPart], Field(discriminator="type")]

# Plain text, or a list of typed fragments
MessageContent = Union[str, List[Part]]


class ChatMessage(WireModel):
    role: MessageRole
    content: MessageContent = ""


class ConfirmationResult(WireModel):
    """What the UI sends back for a tool call that needed confirmation."""
    confirmed: bool
    action_id: Optional[str] = Field(default=None, alias="actionId")
    cancelled: bool = False


class ChatRequest(WireModel):
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    messages: List[ChatMessage] = Field(default_factory=list)
    stream: bool = Field(default=True, description="Stream the reply as server-sent events")
    file_ids: List[str] = Field(default_factory=list, alias="fileIds", description="Uploads to inject as context")


def message_text(content: MessageContent) -> str:
    """Display text of a message: the string itself or its text parts joined."""
    if isinstance(content, str):
        return content
    return "".join(part.text for part in content if isinstance(part, TextPart))
