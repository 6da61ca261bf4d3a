from .threads import Thread, Base
from .messages import Message, MessageRole
from .uploads import Upload

__all__ = ["Thread", "Message", "MessageRole", "Upload", "Base"]
