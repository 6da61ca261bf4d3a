from .threads import ThreadCreate, ThreadUpdate, ThreadResponse
from .messages import MessageCreate, MessageEdit, MessageResponse, DeleteResult
from .uploads import UploadResponse

__all__ = ["ThreadCreate", "ThreadUpdate", "ThreadResponse",
           "MessageCreate", "MessageEdit", "MessageResponse", "DeleteResult",
           "UploadResponse"]
