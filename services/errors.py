"""Domain exceptions raised by the services."""


class ChatError(Exception):
    """Base class for service-level failures."""


class ThreadNotFoundError(ChatError):
    def __init__(self, thread_id: str):
        super().__init__(f"Thread not found: {thread_id}")
        self.thread_id = thread_id


class MessageNotFoundError(ChatError):
    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class InvalidEditError(ChatError):
    """Raised when an edit targets a message that is not user-authored."""


class WorkbookNotFoundError(ChatError):
    def __init__(self, path: str):
        super().__init__(f"Missing XLSX file at {path}. Add the workbook to enable XLSX tools.")
        self.path = path


class SheetNotFoundError(ChatError):
    def __init__(self, sheet: str):
        super().__init__(f"Sheet not found: {sheet}")
        self.sheet = sheet


class InvalidRangeError(ChatError):
    """Raised for malformed A1 cell or range references."""


class ConfirmationStateError(ChatError):
    """Raised on an illegal tool-call state transition."""


class GenerationUnavailableError(ChatError):
    """Raised when the chat model cannot be constructed (e.g. missing credential)."""
