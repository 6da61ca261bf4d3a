from .threads import ThreadService
from .uploads import UploadService
from .workbook import WorkbookService, seed_sample_workbook
from .tools import ToolRegistry
from .chat import ChatOrchestrator
from .editing import EditController

__all__ = ["ThreadService", "UploadService", "WorkbookService", "seed_sample_workbook",
           "ToolRegistry", "ChatOrchestrator", "EditController"]
