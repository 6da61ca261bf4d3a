"""Runtime settings resolved from the environment."""
import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class Settings:
    """Resolved runtime configuration passed explicitly to collaborators."""

    database_url: str = "sqlite:///data/app.db"
    workbook_path: str = "data/example.xlsx"
    upload_dir: str = "data/uploads"
    chat_model: str = "gpt-4o-mini"
    openai_api_key: Optional[str] = None
    allowed_origins: str = "*"
    max_tool_steps: int = 5
    upload_max_bytes: int = 5 * 1024 * 1024
    upload_context_bytes: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            workbook_path=os.getenv("WORKBOOK_PATH", cls.workbook_path),
            upload_dir=os.getenv("UPLOAD_DIR", cls.upload_dir),
            chat_model=os.getenv("CHAT_MODEL", cls.chat_model),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", cls.allowed_origins),
            max_tool_steps=int(os.getenv("MAX_TOOL_STEPS", cls.max_tool_steps)),
            upload_max_bytes=int(os.getenv("UPLOAD_MAX_BYTES", cls.upload_max_bytes)),
            upload_context_bytes=int(os.getenv("UPLOAD_CONTEXT_BYTES", cls.upload_context_bytes)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )

    @property
    def origins(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
