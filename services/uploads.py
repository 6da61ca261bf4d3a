"""Upload storage and the context strings built from uploads."""
import logging
import os
import re
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from models.uploads import Upload
from models.threads import new_id
from services.threads import now_ms

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]+")


class UploadService:
    """Stores uploaded files on local disk and their metadata in the database."""

    def __init__(self, session_factory: sessionmaker, upload_dir: str, max_bytes: int = 5 * 1024 * 1024):
        self._session_factory = session_factory
        self.upload_dir = upload_dir
        self.max_bytes = max_bytes

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def save_upload(self, filename: str, mime_type: Optional[str], data: bytes) -> Upload:
        """
        Write the file under the upload directory and record it.

        Raises:
            ValueError: if the file is empty or exceeds the size cap.
        """
        if not data:
            raise ValueError("file is required")
        if len(data) > self.max_bytes:
            raise ValueError(f"file too large (max {self.max_bytes // 1024 // 1024}MB)")

        os.makedirs(self.upload_dir, exist_ok=True)
        upload_id = new_id()
        safe_name = UNSAFE_FILENAME_CHARS.sub("_", filename)
        storage_path = os.path.join(self.upload_dir, f"{upload_id}-{safe_name}")
        with open(storage_path, "wb") as fh:
            fh.write(data)

        with self._session() as db:
            upload = Upload(
                id=upload_id,
                filename=filename,
                mime_type=mime_type or "application/octet-stream",
                size_bytes=len(data),
                storage_path=storage_path,
                created_at=now_ms(),
            )
            db.add(upload)
            db.commit()
            db.refresh(upload)
            logger.info(f"Stored upload {upload_id} ({upload.mime_type}, {len(data)} bytes)")
            return upload

    def get(self, upload_id: str) -> Optional[Upload]:
        with self._session() as db:
            return db.get(Upload, upload_id)


def is_textual(mime_type: str) -> bool:
    return mime_type.startswith("text/") or "json" in mime_type


def build_upload_context(uploads: UploadService, file_ids: List[str], max_bytes: int = 5000) -> Optional[str]:
    """
    Describe the referenced uploads as one block of system-message text.

    Text and JSON files contribute their first ``max_bytes`` bytes; anything
    else is only noted by name. Unknown ids are skipped. Returns None when
    nothing was found.
    """
    previews = []
    for file_id in file_ids:
        upload = uploads.get(file_id)
        if not upload:
            logger.warning(f"Upload {file_id} not found; skipping")
            continue

        preview = f"File: {upload.filename} ({upload.mime_type})"
        if is_textual(upload.mime_type):
            try:
                with open(upload.storage_path, "rb") as fh:
                    raw = fh.read(max_bytes)
                preview = f"{preview}\n{raw.decode('utf-8', errors='ignore')}"
            except OSError as e:
                logger.error(f"Failed to read upload {file_id}: {e}")
                preview = f"{preview}\n[Unable to read file contents]"
        else:
            preview = f"{preview}\n[Binary file contents not included]"
        previews.append(preview)

    if not previews:
        return None
    return "User uploaded files:\n\n" + "\n\n---\n\n".join(previews)
