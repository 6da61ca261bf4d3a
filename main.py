from fastapi import FastAPI, Depends, HTTPException, Query, Request, status, UploadFile, File
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import List, Optional
import logging

from langchain_core.language_models import BaseChatModel
from sqlalchemy import text

from config import Settings
from database import create_db_engine, create_session_factory
from dtos.chat_request import ChatRequest
from graph import create_chat_model
from models import Base
from schemas import (
    ThreadCreate, ThreadUpdate, ThreadResponse,
    MessageCreate, MessageEdit, MessageResponse, DeleteResult,
    UploadResponse,
)
from services import (
    ChatOrchestrator, EditController, ThreadService, ToolRegistry,
    UploadService, WorkbookService, seed_sample_workbook,
)
from services.chat import Turn
from services.errors import (
    GenerationUnavailableError, InvalidEditError, MessageNotFoundError, ThreadNotFoundError,
)
from utils import create_sse_stream

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_threads(request: Request) -> ThreadService:
    return request.app.state.threads


def get_uploads(request: Request) -> UploadService:
    return request.app.state.uploads


def get_workbook(request: Request) -> WorkbookService:
    return request.app.state.workbook


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_editor(request: Request) -> EditController:
    return request.app.state.editor


def require_thread(thread_id: str, threads: ThreadService):
    thread = threads.get_thread(thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread


async def respond(orchestrator: ChatOrchestrator, turn: Turn, stream: bool):
    """Run a prepared turn and return it as an SSE stream or a single JSON body."""
    try:
        model = orchestrator.model_factory()
    except GenerationUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if stream:
        return StreamingResponse(
            create_sse_stream(orchestrator.stream(turn, model)),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    result = await orchestrator.run(turn, model)
    if result.error:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)
    return result.summary()


def create_app(settings: Optional[Settings] = None, chat_model: Optional[BaseChatModel] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    engine = create_db_engine(settings.database_url)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables if they don't exist
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")
        yield
        await app.state.orchestrator.drain()
        engine.dispose()

    app = FastAPI(
        title="Workbook Chat",
        version="1.0.0",
        lifespan=lifespan
    )

    origins = settings.origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600
    )

    threads = ThreadService(session_factory)
    uploads = UploadService(session_factory, settings.upload_dir, settings.upload_max_bytes)
    workbook = WorkbookService(settings.workbook_path)
    orchestrator = ChatOrchestrator(
        threads=threads,
        uploads=uploads,
        registry=ToolRegistry(workbook),
        model_factory=(lambda: chat_model) if chat_model is not None else (lambda: create_chat_model(settings)),
        max_tool_steps=settings.max_tool_steps,
        upload_context_bytes=settings.upload_context_bytes,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.threads = threads
    app.state.uploads = uploads
    app.state.workbook = workbook
    app.state.orchestrator = orchestrator
    app.state.editor = EditController(threads, orchestrator)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "workbook-chat"}

    @app.get("/health/detailed")
    async def detailed_health_check(request: Request, workbook: WorkbookService = Depends(get_workbook)):
        """Check the database and the backing workbook."""
        health_status = {"status": "healthy", "service": "workbook-chat", "checks": {}}

        try:
            with request.app.state.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "healthy"}
        except Exception as e:
            health_status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
            health_status["status"] = "unhealthy"

        try:
            health_status["checks"]["workbook"] = {"status": "healthy", **workbook.health()}
        except Exception as e:
            health_status["checks"]["workbook"] = {"status": "unhealthy", "error": str(e)}
            health_status["status"] = "degraded"

        health_status["checks"]["model"] = {
            "status": "configured" if request.app.state.settings.openai_api_key else "not_configured"
        }
        return health_status

    # Chat

    @app.post("/chat")
    async def chat(req: ChatRequest, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
        """Run one generation turn for a thread."""
        thread_id = (req.thread_id or "").strip()
        if not thread_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="threadId is required")
        req.thread_id = thread_id

        try:
            turn = orchestrator.prepare_turn(req)
        except ThreadNotFoundError:
            raise HTTPException(status_code=404, detail="Thread not found")
        except Exception as e:
            logger.error(f"Failed to persist user message: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to persist user message"
            )

        return await respond(orchestrator, turn, req.stream)

    # Threads

    @app.post("/threads", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
    async def create_thread(thread: ThreadCreate, threads: ThreadService = Depends(get_threads)):
        """Create a new conversation thread."""
        return threads.create_thread(thread.title)

    @app.get("/threads", response_model=List[ThreadResponse])
    async def list_threads(
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        threads: ThreadService = Depends(get_threads)
    ):
        """List threads, newest first."""
        return threads.list_threads(limit=limit, offset=offset)

    @app.get("/threads/{thread_id}", response_model=ThreadResponse)
    async def get_thread(thread_id: str, threads: ThreadService = Depends(get_threads)):
        return require_thread(thread_id, threads)

    @app.patch("/threads/{thread_id}", response_model=ThreadResponse)
    async def update_thread(thread_id: str, thread_update: ThreadUpdate, threads: ThreadService = Depends(get_threads)):
        """Rename a thread."""
        updated_thread = threads.rename_thread(thread_id, thread_update.title)
        if not updated_thread:
            raise HTTPException(status_code=404, detail="Thread not found")
        return updated_thread

    @app.delete("/threads/{thread_id}", response_model=DeleteResult)
    async def delete_thread(thread_id: str, threads: ThreadService = Depends(get_threads)):
        """Delete a thread and all of its messages."""
        if not threads.delete_thread(thread_id):
            raise HTTPException(status_code=404, detail="Thread not found")
        return DeleteResult()

    # Messages

    @app.get("/threads/{thread_id}/messages", response_model=List[MessageResponse])
    async def list_messages(
        thread_id: str,
        limit: int = Query(200, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        threads: ThreadService = Depends(get_threads)
    ):
        return threads.list_messages(thread_id, limit=limit, offset=offset)

    @app.post("/threads/{thread_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
    async def append_message(thread_id: str, body: MessageCreate, threads: ThreadService = Depends(get_threads)):
        try:
            return threads.save_message(thread_id, body.role, body.content)
        except ThreadNotFoundError:
            raise HTTPException(status_code=404, detail="Thread not found")

    @app.patch("/threads/{thread_id}/messages/{message_id}")
    async def edit_message(
        thread_id: str,
        message_id: str,
        body: MessageEdit,
        editor: EditController = Depends(get_editor),
        orchestrator: ChatOrchestrator = Depends(get_orchestrator)
    ):
        """Edit a user message, drop everything after it and optionally regenerate."""
        try:
            outcome = editor.edit(thread_id, message_id, body.content)
        except ThreadNotFoundError:
            raise HTTPException(status_code=404, detail="Thread not found")
        except InvalidEditError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        if not body.regenerate:
            return {
                "message": MessageResponse.model_validate(outcome.message),
                "deleted": outcome.deleted,
            }

        turn = editor.regenerate(outcome, body.file_ids)
        return await respond(orchestrator, turn, body.stream)

    @app.delete("/threads/{thread_id}/messages/{message_id}", response_model=DeleteResult)
    async def delete_message(thread_id: str, message_id: str, threads: ThreadService = Depends(get_threads)):
        try:
            threads.get_thread_message(thread_id, message_id)
        except MessageNotFoundError:
            raise HTTPException(status_code=404, detail="Message not found")
        threads.delete_message(message_id)
        return DeleteResult(deleted=1)

    @app.delete("/threads/{thread_id}/messages", response_model=DeleteResult)
    async def delete_messages_after(
        thread_id: str,
        after: str = Query(..., description="Delete every message created after this one"),
        threads: ThreadService = Depends(get_threads)
    ):
        require_thread(thread_id, threads)
        try:
            anchor = threads.get_thread_message(thread_id, after)
        except MessageNotFoundError:
            raise HTTPException(status_code=404, detail="Message not found")
        return DeleteResult(deleted=threads.delete_messages_after(thread_id, anchor.created_at))

    # Uploads

    @app.post("/uploads", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
    async def upload_file(file: UploadFile = File(...), uploads: UploadService = Depends(get_uploads)):
        """Store a file so later turns can reference it through ``fileIds``."""
        data = await file.read()
        try:
            return uploads.save_upload(file.filename or "upload", file.content_type, data)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.get("/uploads/{upload_id}", response_model=UploadResponse)
    async def get_upload(upload_id: str, uploads: UploadService = Depends(get_uploads)):
        upload = uploads.get(upload_id)
        if not upload:
            raise HTTPException(status_code=404, detail="Upload not found")
        return upload

    # Workbook

    @app.post("/workbook/seed")
    async def seed_workbook(workbook: WorkbookService = Depends(get_workbook)):
        """Regenerate the sample workbook."""
        seed_sample_workbook(workbook.path)
        return {"path": workbook.path, "range": workbook.used_range()}


app = create_app()
