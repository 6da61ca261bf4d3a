"""Shared fixtures: a throwaway SQLite database, a seeded workbook and a scripted model."""
import pytest

from database import create_db_engine, create_session_factory
from models import Base
from services.chat import ChatOrchestrator
from services.editing import EditController
from services.threads import ThreadService
from services.tools import ToolRegistry
from services.uploads import UploadService
from services.workbook import WorkbookService, seed_sample_workbook
from tests.fakes import ScriptedChatModel


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'app.db'}")
    Base.metadata.create_all(bind=engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def threads(session_factory):
    return ThreadService(session_factory)


@pytest.fixture
def uploads(session_factory, tmp_path):
    return UploadService(session_factory, str(tmp_path / "uploads"))


@pytest.fixture
def workbook_path(tmp_path):
    path = tmp_path / "example.xlsx"
    seed_sample_workbook(str(path))
    return str(path)


@pytest.fixture
def workbook(workbook_path):
    return WorkbookService(workbook_path)


@pytest.fixture
def registry(workbook):
    return ToolRegistry(workbook)


@pytest.fixture
def model():
    return ScriptedChatModel()


@pytest.fixture
def orchestrator(threads, uploads, registry, model):
    return ChatOrchestrator(
        threads=threads,
        uploads=uploads,
        registry=registry,
        model_factory=lambda: model,
    )


@pytest.fixture
def editor(threads, orchestrator):
    return EditController(threads, orchestrator)
