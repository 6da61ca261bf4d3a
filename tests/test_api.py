"""HTTP-level tests for the FastAPI app."""

import json

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from config import Settings
from main import create_app
from services.workbook import seed_sample_workbook
from tests.fakes import ScriptedChatModel, tool_call


@pytest.fixture
def settings(tmp_path):
    workbook_path = str(tmp_path / "example.xlsx")
    seed_sample_workbook(workbook_path)
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        workbook_path=workbook_path,
        upload_dir=str(tmp_path / "uploads"),
        upload_max_bytes=64,
    )


@pytest.fixture
def chat_model():
    return ScriptedChatModel()


@pytest.fixture
def client(settings, chat_model):
    with TestClient(create_app(settings, chat_model=chat_model)) as test_client:
        yield test_client


@pytest.fixture
def thread_id(client):
    return client.post("/threads", json={}).json()["id"]


def parse_sse(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


class TestHealth:

    def test_health(self, client) -> None:
        assert client.get("/health").json()["status"] == "healthy"

    def test_detailed(self, client) -> None:
        body = client.get("/health/detailed").json()
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["workbook"]["sheets"] == ["Sheet1"]
        assert body["checks"]["model"]["status"] == "not_configured"


class TestThreadRoutes:

    def test_create_and_get(self, client) -> None:
        response = client.post("/threads", json={})
        assert response.status_code == 201
        thread = response.json()
        assert thread["title"] == "New Chat"
        assert client.get(f"/threads/{thread['id']}").json() == thread

    def test_list_newest_first(self, client) -> None:
        ids = [client.post("/threads", json={"title": f"t{i}"}).json()["id"] for i in range(3)]
        listed = client.get("/threads").json()
        assert {t["id"] for t in listed} == set(ids)
        stamps = [t["created_at"] for t in listed]
        assert stamps == sorted(stamps, reverse=True)

    def test_rename(self, client, thread_id) -> None:
        response = client.patch(f"/threads/{thread_id}", json={"title": "Budget"})
        assert response.json()["title"] == "Budget"

    def test_delete(self, client, thread_id) -> None:
        assert client.delete(f"/threads/{thread_id}").json()["ok"] is True
        assert client.get(f"/threads/{thread_id}").status_code == 404
        assert client.delete(f"/threads/{thread_id}").status_code == 404


class TestMessageRoutes:

    def test_append_and_list(self, client, thread_id) -> None:
        created = client.post(f"/threads/{thread_id}/messages", json={"role": "user", "content": "hi"})
        assert created.status_code == 201
        listed = client.get(f"/threads/{thread_id}/messages").json()
        assert [m["content"] for m in listed] == ["hi"]

    def test_append_to_unknown_thread(self, client) -> None:
        response = client.post("/threads/missing/messages", json={"role": "user", "content": "hi"})
        assert response.status_code == 404

    def test_delete_after(self, client, thread_id) -> None:
        ids = [
            client.post(f"/threads/{thread_id}/messages", json={"role": "user", "content": f"m{i}"}).json()["id"]
            for i in range(4)
        ]
        response = client.delete(f"/threads/{thread_id}/messages", params={"after": ids[1]})
        assert response.json()["deleted"] == 2
        listed = client.get(f"/threads/{thread_id}/messages").json()
        assert [m["id"] for m in listed] == ids[:2]

    def test_delete_single(self, client, thread_id) -> None:
        message_id = client.post(
            f"/threads/{thread_id}/messages", json={"role": "user", "content": "x"}
        ).json()["id"]
        assert client.delete(f"/threads/{thread_id}/messages/{message_id}").json()["deleted"] == 1
        assert client.delete(f"/threads/{thread_id}/messages/{message_id}").status_code == 404

    def test_edit_without_regenerate(self, client, thread_id) -> None:
        first = client.post(f"/threads/{thread_id}/messages", json={"role": "user", "content": "a"}).json()
        client.post(f"/threads/{thread_id}/messages", json={"role": "assistant", "content": "b"})

        response = client.patch(
            f"/threads/{thread_id}/messages/{first['id']}",
            json={"content": "a2", "regenerate": False},
        )
        body = response.json()
        assert body["deleted"] == 1
        assert body["message"]["content"] == "a2"

    def test_edit_assistant_rejected(self, client, thread_id) -> None:
        reply = client.post(f"/threads/{thread_id}/messages", json={"role": "assistant", "content": "b"}).json()
        response = client.patch(f"/threads/{thread_id}/messages/{reply['id']}", json={"content": "x"})
        assert response.status_code == 400

    def test_edit_and_regenerate(self, client, chat_model, thread_id) -> None:
        first = client.post(f"/threads/{thread_id}/messages", json={"role": "user", "content": "a"}).json()
        client.post(f"/threads/{thread_id}/messages", json={"role": "assistant", "content": "b"})
        chat_model.responses.append(AIMessage(content="fresh reply"))

        response = client.patch(
            f"/threads/{thread_id}/messages/{first['id']}",
            json={"content": "a2", "stream": False},
        )

        assert response.json()["text"] == "fresh reply"
        listed = client.get(f"/threads/{thread_id}/messages").json()
        assert [m["content"] for m in listed] == ["a2", "fresh reply"]


class TestChatRoute:

    def test_missing_thread_id(self, client) -> None:
        response = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})
        assert response.status_code == 400
        assert response.json()["detail"] == "threadId is required"

    def test_unknown_thread(self, client) -> None:
        response = client.post("/chat", json={"threadId": "missing", "messages": []})
        assert response.status_code == 404

    def test_non_streaming(self, client, chat_model, thread_id) -> None:
        chat_model.responses.append(AIMessage(content="Hello!"))
        response = client.post("/chat", json={
            "threadId": thread_id,
            "stream": False,
            "messages": [{"role": "user", "content": "Hi. Quick one."}],
        })
        assert response.status_code == 200
        assert response.json()["text"] == "Hello!"
        assert client.get(f"/threads/{thread_id}").json()["title"] == "Hi"
        listed = client.get(f"/threads/{thread_id}/messages").json()
        assert [m["role"] for m in listed] == ["user", "assistant"]

    def test_streaming(self, client, chat_model, thread_id) -> None:
        chat_model.responses.extend([
            AIMessage(content="", tool_calls=[tool_call("cellUpdate", {"cell": "B2", "value": 1}, "call_1")]),
        ])
        response = client.post("/chat", json={
            "threadId": thread_id,
            "messages": [{"role": "user", "content": "set @B2 to 1"}],
        })

        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [name for name, _ in events] == ["tool_call", "tool_result", "done"]
        assert events[1][1]["result"]["status"] == "needs_confirmation"
        pending = events[-1][1]["pendingToolCalls"]
        assert [p["toolCallId"] for p in pending] == ["call_1"]
        assert pending[0]["result"]["status"] == "needs_confirmation"

    def test_pending_calls_same_shape_in_both_modes(self, client, chat_model, thread_id) -> None:
        """The JSON body and the SSE done event describe pending calls identically."""
        pending_update = AIMessage(content="", tool_calls=[
            tool_call("cellUpdate", {"cell": "B2", "value": 1}, "call_1"),
        ])
        chat_model.responses.extend([pending_update, pending_update.model_copy()])
        request = {"threadId": thread_id, "messages": [{"role": "user", "content": "set @B2 to 1"}]}

        streamed = parse_sse(client.post("/chat", json=request).text)[-1][1]["pendingToolCalls"]
        plain = client.post("/chat", json={**request, "stream": False}).json()["pendingToolCalls"]

        assert plain == streamed
        assert plain[0]["toolCallId"] == "call_1"
        assert plain[0]["args"] == {"cell": "B2", "value": 1}

    def test_generation_unavailable(self, settings) -> None:
        """Without a credential the turn fails with a server error after the user message is saved."""
        with TestClient(create_app(settings)) as client:
            thread = client.post("/threads", json={}).json()["id"]
            response = client.post("/chat", json={
                "threadId": thread,
                "stream": False,
                "messages": [{"role": "user", "content": "hi"}],
            })
            assert response.status_code == 500
            assert [m["role"] for m in client.get(f"/threads/{thread}/messages").json()] == ["user"]


class TestUploadAndWorkbookRoutes:

    def test_upload(self, client) -> None:
        response = client.post("/uploads", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 201
        upload = response.json()
        assert upload["size_bytes"] == 5
        assert client.get(f"/uploads/{upload['id']}").json()["filename"] == "notes.txt"

    def test_upload_too_large(self, client) -> None:
        response = client.post("/uploads", files={"file": ("big.txt", b"x" * 65, "text/plain")})
        assert response.status_code == 400

    def test_upload_empty(self, client) -> None:
        response = client.post("/uploads", files={"file": ("empty.txt", b"", "text/plain")})
        assert response.status_code == 400

    def test_seed(self, client) -> None:
        body = client.post("/workbook/seed").json()
        assert body["range"] == "A1:E6"
