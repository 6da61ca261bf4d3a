"""Tests for thread and message persistence."""

import pytest

from models.messages import MessageRole
from services.errors import MessageNotFoundError, ThreadNotFoundError
from services.threads import DEFAULT_THREAD_TITLE


class TestThreads:
    """Thread CRUD."""

    def test_create_uses_default_title(self, threads) -> None:
        thread = threads.create_thread()
        assert thread.title == DEFAULT_THREAD_TITLE
        assert thread.id
        assert thread.created_at > 0

    def test_list_is_newest_first(self, threads) -> None:
        """Threads come back ordered by created_at descending."""
        first = threads.create_thread("first")
        second = threads.create_thread("second")
        third = threads.create_thread("third")
        # Same-millisecond creation is possible; order by the stored stamps
        expected = sorted([first, second, third], key=lambda t: t.created_at, reverse=True)

        listed = threads.list_threads()
        assert [t.created_at for t in listed] == [t.created_at for t in expected]

    def test_list_paginates(self, threads) -> None:
        for i in range(5):
            threads.create_thread(f"t{i}")
        assert len(threads.list_threads(limit=2)) == 2
        assert len(threads.list_threads(limit=2, offset=4)) == 1

    def test_rename(self, threads) -> None:
        thread = threads.create_thread()
        renamed = threads.rename_thread(thread.id, "Budget review")
        assert renamed.title == "Budget review"
        assert threads.get_thread(thread.id).title == "Budget review"

    def test_rename_unknown_returns_none(self, threads) -> None:
        assert threads.rename_thread("missing", "x") is None

    def test_delete_cascades_to_messages(self, threads) -> None:
        """Deleting a thread removes its messages."""
        thread = threads.create_thread()
        message = threads.save_message(thread.id, MessageRole.USER, "hi")

        assert threads.delete_thread(thread.id) is True
        assert threads.get_thread(thread.id) is None
        assert threads.get_message(message.id) is None
        assert threads.list_messages(thread.id) == []

    def test_delete_unknown_returns_false(self, threads) -> None:
        assert threads.delete_thread("missing") is False


class TestMessages:
    """Message persistence and ordering."""

    def test_save_requires_existing_thread(self, threads) -> None:
        """Saving into an unknown thread is a referential error."""
        with pytest.raises(ThreadNotFoundError):
            threads.save_message("missing", MessageRole.USER, "hello")

    def test_timestamps_strictly_increase(self, threads) -> None:
        thread = threads.create_thread()
        saved = [threads.save_message(thread.id, MessageRole.USER, str(i)) for i in range(10)]
        stamps = [m.created_at for m in saved]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)

    def test_list_is_chronological(self, threads) -> None:
        thread = threads.create_thread()
        for i in range(4):
            threads.save_message(thread.id, MessageRole.USER, f"m{i}")
        assert [m.content for m in threads.list_messages(thread.id)] == ["m0", "m1", "m2", "m3"]
        assert [m.content for m in threads.list_messages(thread.id, limit=2, offset=1)] == ["m1", "m2"]

    def test_update_replaces_content_only(self, threads) -> None:
        thread = threads.create_thread()
        message = threads.save_message(thread.id, MessageRole.USER, "before")

        updated = threads.update_message(message.id, "after")
        assert updated.content == "after"
        assert updated.id == message.id
        assert updated.role == message.role
        assert updated.created_at == message.created_at

    def test_delete_single(self, threads) -> None:
        thread = threads.create_thread()
        message = threads.save_message(thread.id, MessageRole.USER, "x")
        assert threads.delete_message(message.id) is True
        assert threads.delete_message(message.id) is False

    def test_delete_after_is_exclusive(self, threads) -> None:
        """Messages at the anchor timestamp survive; later ones go."""
        thread = threads.create_thread()
        m1 = threads.save_message(thread.id, MessageRole.USER, "m1")
        m2 = threads.save_message(thread.id, MessageRole.ASSISTANT, "m2")
        threads.save_message(thread.id, MessageRole.USER, "m3")
        threads.save_message(thread.id, MessageRole.ASSISTANT, "m4")

        assert threads.delete_messages_after(thread.id, m2.created_at) == 2
        assert [m.id for m in threads.list_messages(thread.id)] == [m1.id, m2.id]

    def test_delete_after_with_no_match_is_not_an_error(self, threads) -> None:
        thread = threads.create_thread()
        last = threads.save_message(thread.id, MessageRole.USER, "only")
        assert threads.delete_messages_after(thread.id, last.created_at) == 0

    def test_delete_after_is_scoped_to_thread(self, threads) -> None:
        a = threads.create_thread()
        b = threads.create_thread()
        anchor = threads.save_message(a.id, MessageRole.USER, "a1")
        threads.save_message(b.id, MessageRole.USER, "b1")

        assert threads.delete_messages_after(a.id, anchor.created_at - 1) == 1
        assert threads.count_messages(b.id) == 1

    def test_count_by_role(self, threads) -> None:
        thread = threads.create_thread()
        threads.save_message(thread.id, MessageRole.USER, "q")
        threads.save_message(thread.id, MessageRole.ASSISTANT, "a")
        threads.save_message(thread.id, MessageRole.USER, "q2")
        assert threads.count_messages(thread.id) == 3
        assert threads.count_messages(thread.id, MessageRole.USER) == 2

    def test_thread_message_lookup_is_scoped(self, threads) -> None:
        a = threads.create_thread()
        b = threads.create_thread()
        message = threads.save_message(a.id, MessageRole.USER, "x")

        assert threads.get_thread_message(a.id, message.id).id == message.id
        with pytest.raises(MessageNotFoundError):
            threads.get_thread_message(b.id, message.id)
        with pytest.raises(MessageNotFoundError):
            threads.get_thread_message(a.id, "missing")
