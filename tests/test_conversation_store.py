import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from shared.models.conversation import ConversationMessage
from shared.models.errors import StoreCorruption
from shared.stores.ConversationStore import ConversationStore


def msg(content: str, type_: str = "user") -> ConversationMessage:
    return ConversationMessage(type=type_, content=content)


@pytest.fixture
def store(helper_config) -> ConversationStore:
    return ConversationStore(helper_config=helper_config)


class TestAppend:
    @pytest.mark.asyncio
    async def test_keeps_the_most_recent_max_messages(self, store):
        total = 2 * store.max_messages
        for i in range(total):
            await store.append("u1", msg(f"message {i}"))

        messages = store.load("u1")
        assert len(messages) == store.max_messages
        assert [m.content for m in messages] == [f"message {i}" for i in range(store.max_messages, total)]

    @pytest.mark.asyncio
    async def test_evicts_oldest_first(self, helper_config, monkeypatch):
        monkeypatch.setenv("CONVERSATION_MAX_MESSAGES", "3")
        store = ConversationStore(helper_config=helper_config)
        for content in ["a", "b", "c", "d"]:
            await store.append("u1", msg(content))

        assert [m.content for m in store.load("u1")] == ["b", "c", "d"]

    @pytest.mark.asyncio
    async def test_long_content_is_truncated(self, store):
        await store.append("u1", msg("x" * 1500))

        content = store.load("u1")[0].content
        assert len(content) == store.max_content_chars + 3
        assert content.endswith("...")

    @pytest.mark.asyncio
    async def test_load_returns_a_copy(self, store):
        await store.append("u1", msg("hello"))
        loaded = store.load("u1")
        loaded.clear()

        assert len(store.load("u1")) == 1
        assert store.load("nobody") == []

    @pytest.mark.asyncio
    async def test_concurrent_appends_for_one_user_are_not_lost(self, store):
        await asyncio.gather(*[store.append("u1", msg(f"m{i}")) for i in range(15)])

        assert len(store.load("u1")) == 15

    @pytest.mark.asyncio
    async def test_users_are_independent(self, store):
        await store.append("u1", msg("one"))
        await store.append("u2", msg("two"))
        await store.clear("u1")

        assert store.load("u1") == []
        assert [m.content for m in store.load("u2")] == ["two"]


class TestMessageModel:
    def test_bot_is_an_alias_for_assistant(self):
        assert msg("hi", "bot").type == "assistant"

    def test_missing_content_or_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            ConversationMessage(type="user", content="   ")
        with pytest.raises(ValidationError):
            ConversationMessage(type="system", content="hi")


class TestStatsAndExpiry:
    @pytest.mark.asyncio
    async def test_stats(self, store):
        assert store.stats() == {"active_conversations": 0, "total_messages": 0, "last_activity_at": None}

        await store.append("u1", msg("a"))
        await store.append("u1", msg("b", "assistant"))
        await store.append("u2", msg("c"))

        stats = store.stats()
        assert stats["active_conversations"] == 2
        assert stats["total_messages"] == 3
        assert stats["last_activity_at"] is not None

    @pytest.mark.asyncio
    async def test_purge_removes_only_idle_conversations(self, store):
        await store.append("idle", msg("old"))
        await store.append("active", msg("new"))
        store._conversations["idle"].last_activity_at = datetime.now(timezone.utc) - timedelta(days=8)

        assert await store.purge_expired(timedelta(days=7)) == 1
        assert await store.purge_expired(timedelta(days=7)) == 0
        assert store.load("idle") == []
        assert len(store.load("active")) == 1

    @pytest.mark.asyncio
    async def test_purge_skips_a_conversation_being_written(self, store):
        await store.append("u1", msg("old"))
        store._conversations["u1"].last_activity_at = datetime.now(timezone.utc) - timedelta(days=8)

        lock = await store._acquire("u1")
        try:
            assert await store.purge_expired(timedelta(days=7)) == 0
        finally:
            lock.release()
        assert len(store.load("u1")) == 1

    @pytest.mark.asyncio
    async def test_append_after_purge_starts_a_new_conversation(self, store):
        await store.append("u1", msg("old"))
        store._conversations["u1"].last_activity_at = datetime.now(timezone.utc) - timedelta(days=8)
        await store.purge_expired(timedelta(days=7))

        await store.append("u1", msg("fresh"))

        assert [m.content for m in store.load("u1")] == ["fresh"]


class TestPersistence:
    @pytest.mark.asyncio
    async def test_conversations_survive_restart(self, helper_config, tmp_path):
        path = str(tmp_path / "conversations.json")
        store = ConversationStore(helper_config=helper_config, path=path)
        await store.append("u1", msg("bonjour"))
        await store.append("u1", msg("salut", "bot"))

        reloaded = ConversationStore(helper_config=helper_config, path=path)

        assert [(m.type, m.content) for m in reloaded.load("u1")] == [("user", "bonjour"), ("assistant", "salut")]

    def test_corrupt_file_fails_fast(self, helper_config, tmp_path):
        path = tmp_path / "conversations.json"
        path.write_text('{"conversations": [{"messages": 3}]}')

        with pytest.raises(StoreCorruption):
            ConversationStore(helper_config=helper_config, path=str(path))
