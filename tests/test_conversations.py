"""Tests for the file-backed conversation store."""

import pytest

from tinyagent.agent import AssistantMessage, UserMessage
from tinyagent.conversations import ConversationsStorage


@pytest.fixture
def storage(tmp_path):
    return ConversationsStorage(tmp_path / "conversations")


class TestConversationsStorage:

    async def test_create_and_get(self, storage):
        conversation = await storage.create_conversation("Trip planning")

        loaded = await storage.get_conversation(conversation.id)

        assert loaded.name == "Trip planning"
        assert loaded.messages == []
        assert loaded.created_at == conversation.created_at

    async def test_default_name_is_creation_time(self, storage):
        conversation = await storage.create_conversation()

        assert conversation.name == conversation.created_at.isoformat()

    async def test_unknown_conversation(self, storage):
        assert await storage.get_conversation("missing") is None
        assert await storage.update_conversation("missing", []) is False
        assert await storage.rename_conversation("missing", "x") is False

    async def test_update_accepts_objects_and_dicts(self, storage):
        conversation = await storage.create_conversation()

        updated = await storage.update_conversation(conversation.id, [
            UserMessage(content="hi"),
            {"role": "assistant", "content": "hello"},
            AssistantMessage(content="bye"),
        ])

        assert updated is True
        loaded = await storage.get_conversation(conversation.id)
        assert loaded.messages == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "assistant", "content": "bye"},
        ]
        assert loaded.updated_at >= conversation.updated_at

    async def test_list_most_recent_first(self, storage):
        older = await storage.create_conversation("older")
        newer = await storage.create_conversation("newer")
        await storage.rename_conversation(older.id, "older, renamed")

        names = [c.name for c in await storage.list_conversations()]

        assert names == ["older, renamed", "newer"]
        assert newer.id != older.id

    async def test_unreadable_files_are_skipped(self, storage):
        await storage.create_conversation("good")
        (storage.directory / "broken.json").write_text("{not json")

        assert [c.name for c in await storage.list_conversations()] == ["good"]

    async def test_delete(self, storage):
        conversation = await storage.create_conversation()

        await storage.delete_conversation(conversation.id)
        await storage.delete_conversation(conversation.id)

        assert await storage.get_conversation(conversation.id) is None

    async def test_ids_cannot_escape_the_directory(self, storage, tmp_path):
        outside = tmp_path / "secret.json"
        outside.write_text("{}")

        await storage.delete_conversation("../secret")

        assert outside.exists()
