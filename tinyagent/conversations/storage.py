"""
Conversations Storage
=====================

File-backed store for chat conversations, one JSON file per conversation.

File Structure:
    data/conversations/
    ├── 3f2a9c...e1.json
    └── 8b07d4...5a.json

Each file holds:
    {
      "id": "3f2a9c...e1",
      "name": "2024-01-30T10:15:00.123456",
      "messages": [{"role": "user", "content": "..."}, ...],
      "created_at": "2024-01-30T10:15:00.123456",
      "updated_at": "2024-01-30T10:16:42.000001"
    }

Messages are stored in OpenAI chat format so a conversation can be fed
straight back to the agent.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from tinyagent.utils.logger import Logger

logger = Logger("Conversations")


@dataclass
class Conversation:
    id: str
    name: str
    messages: list[dict] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "messages": self.messages,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        return cls(
            id=data["id"],
            name=data["name"],
            messages=list(data.get("messages", [])),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


def _message_to_dict(message: Any) -> dict:
    return message if isinstance(message, dict) else message.to_dict()


class ConversationsStorage:
    """
    Create, read, update and delete conversations on disk.

    Example:
        storage = ConversationsStorage(Path("data/conversations"))

        conversation = await storage.create_conversation()
        await storage.update_conversation(conversation.id, result.conversation)

        for c in await storage.list_conversations():
            print(c.name, len(c.messages))
    """

    def __init__(self, directory: Path):
        """
        Initialize the store.

        Args:
            directory: Where conversation files live (created if missing)
        """
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        # IDs come from clients; keep them inside the directory
        return self.directory / f"{Path(conversation_id).name}.json"

    def _read(self, conversation_id: str) -> Conversation | None:
        path = self._path(conversation_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return Conversation.from_dict(json.load(f))

    def _write(self, conversation: Conversation) -> None:
        path = self._path(conversation.id)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(conversation.to_dict(), f, indent=2, default=str)
        tmp_path.replace(path)

    def _read_all(self) -> list[Conversation]:
        conversations = []
        for path in self.directory.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    conversations.append(Conversation.from_dict(json.load(f)))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable conversation file {path.name}: {e}")
        return conversations

    async def create_conversation(self, name: str | None = None) -> Conversation:
        """
        Create an empty conversation.

        Args:
            name: Display name (defaults to the creation timestamp)
        """
        now = datetime.now()
        conversation = Conversation(
            id=uuid.uuid4().hex,
            name=name or now.isoformat(),
            created_at=now,
            updated_at=now,
        )
        await asyncio.to_thread(self._write, conversation)
        logger.info(f"Created conversation {conversation.id}")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return await asyncio.to_thread(self._read, conversation_id)

    async def list_conversations(self) -> list[Conversation]:
        """All conversations, most recently updated first."""
        conversations = await asyncio.to_thread(self._read_all)
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def update_conversation(self, conversation_id: str, messages: list) -> bool:
        """
        Replace a conversation's messages.

        Args:
            conversation_id: Conversation to update
            messages: Message objects or OpenAI-format dicts

        Returns:
            False if the conversation does not exist
        """
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            logger.warning(f"Cannot update unknown conversation {conversation_id}")
            return False

        conversation.messages = [_message_to_dict(m) for m in messages]
        conversation.updated_at = datetime.now()
        await asyncio.to_thread(self._write, conversation)
        return True

    async def rename_conversation(self, conversation_id: str, name: str) -> bool:
        """Rename a conversation; False if it does not exist."""
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            return False

        conversation.name = name
        conversation.updated_at = datetime.now()
        await asyncio.to_thread(self._write, conversation)
        return True

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation; unknown IDs are ignored."""
        await asyncio.to_thread(self._path(conversation_id).unlink, missing_ok=True)
        logger.info(f"Deleted conversation {conversation_id}")
