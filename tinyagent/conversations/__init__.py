"""
Conversations
=============

Persistent chat history. Each conversation keeps its full message list in
OpenAI chat format, so a chat can be resumed or replayed through the agent.

Usage:
    from tinyagent.conversations import ConversationsStorage

    storage = ConversationsStorage(config.storage.conversations_dir)
    conversation = await storage.create_conversation("Deploy checklist")
"""

from tinyagent.conversations.storage import Conversation, ConversationsStorage

__all__ = ["Conversation", "ConversationsStorage"]
