"""
Chat Front End
==============

How people talk to the agent:
- service.py: transport-agnostic request handlers (ChatService)
- cli.py: the interactive terminal chat (ChatCLI)
"""

from tinyagent.chat.service import ChatService
from tinyagent.chat.cli import ChatCLI

__all__ = ["ChatService", "ChatCLI"]
