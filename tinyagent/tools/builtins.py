"""
Built-in Tools
==============

The catalog entry type and the pseudo-tools the agent loop handles itself:
- task_complete: the model signals that it believes the task is done
- ask_question: the model asks the end user for more information

Both are listed in every catalog under the `interaction-server` owner so the
model can see them. Calls to them never reach a provider.
"""

from dataclasses import dataclass, field
from typing import Any

# Pseudo-provider name that owns the built-in tools
INTERACTION_SERVER = "interaction-server"

TASK_COMPLETE = "task_complete"
ASK_QUESTION = "ask_question"


@dataclass(frozen=True)
class AvailableTool:
    """
    One tool in the catalog.

    Attributes:
        client_name: Provider that owns the tool
        name: Function name, unique across the catalog
        description: What the tool does (shown to the model)
        parameters: JSON Schema for the arguments
    """
    client_name: str
    name: str
    description: str | None = None
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_openai_tool(self) -> dict:
        """Tool declaration in OpenAI function calling format."""
        function: dict[str, Any] = {"name": self.name, "parameters": self.parameters}
        if self.description:
            function["description"] = self.description
        return {"type": "function", "function": function}

    def to_dict(self) -> dict:
        """Catalog entry as listed to chat clients."""
        return {
            "clientName": self.client_name,
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


BUILTIN_TOOLS: tuple[AvailableTool, ...] = (
    AvailableTool(
        client_name=INTERACTION_SERVER,
        name=TASK_COMPLETE,
        description="Call this tool when the task given by the user is complete",
        parameters={"type": "object", "properties": {}},
    ),
    AvailableTool(
        client_name=INTERACTION_SERVER,
        name=ASK_QUESTION,
        description=(
            "Ask a question to the user to get more info required to solve "
            "or clarify their problem."
        ),
        parameters={
            "type": "object",
            "properties": {
                "questions": {
                    "type": "string",
                    "description": "The question(s) to ask the user to gather more information.",
                },
            },
            "required": ["questions"],
        },
    ),
)

BUILTIN_TOOL_NAMES = frozenset(tool.name for tool in BUILTIN_TOOLS)
