"""
Agent System
============

The agent loop and everything it exchanges with the model:
1. Takes a conversation prefix
2. Splices in retrieved knowledge (optional)
3. Calls the model with the tool catalog
4. Executes the tools the model asks for
5. Repeats until the model is done, returning transcript and telemetry

This module provides:
- TinyAgent: The agent loop and its derived operations
- ContextAssembler: RAG context injection
- ToolExecutor: Built-in and provider tool execution
- Plan, PlanStep, execute_plan: Plan-and-execute mode
- Message and telemetry types
"""

from tinyagent.agent.messages import (
    AssistantMessage,
    ConversationMessage,
    LLMCallTelemetry,
    RunResult,
    SystemMessage,
    ToolCallRequest,
    ToolCallTelemetry,
    ToolMessage,
    UserMessage,
    message_from_dict,
)
from tinyagent.agent.core import TinyAgent
from tinyagent.agent.context import ContextAssembler
from tinyagent.agent.tools_executor import ToolExecutor
from tinyagent.agent.planner import Plan, PlanExecution, PlanStep, execute_plan, parse_plan

__all__ = [
    "TinyAgent",
    "ContextAssembler",
    "ToolExecutor",
    "Plan",
    "PlanStep",
    "PlanExecution",
    "execute_plan",
    "parse_plan",
    "AssistantMessage",
    "ConversationMessage",
    "LLMCallTelemetry",
    "RunResult",
    "SystemMessage",
    "ToolCallRequest",
    "ToolCallTelemetry",
    "ToolMessage",
    "UserMessage",
    "message_from_dict",
]
