"""
Planner
=======

Plan-and-execute mode: the model first writes a plan, then the agent runs
the plan one step at a time.

Each step brings its own system prompt and user prompt. While a step runs,
its system prompt temporarily replaces the conversation's first system
message; the step's answer is appended to the shared history so later steps
build on it. The history handed back keeps the original system prompt.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from tinyagent.agent.messages import (
    AssistantMessage,
    ConversationMessage,
    RunResult,
    SystemMessage,
    UserMessage,
    to_message,
)
from tinyagent.agent.prompts import strip_code_fence
from tinyagent.errors import MalformedPlanOutput
from tinyagent.utils.logger import Logger

if TYPE_CHECKING:
    from tinyagent.agent.core import TinyAgent

logger = Logger("Planner")


@dataclass(frozen=True)
class PlanStep:
    step_number: int
    system_prompt: str
    user_prompt: str


@dataclass
class Plan:
    steps: list[PlanStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"steps": [asdict(step) for step in self.steps]}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def parse_plan(text: str | None) -> Plan:
    """
    Read a plan from the planner's reply.

    Expected shape: {"steps": [{"step_number", "system_prompt", "user_prompt"}, ...]},
    optionally wrapped in a code fence.

    Raises:
        MalformedPlanOutput: If the reply is not valid JSON of that shape
    """
    if not text:
        raise MalformedPlanOutput("The planner returned an empty reply.")

    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise MalformedPlanOutput(f"The plan is not valid JSON: {e}") from e

    raw_steps = data.get("steps") if isinstance(data, dict) else None
    if not isinstance(raw_steps, list) or not raw_steps:
        raise MalformedPlanOutput('The plan has no "steps" list.')

    steps = []
    for position, raw in enumerate(raw_steps, start=1):
        if not isinstance(raw, dict):
            raise MalformedPlanOutput(f"Step {position} is not an object.")
        try:
            steps.append(PlanStep(
                step_number=int(raw.get("step_number", position)),
                system_prompt=str(raw["system_prompt"]),
                user_prompt=str(raw["user_prompt"]),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedPlanOutput(f"Step {position} is incomplete: {e}") from e

    return Plan(steps=steps)


@dataclass
class PlanExecution:
    """
    Result of running a plan.

    Attributes:
        history: Shared conversation with one assistant answer per step
        step_results: The full agent run of every step, in order
    """
    history: list[ConversationMessage]
    step_results: list[RunResult]


def _with_system_prompt(
    messages: list[ConversationMessage],
    system_prompt: str
) -> list[ConversationMessage]:
    """Copy of messages whose first system message is replaced."""
    swapped = list(messages)
    for i, message in enumerate(swapped):
        if isinstance(message, SystemMessage):
            swapped[i] = SystemMessage(content=system_prompt)
            return swapped
    swapped.insert(0, SystemMessage(content=system_prompt))
    return swapped


async def execute_plan(
    agent: "TinyAgent",
    client: Any,
    plan: Plan,
    base_messages: list[ConversationMessage | dict],
    on_step: Callable[[PlanStep], None] | None = None,
    **run_options: Any
) -> PlanExecution:
    """
    Run every step of a plan against the agent loop, in order.

    Args:
        agent: The agent running each step
        client: OpenAI-compatible client passed to every run
        plan: The plan to execute
        base_messages: Conversation the plan was made for
        on_step: Called before each step starts
        **run_options: Extra options forwarded to TinyAgent.run

    Returns:
        PlanExecution with the shared history and each step's run
    """
    history = [to_message(m) for m in base_messages]
    history.append(AssistantMessage(
        content=f"This is the plan generated to accomplish the task: {plan.to_json()}"
    ))

    step_results = []
    for step in plan.steps:
        logger.info(f"Executing step {step.step_number} of {len(plan.steps)}")
        if on_step is not None:
            on_step(step)

        conversation = _with_system_prompt(history, step.system_prompt)
        conversation.append(UserMessage(
            content=(
                f"You are executing step {step.step_number} of the plan.\n"
                f"This is what you have to do: {step.user_prompt}"
            )
        ))

        result = await agent.run(client=client, base_messages=conversation, **run_options)
        step_results.append(result)
        history.append(AssistantMessage(content=result.last_assistant_text()))

    return PlanExecution(history=history, step_results=step_results)
