"""
Prompts
=======

Instruction prompts for the agent's derived operations, and the parsers that
read their replies back.

- System-prompt designer: the model reasons in the open, then writes the
  finished prompt after a line holding only AGENT_SYSTEM_PROMPT
- Recipe generator: turns a finished conversation into a reusable markdown
  recipe
- RAG query generator: proposes short search queries for the knowledge base
- Planner: breaks a task into steps, each with its own system and user
  prompt (parsed in planner.py)
"""

import json
import re

from tinyagent.errors import MalformedDesignerOutput

AGENT_SYSTEM_PROMPT_TOKEN = "AGENT_SYSTEM_PROMPT"


def get_system_prompt_designer(user_goal: str, optional_context: str | None = None) -> str:
    """User message asking the designer to write a system prompt for a goal."""
    return f"""
You are **Prompt-Designer v1.1**, an expert at crafting production-ready
system prompts for tool-using autonomous LLM agents.

## Your Mission
Given runtime variables:
- A **high-level goal**: {user_goal}
- Optional **domain context**: {optional_context or "none"}

**Return two parts in one reply**
1. A markdown section headed "### Reasoning" where you think
   step-by-step about how to design the agent.
2. The finished system prompt, preceded by the token {AGENT_SYSTEM_PROMPT_TOKEN},
   on its own line.

## Generation Procedure
1. **Clarify & scope** the goal internally; do not ask the user
   follow-up questions. If ambiguity exists, instruct the *agent*
   you are designing to ask the user for clarification while it runs.
2. **Select architecture pattern(s)** (ReAct, Plan-and-Execute,
   Self-Refine, Reflexion, RAG, or a hybrid).
3. In "### Reasoning", explain the chosen pattern(s), why they match the
   goal, the key design choices and the section ordering. Keep this under
   ~300 words.
4. **Assemble the system prompt** with exactly these section headers,
   in this order:

   1. "## Role"
   2. "## Success_Criteria"
   3. "## Tools"
   4. "## Reasoning_Framework"
   5. "## Memory_and_Context"
   6. "## Reflection_and_Improvement"
   7. "## Guardrails"
   8. "## Output_Format"
   9. "## Termination"

5. **Constraints**
   - Do **not** include this master prompt in your output.
   - The {AGENT_SYSTEM_PROMPT_TOKEN} line must stand alone, with the full
     system prompt after it and nothing else.
"""


PROMPT_DESIGNER_SYSTEM_PROMPT = f"""
## Role
You are **Prompt-Designer v1.1**, a world-class system prompt engineer. You design system prompts for autonomous agents that use tools to complete complex goals.

## Success_Criteria
- Interpret the user's high-level goal and derive the required agent behaviour.
- Select and justify an architecture pattern (ReAct, Plan-and-Execute, Reflexion, ...).
- Return a production-ready system prompt with a clean structure and no omissions.
- Show your design reasoning *before* the prompt so it can be reviewed.
- When goals or context are unclear, tell the downstream agent to ask the user clarifying questions.

## Tools
You do not call tools. You rely on reasoning, internal knowledge and any tool metadata provided.

## Reasoning_Framework
Think step-by-step about the agent that would best solve the goal: scope, ambiguity, whether it needs planning, memory or retrieval, which pattern fits, which sections the prompt needs, and how it stays safe.

Share your reasoning in a section titled ### Reasoning. Then return the finished prompt preceded by a line containing only {AGENT_SYSTEM_PROMPT_TOKEN}.

## Guardrails
- Never omit sections from the output system prompt.
- Explicitly define tool usage and forbid calls to undefined tools.
- Refuse goals that are illegal, harmful or violate privacy.

## Output_Format
1. A markdown section titled ### Reasoning.
2. A line containing only {AGENT_SYSTEM_PROMPT_TOKEN}.
3. The final agent prompt with all nine section headers in order.

## Termination
Stop once the system prompt is complete and all nine sections are present.
"""


def extract_system_prompt(agent_text_response: str) -> str:
    """
    Cut the designed system prompt out of the designer's reply.

    Raises:
        MalformedDesignerOutput: If the token line does not appear exactly once
    """
    parts = agent_text_response.split(f"\n{AGENT_SYSTEM_PROMPT_TOKEN}\n")
    if len(parts) != 2:
        raise MalformedDesignerOutput(
            f'Invalid response format: expected exactly one "{AGENT_SYSTEM_PROMPT_TOKEN}" token.'
        )
    return parts[1].strip()


RECIPE_PROMPT = """
You are a Recipe Generator.
Your task is to analyze the full conversation and tool usage logs of an AI agent completing a task.
From this, generate a **Markdown recipe** that captures the essential algorithm to repeat the task.

### Rules:
- Only include **valid steps** that directly contributed to achieving the goal.
- Exclude failed attempts, detours, or unnecessary testing.
- If mistakes were made that must be avoided, add a **⚠️ Warnings** section.
- Recipes must be **generalized**:
  - Use descriptive placeholders (e.g., <BOARD_NAME>, <TARGET_BUTTON>) instead of one-time values.
  - When referring to elements (buttons, fields, links), mention the selector or attribute
    in the step itself, in a generic way that works in similar contexts.
- Always output **Markdown only**.

### Markdown Format:
# Recipe: <Short Task Title>

## Steps
1. Step one...
2. Step two...

## Tools
- Tool A
- Tool B

## Placeholders
- '<PLACEHOLDER_NAME>' -> what it represents

## ⚠️ Warnings
- (Only include if problematic mistakes were observed)

Return only the recipe, no other text.
"""


def get_recipe_request(conversation: list[dict]) -> str:
    return (
        "Generate the recipe for the task given the full conversation with the agent so far: "
        + json.dumps(conversation, indent=2, default=str)
    )


RAG_QUERIES_PROMPT = """
You write search queries for a knowledge base of documents and stored memories.

Read the conversation and propose up to {max_queries} short, self-contained
queries whose results would help answer the user's latest message. Prefer
specific nouns and phrases over full questions.

Reply with a JSON array of strings and nothing else, for example:
["staging database host", "deploy checklist"]

Reply with [] if the knowledge base cannot help.
"""


def get_rag_queries_request(conversation: list[dict]) -> str:
    return "Conversation:\n" + json.dumps(conversation, indent=2, default=str)


_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ``` or ```json fence, if any."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def parse_rag_queries(text: str | None, max_queries: int | None = None) -> list[str]:
    """
    Read the query list from the model's reply.

    Returns:
        The non-blank string queries, or [] if the reply is not a JSON array
    """
    if not text:
        return []
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []

    queries = [q.strip() for q in data if isinstance(q, str) and q.strip()]
    return queries[:max_queries] if max_queries is not None else queries


PLANNER_PROMPT = """
You are a planner for a tool-using AI agent.

Break the user's task into a short sequence of steps the agent can execute
one at a time. Each step gets its own focused system prompt (the role and
rules the agent follows during that step) and user prompt (exactly what to
do in that step). Later steps can rely on the answers of earlier ones.

Reply with JSON only, in this shape:
{
  "steps": [
    {
      "step_number": 1,
      "system_prompt": "You are ...",
      "user_prompt": "Find ..."
    }
  ]
}
"""


def get_plan_request(conversation: list[dict]) -> str:
    return (
        "Create a plan for the task in this conversation: "
        + json.dumps(conversation, indent=2, default=str)
    )
