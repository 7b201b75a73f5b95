"""
Terminal Chat
=============

Interactive chat with the agent in the terminal, on top of ChatService.

Commands:
    /help               Show the available commands
    /exit               Leave the chat
    /tools              List every tool the agent can call
    /recipe             Turn the conversation so far into a reusable recipe
    /plan <task>        Plan the task, then execute the plan step by step
    /conversation       Print the full conversation as JSON
    /remember <text>    Store a memory in the knowledge base

Anything else is sent to the agent as a user message.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tinyagent.agent.messages import SystemMessage
from tinyagent.chat.service import STREAM_ANSWER, TOOL_CALL, TOOL_CALL_RESULT, ChatService
from tinyagent.utils.logger import Colors, Logger

if TYPE_CHECKING:
    from tinyagent.agent.planner import PlanStep
    from tinyagent.rag import RAGManager

logger = Logger("CLI")

LOGO = r"""
  _____ _             _                    _
 |_   _(_)_ __  _   _/ \   __ _  ___ _ __ | |_
   | | | | '_ \| | | |/ _ \ / _` |/ _ \ '_ \| __|
   | | | | | | | |_| / ___ \ (_| |  __/ | | | |_
   |_| |_|_| |_|\__, /_/   \_\__, |\___|_| |_|\__|
                |___/        |___/
"""


@dataclass(frozen=True)
class Command:
    name: str
    description: str


COMMANDS = (
    Command("help", "Show the help and all the available commands"),
    Command("exit", "Exit the program"),
    Command("tools", "List all the tools available through the registered providers"),
    Command("recipe", "Generate a reusable recipe from the current conversation"),
    Command("plan", "Plan a task and execute it step by step: /plan <task>"),
    Command("conversation", "Print the full conversation"),
    Command("remember", "Store a memory in the knowledge base: /remember <text>"),
)

COMMAND_NAMES = frozenset(command.name for command in COMMANDS)


def parse_command(text: str) -> tuple[str | None, str]:
    """
    Split "/name args" into (name, args).

    Returns (None, text) when the input is not a known command.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None, stripped
    name, _, argument = stripped[1:].partition(" ")
    if name not in COMMAND_NAMES:
        return None, stripped
    return name, argument.strip()


def help_text() -> str:
    return "\n".join(f"/{c.name} - {c.description}" for c in COMMANDS)


def print_system(message: str) -> None:
    print(f"{Colors.DEBUG}{message}{Colors.RESET}")


def print_agent(message: str) -> None:
    print(f"{Colors.INFO}{message}{Colors.RESET}")


def print_tool(message: str) -> None:
    print(f"{Colors.WARNING}{message}{Colors.RESET}")


class ChatCLI:
    """
    The interactive loop.

    Example:
        cli = ChatCLI(service, system_prompt=config.agent.system_prompt, rag=rag)
        await cli.run()
    """

    def __init__(
        self,
        service: ChatService,
        system_prompt: str,
        rag: "RAGManager | None" = None,
        perform_rag_queries: bool = False
    ):
        self.service = service
        self.system_prompt = system_prompt
        self.rag = rag
        self.perform_rag_queries = perform_rag_queries and rag is not None

        self.messages: list[dict] = [SystemMessage(content=system_prompt).to_dict()]
        self.conversation_id: str | None = None

    async def prompt(self, text: str = "Ask me anything") -> str:
        """Read one line from the user without blocking the event loop."""
        return (await asyncio.to_thread(input, f"\n{text}\n>> ")).strip()

    def on_event(self, name: str, payload: Any) -> None:
        if name == STREAM_ANSWER:
            print(f"{Colors.INFO}{payload}{Colors.RESET}", end="", flush=True)
        elif name == TOOL_CALL:
            print_tool(f"The agent is calling the tool {payload['function']['name']}")
        elif name == TOOL_CALL_RESULT:
            print_tool(
                f"{payload['toolName']} completed in {payload['durationMs'] / 1000:.2f}s"
            )

    async def run(self) -> None:
        print_system(LOGO)
        print_system("Welcome to TinyAgent! Type /help to see the available commands.")

        if self.service.conversations is not None:
            ack = await self.service.create_conversation()
            if ack["status"] == "ok":
                self.conversation_id = ack["result"]["id"]

        while True:
            text = await self.prompt()
            if not text:
                continue

            command, argument = parse_command(text)
            if command == "exit":
                break
            if command is None:
                await self.answer(text)
            else:
                await self.handle_command(command, argument)

    async def handle_command(self, command: str, argument: str) -> None:
        if command == "help":
            print_system(help_text())
        elif command == "tools":
            await self.list_tools()
        elif command == "recipe":
            await self.generate_recipe()
        elif command == "plan":
            if not argument:
                print_system("Usage: /plan <task>")
                return
            await self.plan(argument)
        elif command == "conversation":
            print_system(json.dumps(self.messages, indent=2, default=str))
        elif command == "remember":
            await self.remember(argument)

    async def answer(self, text: str) -> None:
        self.messages.append({"role": "user", "content": text})
        start = time.monotonic()

        rag_queries: list[str] = []
        if self.perform_rag_queries:
            print_system("Generating RAG queries...")
            ack = await self.service.generate_rag_queries(self.messages)
            if ack["status"] == "ok":
                rag_queries = ack["result"]

        print_system("Generating answer...")
        ack = await self.service.generate_answer(
            self.messages,
            rag_queries=rag_queries,
            conversation_id=self.conversation_id,
            on_event=self.on_event,
            request_input_from_user=self.ask_user,
        )

        result = ack["result"]
        if result["streamed"]:
            print()
        else:
            print_agent(result["content"])
        if ack["status"] == "ok":
            self.messages = result["conversation"]
        else:
            self.messages.append({"role": "assistant", "content": result["content"]})
        print_system(f"Answer generated in {time.monotonic() - start:.2f}s")

    async def ask_user(self, questions: str) -> str:
        """Answer the agent's clarification questions."""
        print_agent(questions)
        return await self.prompt("Your answer")

    async def list_tools(self) -> None:
        ack = await self.service.list_tools()
        if ack["status"] != "ok":
            print_system(f"Could not list tools: {ack['error']}")
            return

        tools = ack["result"]
        clients = sorted({tool["clientName"] for tool in tools})
        print_system("\n\n".join(
            f"[{tool['clientName']}]: {tool['function']['name']} - {tool['function']['description']}"
            for tool in tools
        ))
        print_system(
            f"You have access in total to {len(tools)} tools from {len(clients)} "
            f"different clients: {', '.join(clients)}"
        )

    async def generate_recipe(self) -> None:
        confirm = await self.prompt(
            "I will generate a recipe for the task from the current conversation, continue? (y/n)"
        )
        if confirm.lower() != "y":
            return

        print_system("Generating recipe...")
        ack = await self.service.generate_recipe(self.messages)
        if ack["status"] != "ok":
            print_system(f"Could not generate the recipe: {ack['error']}")
            return
        print_system("Recipe generated:")
        print_agent(ack["result"])

    async def plan(self, task: str) -> None:
        print_system("Generating a plan...")
        start = time.monotonic()
        ack = await self.service.generate_plan([{"role": "user", "content": task}])
        if ack["status"] != "ok":
            print_system(f"Could not generate a plan: {ack['error']}")
            return

        plan = ack["result"]
        print_system(f"Plan generated in {time.monotonic() - start:.2f}s:")
        print_agent(json.dumps(plan, indent=2))

        self.messages.append({"role": "user", "content": task})

        def on_step(step: "PlanStep") -> None:
            print_system(f"Implementing step {step.step_number} of the plan...")

        ack = await self.service.execute_plan(
            plan, self.messages, on_event=self.on_event, on_step=on_step
        )
        if ack["status"] != "ok":
            print_system(f"Plan execution failed: {ack['error']}")
            return

        print_agent(ack["result"]["content"])
        self.messages = ack["result"]["conversation"]

    async def remember(self, text: str) -> None:
        if self.rag is None:
            print_system("The knowledge base is disabled.")
            return
        if not text:
            print_system("Usage: /remember <text>")
            return
        try:
            memory_id = await self.rag.create_memory(text)
        except Exception as e:
            logger.error("Failed to store memory", e)
            print_system("Sorry, I could not store that memory.")
            return
        print_system(f"Memory {memory_id} stored.")
