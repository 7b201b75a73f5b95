"""
Context Assembly
================

Adds retrieved knowledge to a conversation before the agent loop starts.

For each retrieval query the knowledge base is searched; the combined hits
are formatted into one extra system message placed right after the first
system message of the conversation (or at the very front if there is none).

Retrieval is an enhancement, not a dependency: if the search fails for any
reason the conversation goes to the model unchanged.
"""

from typing import TYPE_CHECKING

from tinyagent.agent.messages import ConversationMessage, SystemMessage
from tinyagent.utils.logger import Logger

if TYPE_CHECKING:
    from tinyagent.rag import RAGManager, RAGResult

logger = Logger("Context")


class ContextAssembler:
    """
    Splices RAG results into a conversation.

    Example:
        assembler = ContextAssembler(rag, top_k=5)

        messages = await assembler.assemble(
            messages,
            queries=["staging database host", "deploy steps"]
        )
    """

    def __init__(self, rag: "RAGManager | None" = None, top_k: int = 5):
        """
        Initialize the context assembler.

        Args:
            rag: Optional RAG manager; without one assemble() is a no-op
            top_k: Results fetched per query
        """
        self.rag = rag
        self.top_k = top_k

    async def assemble(
        self,
        messages: list[ConversationMessage],
        queries: list[str] | None = None
    ) -> list[ConversationMessage]:
        """
        Return the conversation with retrieved context inserted.

        Args:
            messages: The conversation so far (not modified)
            queries: Retrieval queries; nothing is retrieved when empty

        Returns:
            A new message list
        """
        if self.rag is None or not queries:
            return list(messages)

        try:
            results = await self._retrieve(queries)
        except Exception as e:
            logger.warning(f"RAG retrieval failed, continuing without context: {e}")
            return list(messages)

        if not results:
            logger.debug("RAG retrieval returned nothing")
            return list(messages)

        context = SystemMessage(content=self.rag.format_results_for_context(results))
        logger.debug(f"Injecting {len(results)} RAG results")
        return self._splice(messages, context)

    async def _retrieve(self, queries: list[str]) -> list["RAGResult"]:
        """Run every query, keeping the first hit for each distinct chunk."""
        seen: set[tuple[str, str]] = set()
        results = []
        for query in queries:
            for result in await self.rag.query(query, self.top_k):
                key = (result.source, result.content)
                if key in seen:
                    continue
                seen.add(key)
                results.append(result)
        return results

    @staticmethod
    def _splice(
        messages: list[ConversationMessage],
        context: SystemMessage
    ) -> list[ConversationMessage]:
        spliced = list(messages)
        first_system = next(
            (i for i, m in enumerate(spliced) if isinstance(m, SystemMessage)), None
        )
        if first_system is None:
            spliced.insert(0, context)
        else:
            spliced.insert(first_system + 1, context)
        return spliced
