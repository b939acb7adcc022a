"""
Chat pipeline: quota gate → retrieval → prompt → streamed completion →
persist the assistant reply → record usage.

`ChatPipeline.process_message` is the whole turn as one lazy sequence of text
fragments. It is also available in two halves because a streaming HTTP
response commits its status before the body is produced:

- `prepare()` runs everything up to the first completion read and may raise.
  Callers that need request-level errors await it before opening a response.
- `stream()` never raises. A failure while streaming becomes a trailing
  "[Error: ...]" fragment and nothing is persisted.

The assistant message is written once, after the completion has been fully
consumed. If the consumer stops early the turn is dropped: no message, no
usage.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from functools import lru_cache

from loguru import logger
from pydantic import BaseModel

from app.core import llm, usage
from app.core.errors import QuotaExceededError
from app.core.prompt import build_messages
from app.core.retrieval import RetrievalResult, Strategy, retrieve_context
from app.core.tokens import TokenUsage, count_tokens_text, log_token_usage, measure_input
from app.db import conversations, qdrant
from app.models.domain import Message, PromptMessage, QueryRewrite, ScoredPoint, Sender
from app.models.usage import QuotaDecision

HISTORY_FETCH_LIMIT = 10


@dataclass
class ChatDependencies:
    """The pipeline's external collaborators, swappable one by one in tests."""

    check_message_quota: Callable[[str], Awaitable[QuotaDecision]]
    record_message_usage: Callable[[str], Awaitable[None]]
    count_knowledge_items: Callable[[str], Awaitable[int]]
    get_recent_messages: Callable[[str, int], Awaitable[list[Message]]]
    append_message: Callable[[str, Sender, str], Awaitable[Message]]
    get_display_name: Callable[[str], Awaitable[str | None]]
    embed: Callable[[str], Awaitable[list[float]]]
    search: Callable[[str, list[float], int], Awaitable[list[ScoredPoint]]]
    rewrite_query: Callable[[str], Awaitable[QueryRewrite]]
    stream_completion: Callable[[list[PromptMessage]], AsyncGenerator[str, None]]


def default_dependencies() -> ChatDependencies:
    return ChatDependencies(
        check_message_quota=usage.check_message_quota,
        record_message_usage=usage.record_message_usage,
        count_knowledge_items=conversations.count_knowledge_items,
        get_recent_messages=conversations.get_recent_messages,
        append_message=conversations.append_message,
        get_display_name=conversations.get_display_name,
        embed=llm.embed_text,
        search=qdrant.search,
        rewrite_query=llm.rewrite_query,
        stream_completion=llm.stream_chat,
    )


class PreparedTurn(BaseModel):
    conversation_id: str
    org_id: str
    messages: list[PromptMessage]
    tokens: TokenUsage
    context_chunks: int = 0
    strategy: Strategy | None = None


class ChatPipeline:
    def __init__(self, deps: ChatDependencies | None = None):
        self.deps = deps or default_dependencies()

    async def prepare(
        self,
        conversation_id: str,
        message: str,
        website_id: str,
        org_id: str,
    ) -> PreparedTurn:
        """
        Quota check, retrieval and prompt building for one inbound message.

        The inbound user message must already be stored; it is not written
        again here.
        """
        deps = self.deps

        quota = await deps.check_message_quota(org_id)
        if not quota.allowed:
            logger.info("[pipeline] quota refused for org {}: {}", org_id, quota.reason)
            raise QuotaExceededError(quota.reason)

        history: list[Message] = []
        retrieval: RetrievalResult | None = None

        # Untrained bots answer without context and without history
        item_count = await deps.count_knowledge_items(website_id)
        if item_count > 0:
            history = await deps.get_recent_messages(conversation_id, HISTORY_FETCH_LIMIT)
            retrieval = await retrieve_context(
                message,
                history,
                website_id,
                embed=deps.embed,
                search=deps.search,
                rewrite_query=deps.rewrite_query,
            )
        else:
            logger.debug("[pipeline] website {} has no training items, skipping retrieval", website_id)

        snippets = retrieval.snippets if retrieval else []
        display_name = await deps.get_display_name(website_id)
        messages = build_messages(message, snippets, history, display_name)

        return PreparedTurn(
            conversation_id=conversation_id,
            org_id=org_id,
            messages=messages,
            tokens=measure_input(
                messages,
                message,
                query_rewrite_tokens=retrieval.rewrite_tokens if retrieval else 0,
            ),
            context_chunks=len(snippets),
            strategy=retrieval.strategy if retrieval else None,
        )

    async def stream(self, turn: PreparedTurn) -> AsyncGenerator[str, None]:
        """Yield completion fragments as they arrive, then persist the reply."""
        parts: list[str] = []

        try:
            async with aclosing(self.deps.stream_completion(turn.messages)) as fragments:
                async for fragment in fragments:
                    parts.append(fragment)
                    yield fragment
        except Exception as e:
            logger.exception("[pipeline] completion failed mid-stream for conversation {}", turn.conversation_id)
            yield f"\n\n[Error: {e}]"
            return

        await self._finish(turn, "".join(parts))

    async def process_message(
        self,
        conversation_id: str,
        message: str,
        website_id: str,
        org_id: str,
    ) -> AsyncGenerator[str, None]:
        turn = await self.prepare(conversation_id, message, website_id, org_id)
        async with aclosing(self.stream(turn)) as fragments:
            async for fragment in fragments:
                yield fragment

    async def _finish(self, turn: PreparedTurn, response: str) -> None:
        turn.tokens.output = count_tokens_text(response)
        log_token_usage(turn.tokens, turn.context_chunks, turn.conversation_id)

        try:
            await self.deps.append_message(turn.conversation_id, "assistant", response)
        except Exception:
            # The client already has the text; this is a data-loss incident
            logger.exception(
                "[pipeline] failed to persist assistant message for conversation {} ({} chars)",
                turn.conversation_id,
                len(response),
            )
            return

        try:
            await self.deps.record_message_usage(turn.org_id)
        except Exception:
            logger.exception("[pipeline] failed to record message usage for org {}", turn.org_id)


@lru_cache()
def get_pipeline() -> ChatPipeline:
    return ChatPipeline()
