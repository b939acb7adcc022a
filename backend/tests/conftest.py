"""Pytest configuration and in-memory fakes for the chat pipeline collaborators."""

from collections.abc import AsyncGenerator

import pytest

from app.core import tokens
from app.core.errors import CompletionError
from app.core.pipeline import ChatDependencies
from app.models.domain import KnowledgePayload, Message, PromptMessage, QueryRewrite, ScoredPoint
from app.models.usage import QuotaDecision


class _WhitespaceEncoding:
    """Stands in for tiktoken so tests never download BPE files."""

    def encode(self, text: str) -> list[str]:
        return text.split()


@pytest.fixture(autouse=True)
def fake_tokenizer(monkeypatch):
    monkeypatch.setattr(tokens, "get_encoding", lambda: _WhitespaceEncoding())


def point(title: str, score: float, content: str | None = None) -> ScoredPoint:
    return ScoredPoint(
        score=score,
        payload=KnowledgePayload(title=title, content=content or f"{title} details"),
    )


def msg(sender: str, content: str) -> Message:
    return Message(conversation_id="conv-1", sender=sender, content=content)


class FakeServices:
    """
    Records every call the pipeline makes. Search results are looked up by
    the text that was embedded, so tests can tell which query found what.
    """

    def __init__(self):
        self.quota = QuotaDecision(allowed=True)
        self.knowledge_items = 10
        self.history: list[Message] = []
        self.display_name: str | None = "Acme Bakery"
        self.hits_by_text: dict[str, list[ScoredPoint]] = {}
        self.default_hits: list[ScoredPoint] = [point("Hours", 0.9), point("Location", 0.8)]
        self.search_errors: dict[str, Exception] = {}
        self.rewritten = "opening hours schedule"
        self.rewrite_tokens = 12
        self.fragments: list[str] = ["Hello", " there", "!"]
        self.fail_after: int | None = None
        self.append_error: Exception | None = None

        self.quota_checks: list[str] = []
        self.usage_recorded: list[str] = []
        self.history_reads: list[tuple[str, int]] = []
        self.embedded: list[str] = []
        self.searches: list[tuple[str, int]] = []
        self.rewrites: list[str] = []
        self.prompts: list[list[PromptMessage]] = []
        self.appended: list[Message] = []
        self.stream_closed = False
        self._vectors: dict[float, str] = {}

    async def check_message_quota(self, org_id: str) -> QuotaDecision:
        self.quota_checks.append(org_id)
        return self.quota

    async def record_message_usage(self, org_id: str) -> None:
        self.usage_recorded.append(org_id)

    async def count_knowledge_items(self, website_id: str) -> int:
        return self.knowledge_items

    async def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        self.history_reads.append((conversation_id, limit))
        return list(self.history[-limit:])

    async def append_message(self, conversation_id: str, sender: str, content: str) -> Message:
        if self.append_error:
            raise self.append_error
        message = Message(conversation_id=conversation_id, sender=sender, content=content)
        self.appended.append(message)
        return message

    async def get_display_name(self, website_id: str) -> str | None:
        return self.display_name

    async def embed(self, text: str) -> list[float]:
        self.embedded.append(text)
        key = float(len(self.embedded))
        self._vectors[key] = text
        return [key]

    async def search(self, website_id: str, vector: list[float], limit: int) -> list[ScoredPoint]:
        text = self._vectors[vector[0]]
        self.searches.append((text, limit))
        if text in self.search_errors:
            raise self.search_errors[text]
        return self.hits_by_text.get(text, self.default_hits)[:limit]

    async def rewrite_query(self, message: str) -> QueryRewrite:
        self.rewrites.append(message)
        return QueryRewrite(rewritten=self.rewritten, tokens_used=self.rewrite_tokens)

    async def stream_completion(self, messages: list[PromptMessage]) -> AsyncGenerator[str, None]:
        self.prompts.append(messages)
        try:
            for index, fragment in enumerate(self.fragments):
                if self.fail_after is not None and index == self.fail_after:
                    raise CompletionError("model went away")
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise CompletionError("model went away")
        finally:
            self.stream_closed = True

    def deps(self) -> ChatDependencies:
        return ChatDependencies(
            check_message_quota=self.check_message_quota,
            record_message_usage=self.record_message_usage,
            count_knowledge_items=self.count_knowledge_items,
            get_recent_messages=self.get_recent_messages,
            append_message=self.append_message,
            get_display_name=self.get_display_name,
            embed=self.embed,
            search=self.search,
            rewrite_query=self.rewrite_query,
            stream_completion=self.stream_completion,
        )


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def make_point():
    return point


@pytest.fixture
def make_message():
    return msg
