"""
Token accounting for one chat turn.

Counts are for the operations log only; billing is per message. Counting must
never fail a request, so every count falls back to 0 if the tokenizer errors.
"""

from functools import lru_cache

import tiktoken
from loguru import logger
from pydantic import BaseModel

from app.config import get_settings
from app.models.domain import PromptMessage


@lru_cache()
def get_encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(get_settings().tokenizer_encoding)


def count_tokens_text(text: str) -> int:
    """Count tokens in a plain string, 0 on tokenizer failure."""
    if not text:
        return 0
    try:
        return len(get_encoding().encode(text))
    except Exception as e:
        logger.warning("[tokens] tokenizer failed, counting 0: {!r}", e)
        return 0


class TokenUsage(BaseModel):
    query_rewrite: int = 0
    system_context: int = 0
    history: int = 0
    history_messages: int = 0
    current_message: int = 0
    output: int = 0

    @property
    def input_total(self) -> int:
        return self.system_context + self.history + self.current_message

    @property
    def total(self) -> int:
        return self.query_rewrite + self.input_total + self.output


def measure_input(
    messages: list[PromptMessage],
    current_message: str,
    query_rewrite_tokens: int = 0,
) -> TokenUsage:
    """
    Measure the prompt side of a turn. `messages` is the built prompt: the
    system message first, the current user message last, history between.
    """
    history = messages[1:-1]
    return TokenUsage(
        query_rewrite=query_rewrite_tokens,
        system_context=count_tokens_text(messages[0].content) if messages else 0,
        history=count_tokens_text("\n".join(m.content for m in history)),
        history_messages=len(history),
        current_message=count_tokens_text(current_message),
    )


def log_token_usage(usage: TokenUsage, context_chunks: int, conversation_id: str) -> None:
    logger.bind(
        conversation_id=conversation_id,
        context_chunks=context_chunks,
        input_total=usage.input_total,
        total=usage.total,
        **usage.model_dump(),
    ).info(
        "[tokens] rewrite={} system+context={} history={} ({} msgs) current={} "
        "input={} output={} total={} chunks={}",
        usage.query_rewrite,
        usage.system_context,
        usage.history,
        usage.history_messages,
        usage.current_message,
        usage.input_total,
        usage.output,
        usage.total,
        context_chunks,
    )
