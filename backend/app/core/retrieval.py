"""
Retrieval: pick a query strategy for the inbound message, embed, search the
tenant's collection and merge the hits.

Three strategies, chosen by message length and history:

- anchored:      short message with an earlier substantive user turn. Search
                 with both, 4 hits each, merge to 7. No rewrite call.
- rewrite_pair:  short message with nothing to anchor to. Rewrite it, search
                 with the original and the rewrite, 5 hits each, merge to 7.
- rewrite_single: long message. Rewrite it and search once with 7 hits.

The limits differ per branch and are kept as observed behaviour.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Literal

from loguru import logger
from pydantic import BaseModel

from app.models.domain import Message, QueryRewrite, ScoredPoint, Snippet

SHORT_MESSAGE_WORDS = 5
ANCHOR_SEARCH_LIMIT = 4
REWRITE_PAIR_SEARCH_LIMIT = 5
SINGLE_SEARCH_LIMIT = 7
MERGED_TOP_K = 7

Strategy = Literal["anchored", "rewrite_pair", "rewrite_single"]

EmbedFn = Callable[[str], Awaitable[list[float]]]
SearchFn = Callable[[str, list[float], int], Awaitable[list[ScoredPoint]]]
RewriteFn = Callable[[str], Awaitable[QueryRewrite]]


class QueryPlan(BaseModel):
    strategy: Strategy
    anchor: str | None = None


class RetrievalResult(BaseModel):
    snippets: list[Snippet]
    strategy: Strategy
    rewrite_tokens: int = 0


def word_count(text: str) -> int:
    return len(text.split())


def is_short(message: str) -> bool:
    return word_count(message) < SHORT_MESSAGE_WORDS


def find_anchor(history: Sequence[Message]) -> Message | None:
    """Most recent user message with at least SHORT_MESSAGE_WORDS words."""
    for entry in reversed(history):
        if entry.sender == "user" and not is_short(entry.content):
            return entry
    return None


def select_strategy(message: str, history: Sequence[Message]) -> QueryPlan:
    if not is_short(message):
        return QueryPlan(strategy="rewrite_single")

    anchor = find_anchor(history)
    if anchor is not None:
        return QueryPlan(strategy="anchored", anchor=anchor.content)
    return QueryPlan(strategy="rewrite_pair")


def merge_results(*result_sets: Sequence[ScoredPoint], top_k: int = MERGED_TOP_K) -> list[ScoredPoint]:
    """
    Collapse hits by title keeping the best score, then rank by score.

    On equal scores the first-seen hit wins, and sorting is stable, so ties
    keep the order of `result_sets`.
    """
    best: dict[str, ScoredPoint] = {}
    for results in result_sets:
        for hit in results:
            key = hit.payload.title
            current = best.get(key)
            if current is None or hit.score > current.score:
                best[key] = hit

    return sorted(best.values(), key=lambda h: h.score, reverse=True)[:top_k]


async def _embed_and_search(
    embed: EmbedFn,
    search: SearchFn,
    website_id: str,
    text: str,
    limit: int,
) -> list[ScoredPoint]:
    vector = await embed(text)
    return await search(website_id, vector, limit)


async def _search_pair(
    embed: EmbedFn,
    search: SearchFn,
    website_id: str,
    first: str,
    second: str,
    limit: int,
) -> tuple[list[ScoredPoint], list[ScoredPoint]]:
    # Both searches run to completion before either result is used; one
    # failure fails the pair.
    results = await asyncio.gather(
        _embed_and_search(embed, search, website_id, first, limit),
        _embed_and_search(embed, search, website_id, second, limit),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results[0], results[1]


async def retrieve_context(
    message: str,
    history: Sequence[Message],
    website_id: str,
    *,
    embed: EmbedFn,
    search: SearchFn,
    rewrite_query: RewriteFn,
) -> RetrievalResult:
    """Run the search plan for `message` and return ranked snippets, best first."""
    plan = select_strategy(message, history)
    rewrite_tokens = 0

    if plan.strategy == "anchored":
        current, previous = await _search_pair(
            embed, search, website_id, message, plan.anchor, ANCHOR_SEARCH_LIMIT
        )
        hits = merge_results(previous, current)

    elif plan.strategy == "rewrite_pair":
        rewrite = await rewrite_query(message)
        rewrite_tokens = rewrite.tokens_used
        original, rewritten = await _search_pair(
            embed, search, website_id, message, rewrite.rewritten, REWRITE_PAIR_SEARCH_LIMIT
        )
        hits = merge_results(original, rewritten)

    else:
        rewrite = await rewrite_query(message)
        rewrite_tokens = rewrite.tokens_used
        hits = await _embed_and_search(
            embed, search, website_id, rewrite.rewritten, SINGLE_SEARCH_LIMIT
        )

    logger.debug(
        "[retrieval] strategy={} hits={} for {!r}", plan.strategy, len(hits), message[:60]
    )
    return RetrievalResult(
        snippets=[Snippet(title=h.payload.title, content=h.payload.content) for h in hits],
        strategy=plan.strategy,
        rewrite_tokens=rewrite_tokens,
    )
